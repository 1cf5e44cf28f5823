"""
Operating-threshold selection on a precision-recall curve.

The default 0.5 cutoff is rarely sensible for a rare minority class, so the
final model's cutoff is chosen where F1 peaks on held-out data.
"""

from typing import Any, Tuple

import numpy as np
import pandas as pd

from imbalance_eval.exceptions import EmptyCurveError
from imbalance_eval.metrics import ConfusionMatrix, PRCurve, confusion_matrix, pr_curve


def _f1(precision: np.ndarray, recall: np.ndarray) -> np.ndarray:
    total = precision + recall
    with np.errstate(divide="ignore", invalid="ignore"):
        f1 = np.where(total > 0, 2 * precision * recall / total, 0.0)
    return f1


def f1_table(curve: PRCurve) -> pd.DataFrame:
    """Curve points with their F1 score, in curve order."""
    frame = curve.to_frame()
    frame["f1"] = _f1(curve.precision, curve.recall)
    return frame


def best_f1_cutoff(curve: PRCurve) -> float:
    """
    Threshold with the highest F1 on the curve.

    Points without a finite threshold (the recall-0 anchor) are ignored.
    Ties go to the higher threshold, which produces fewer false positives.

    Raises:
        EmptyCurveError: If the curve has no usable points.
    """
    finite = np.isfinite(curve.thresholds)
    if not np.any(finite):
        raise EmptyCurveError("Cannot choose a cutoff from an empty precision-recall curve")

    thresholds = curve.thresholds[finite]
    f1 = _f1(curve.precision[finite], curve.recall[finite])
    # thresholds are decreasing, so argmax picks the highest among tied maxima
    return float(thresholds[int(np.argmax(f1))])


def optimize_cutoff(scores: Any, labels: Any) -> Tuple[float, ConfusionMatrix]:
    """Best-F1 cutoff for a scored set and the confusion matrix it yields."""
    cutoff = best_f1_cutoff(pr_curve(scores, labels))
    return cutoff, confusion_matrix(scores, labels, cutoff)
