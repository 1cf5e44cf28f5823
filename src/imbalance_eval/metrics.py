"""
Metric engine: precision-recall curves, PR-AUC and confusion matrices.

The minority class is always the positive class. Scores are probabilities of
the minority class and a record is predicted positive when its score is at or
above the threshold.

Curve convention:
    Every curve built by :func:`pr_curve` starts with an anchor point at
    ``threshold=+inf`` where nothing is predicted positive. Precision is
    undefined there, so it is fixed to the class prior (the precision of a
    classifier that cannot rank). A scorer that assigns one constant score to
    every record therefore gets a PR-AUC equal to the minority prevalence.

Example:
    from imbalance_eval.metrics import pr_curve, pr_auc, confusion_matrix

    curve = pr_curve(scores, labels)
    print(pr_auc(curve))
    cm = confusion_matrix(scores, labels, cutoff=0.5)
    print(cm.precision, cm.recall, cm.f1)
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import precision_recall_curve

from imbalance_eval.exceptions import EmptyCurveError

ANCHOR_THRESHOLD = math.inf
DEFAULT_CUTOFF = 0.5


class CurvePoint(NamedTuple):
    threshold: float
    precision: float
    recall: float


def _frozen(values: Any) -> np.ndarray:
    array = np.array(values, dtype=float)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class PRCurve:
    """
    Precision-recall curve ordered by decreasing threshold.

    Attributes:
        thresholds: Score cutoffs, strictly decreasing.
        precision: Precision at each cutoff.
        recall: Recall at each cutoff, non-decreasing.
        prior: Minority prevalence of the scored set, if known.
    """

    thresholds: np.ndarray
    precision: np.ndarray
    recall: np.ndarray
    prior: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "thresholds", _frozen(self.thresholds))
        object.__setattr__(self, "precision", _frozen(self.precision))
        object.__setattr__(self, "recall", _frozen(self.recall))
        if not (len(self.thresholds) == len(self.precision) == len(self.recall)):
            raise ValueError("Curve thresholds, precision and recall must have equal length")
        if len(self.thresholds) > 1 and np.any(np.diff(self.thresholds) >= 0):
            raise ValueError("Curve thresholds must be strictly decreasing")

    @classmethod
    def from_points(
        cls,
        points: Iterable[Tuple[float, float, float]],
        prior: Optional[float] = None,
    ) -> "PRCurve":
        """Build a curve from ``(threshold, precision, recall)`` triples.

        Points are sorted by decreasing threshold.
        """
        ordered = sorted((tuple(p) for p in points), key=lambda p: -p[0])
        if not ordered:
            return cls(thresholds=[], precision=[], recall=[], prior=prior)
        thresholds, precision, recall = zip(*ordered)
        return cls(thresholds=thresholds, precision=precision, recall=recall, prior=prior)

    def __len__(self) -> int:
        return len(self.thresholds)

    def __iter__(self) -> Iterator[CurvePoint]:
        for t, p, r in zip(self.thresholds, self.precision, self.recall):
            yield CurvePoint(float(t), float(p), float(r))

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def points(self) -> Tuple[CurvePoint, ...]:
        return tuple(self)

    def pairs(self) -> Tuple[Tuple[float, float], ...]:
        """(precision, recall) pairs without thresholds."""
        return tuple((p.precision, p.recall) for p in self)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "threshold": self.thresholds,
            "precision": self.precision,
            "recall": self.recall,
        })


def validate_scored(scores: Any, labels: Any) -> Tuple[np.ndarray, np.ndarray]:
    """
    Coerce scores and labels to arrays and check they describe one scored set.

    Raises:
        ValueError: If shapes differ, scores are not finite values in [0, 1],
            or labels are not encoded as 0/1.
    """
    score_arr = np.asarray(scores, dtype=float).ravel()
    label_arr = np.asarray(labels).ravel()
    if score_arr.shape != label_arr.shape:
        raise ValueError(
            f"Scores ({score_arr.shape[0]}) and labels ({label_arr.shape[0]}) differ in length"
        )
    if not np.all(np.isfinite(score_arr)):
        raise ValueError("Scores must be finite")
    if score_arr.size and (score_arr.min() < 0.0 or score_arr.max() > 1.0):
        raise ValueError(
            f"Scores must lie in [0, 1], got range [{score_arr.min()}, {score_arr.max()}]"
        )
    if not np.all(np.isin(label_arr, (0, 1))):
        raise ValueError("Labels must be encoded as 0 (majority) / 1 (minority)")
    return score_arr, label_arr.astype(np.int8)


def pr_curve(scores: Any, labels: Any) -> PRCurve:
    """
    Build the precision-recall curve of a scored prediction set.

    One point is produced per distinct score, swept from the highest score
    down. Records with tied scores are classified together. The curve is
    preceded by the recall-0 anchor described in the module docstring.

    Args:
        scores: Minority-class probabilities.
        labels: True labels encoded 1 (minority) / 0 (majority).

    Returns:
        The curve, or an empty curve when the labels do not contain both
        classes (recall or the prior would be undefined).
    """
    score_arr, label_arr = validate_scored(scores, labels)
    n = score_arr.size
    positives = int(label_arr.sum())
    if n == 0 or positives == 0 or positives == n:
        return PRCurve(thresholds=[], precision=[], recall=[])

    prior = positives / n
    # sklearn returns thresholds ascending and appends a (precision=1, recall=0) end point
    precision, recall, thresholds = precision_recall_curve(label_arr, score_arr)
    precision = precision[:-1][::-1]
    recall = recall[:-1][::-1]
    thresholds = thresholds[::-1]

    return PRCurve(
        thresholds=np.r_[ANCHOR_THRESHOLD, thresholds],
        precision=np.r_[prior, precision],
        recall=np.r_[0.0, recall],
        prior=prior,
    )


def pr_auc(curve: PRCurve) -> float:
    """
    Area under the precision-recall curve by trapezoidal integration of
    precision over recall, following the curve's point order.

    Raises:
        EmptyCurveError: If the curve has no points.
    """
    if curve.is_empty:
        raise EmptyCurveError("Cannot integrate an empty precision-recall curve")
    recall = curve.recall
    precision = curve.precision
    return float(np.sum(np.diff(recall) * (precision[1:] + precision[:-1]) / 2.0))


def pr_auc_score(labels: Any, scores: Any) -> float:
    """Metric function used to score validation folds (higher is better)."""
    return pr_auc(pr_curve(scores, labels))


@dataclass(frozen=True)
class ConfusionMatrix:
    """Counts at a cutoff, with derived rates (zero division yields 0.0)."""

    tp: int
    fp: int
    tn: int
    fn: int
    cutoff: float = DEFAULT_CUTOFF

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn

    @property
    def precision(self) -> float:
        predicted = self.tp + self.fp
        return self.tp / predicted if predicted else 0.0

    @property
    def recall(self) -> float:
        actual = self.tp + self.fn
        return self.tp / actual if actual else 0.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if (p + r) else 0.0

    @property
    def accuracy(self) -> float:
        return (self.tp + self.tn) / self.total if self.total else 0.0

    @property
    def specificity(self) -> float:
        actual = self.tn + self.fp
        return self.tn / actual if actual else 0.0

    def as_array(self) -> np.ndarray:
        """2x2 matrix laid out as ``[[TN, FP], [FN, TP]]``."""
        return np.array([[self.tn, self.fp], [self.fn, self.tp]], dtype=int)

    def as_dict(self) -> Dict[str, float]:
        return {
            "cutoff": self.cutoff,
            "tp": self.tp,
            "fp": self.fp,
            "tn": self.tn,
            "fn": self.fn,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
            "accuracy": self.accuracy,
            "specificity": self.specificity,
        }


def confusion_matrix(scores: Any, labels: Any, cutoff: float = DEFAULT_CUTOFF) -> ConfusionMatrix:
    """Confusion counts when records scoring at or above ``cutoff`` are positive."""
    score_arr, label_arr = validate_scored(scores, labels)
    predicted = score_arr >= cutoff
    actual = label_arr == 1
    return ConfusionMatrix(
        tp=int(np.sum(predicted & actual)),
        fp=int(np.sum(predicted & ~actual)),
        tn=int(np.sum(~predicted & ~actual)),
        fn=int(np.sum(~predicted & actual)),
        cutoff=float(cutoff),
    )
