"""
Strategy comparison and reporting for imbalanced classification.

This module runs one cross-validated grid search per named configuration on
the same training partition, evaluates every winner on the same held-out test
partition and collects the results into :class:`ModelReport` objects. The
reports are the only thing consumers (CLI, notebooks, plotting) read; nothing
here renders.

Because fold generation is a pure function of the seed, configurations that
share ``seed``, ``n_folds`` and ``n_repeats`` are evaluated on identical folds
and their per-fold scores can be compared pairwise.

Example:
    from imbalance_eval.comparison import compare_strategies, summary_frame
    from imbalance_eval.config import SearchConfig
    from imbalance_eval.trainers import XGBoostTrainer

    configs = {
        "original": SearchConfig(name="original", param_grid=grid),
        "weighted": SearchConfig(name="weighted", param_grid=grid, class_weights=True),
        "smote": SearchConfig(name="smote", param_grid=grid, strategy="smote"),
    }
    reports = compare_strategies(train, test, configs, XGBoostTrainer())
    print(summary_frame(reports))
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from imbalance_eval.config import ExperimentConfig, SearchConfig
from imbalance_eval.dataset import Dataset
from imbalance_eval.grid_search import GridSearchEngine, SearchResult, check_feasible
from imbalance_eval.metrics import (
    DEFAULT_CUTOFF,
    ConfusionMatrix,
    PRCurve,
    confusion_matrix,
    pr_auc,
    pr_curve,
)
from imbalance_eval.pool import WorkerPool
from imbalance_eval.splitting import class_balance_report, stratified_split
from imbalance_eval.thresholds import best_f1_cutoff

logger = logging.getLogger(__name__)


@dataclass
class ModelReport:
    """
    Held-out evaluation of one configuration's winning model.

    Attributes:
        name: Configuration name.
        search: Cross-validation result that produced the model.
        test_scores: Minority probabilities on the test partition.
        pr_auc: Test PR-AUC.
        curve: Test precision-recall curve.
        default_confusion: Confusion matrix at the 0.5 cutoff.
        optimized_cutoff: Cutoff with the highest test F1.
        optimized_confusion: Confusion matrix at ``optimized_cutoff``.
    """

    name: str
    search: SearchResult
    test_scores: np.ndarray
    pr_auc: float
    curve: PRCurve
    default_confusion: ConfusionMatrix
    optimized_cutoff: float
    optimized_confusion: ConfusionMatrix

    @property
    def default_cutoff(self) -> float:
        return self.default_confusion.cutoff

    @property
    def cv_score(self) -> float:
        return self.search.best_score


def evaluate_on_holdout(
    name: str,
    result: SearchResult,
    trainer: Any,
    test_data: Dataset,
    default_cutoff: float = DEFAULT_CUTOFF,
) -> ModelReport:
    """Score the winning model on the test partition and pick its F1 cutoff."""
    scores = np.asarray(trainer.predict_proba(result.best_model, test_data.features), dtype=float)
    curve = pr_curve(scores, test_data.labels)
    area = pr_auc(curve)
    cutoff = best_f1_cutoff(curve)
    report = ModelReport(
        name=name,
        search=result,
        test_scores=scores,
        pr_auc=area,
        curve=curve,
        default_confusion=confusion_matrix(scores, test_data.labels, default_cutoff),
        optimized_cutoff=cutoff,
        optimized_confusion=confusion_matrix(scores, test_data.labels, cutoff),
    )
    logger.info(
        f"'{name}': test PR-AUC={area:.4f}, F1@{default_cutoff}={report.default_confusion.f1:.4f}, "
        f"F1@{cutoff:.4f}={report.optimized_confusion.f1:.4f}"
    )
    return report


def _warn_if_folds_differ(configs: Dict[str, SearchConfig]) -> None:
    layouts = {(c.seed, c.n_folds, c.n_repeats) for c in configs.values()}
    if len(layouts) > 1:
        logger.warning(
            "Configurations use different seed/fold/repeat settings; "
            "their per-fold scores are not paired"
        )


def compare_strategies(
    train_data: Dataset,
    test_data: Dataset,
    configs: Dict[str, SearchConfig],
    trainer: Any,
    pool: Optional[WorkerPool] = None,
    max_workers: Optional[int] = None,
    backend: str = "loky",
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, ModelReport]:
    """
    Run one search per configuration and evaluate every winner on ``test_data``.

    A worker pool is acquired once for the whole comparison and released when
    it finishes (unless the caller supplied an acquired pool, which is left
    for the caller to release).

    Returns:
        Mapping of configuration name to :class:`ModelReport`, in input order.
    """
    if not configs:
        raise ValueError("compare_strategies requires at least one configuration")
    for config in configs.values():
        check_feasible(train_data, config)
    _warn_if_folds_differ(configs)

    owns_pool = pool is None
    if owns_pool:
        pool = WorkerPool(max_workers=max_workers, backend=backend).acquire()
    try:
        engine = GridSearchEngine(trainer=trainer, pool=pool)
        reports: Dict[str, ModelReport] = {}
        for name, config in configs.items():
            result = engine.search(train_data, config, cancel_event=cancel_event)
            reports[name] = evaluate_on_holdout(name, result, trainer, test_data)
    finally:
        if owns_pool:
            pool.release()
    return reports


def run_experiment(
    data: Dataset,
    experiment: ExperimentConfig,
    trainer: Any,
    pool: Optional[WorkerPool] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[Dict[str, ModelReport], Dataset, Dataset]:
    """
    Split ``data`` into train/test and compare every configured strategy.

    Returns:
        ``(reports, train, test)``.
    """
    min_per_class = max(c.n_folds for c in experiment.searches.values())
    train, test = stratified_split(
        data,
        fraction=experiment.train_fraction,
        seed=experiment.split_seed,
        min_class_count=min_per_class,
    )
    class_balance_report({"full": data, "train": train, "test": test})
    first = next(iter(experiment.searches.values()))
    reports = compare_strategies(
        train, test, experiment.searches, trainer,
        pool=pool, max_workers=first.max_workers, backend=first.backend,
        cancel_event=cancel_event,
    )
    return reports, train, test


def summary_frame(reports: Dict[str, ModelReport]) -> pd.DataFrame:
    """One row per configuration with CV and test metrics."""
    rows = []
    for name, report in reports.items():
        rows.append({
            "name": name,
            "remediation": report.search.config.remediation,
            "best_params": report.search.best_params,
            "cv_score": report.cv_score,
            "test_pr_auc": report.pr_auc,
            "default_cutoff": report.default_cutoff,
            "default_f1": report.default_confusion.f1,
            "optimized_cutoff": report.optimized_cutoff,
            "optimized_f1": report.optimized_confusion.f1,
            "optimized_precision": report.optimized_confusion.precision,
            "optimized_recall": report.optimized_confusion.recall,
        })
    return pd.DataFrame(rows)


def fold_score_frame(reports: Dict[str, ModelReport]) -> pd.DataFrame:
    """Per-fold CV scores of each configuration's winner, side by side."""
    columns = {name: report.search.best_fold_scores() for name, report in reports.items()}
    return pd.DataFrame(columns)


def report_to_dict(report: ModelReport) -> Dict[str, Any]:
    """JSON-ready view of a report (curve included, test scores omitted)."""
    return {
        "name": report.name,
        "config": report.search.config.describe(),
        "best_params": report.search.best_params,
        "cv_score": report.cv_score,
        "pr_auc": report.pr_auc,
        "curve": [
            {
                "threshold": point.threshold if math.isfinite(point.threshold) else None,
                "precision": point.precision,
                "recall": point.recall,
            }
            for point in report.curve
        ],
        "default_confusion": report.default_confusion.as_dict(),
        "optimized_confusion": report.optimized_confusion.as_dict(),
    }
