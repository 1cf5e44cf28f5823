"""
Cross-validated hyperparameter grid search for imbalanced data.

This module provides the :class:`GridSearchEngine`, which evaluates every
hyperparameter candidate on ``n_repeats x n_folds`` stratified folds, applies
the configured imbalance remediation (resampling or class weights) to the
training side of each fold only, scores the untouched validation side with a
metric function (PR-AUC by default) and retrains the winning candidate on the
full training set.

Validation folds are never resampled or reweighted. Doing so would let
synthetic or duplicated minority records leak into the scores.

Example:
    from imbalance_eval.config import SearchConfig
    from imbalance_eval.grid_search import GridSearchEngine
    from imbalance_eval.trainers import XGBoostTrainer

    config = SearchConfig(
        name="smote",
        param_grid={"max_depth": [3, 5, 7], "learning_rate": [0.01, 0.1]},
        n_folds=5,
        strategy="smote",
    )
    engine = GridSearchEngine(trainer=XGBoostTrainer())
    result = engine.search(train_data, config)
    print(result.best_params, result.best_score)
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from imbalance_eval.config import ParamGrid, SearchConfig
from imbalance_eval.dataset import Dataset
from imbalance_eval.exceptions import (
    ConflictingStrategyError,
    InsufficientMinorityError,
    NoViableModelError,
    SearchCancelledError,
    TrainerFailure,
)
from imbalance_eval.metrics import pr_auc_score
from imbalance_eval.pool import WorkerPool
from imbalance_eval.resampling import Strategy, resample
from imbalance_eval.splitting import FoldAssignment, stratified_kfold
from imbalance_eval.weighting import sample_weights

logger = logging.getLogger(__name__)

MetricFn = Callable[[Any, Any], float]

STATUS_OK = "ok"
STATUS_FAILED = "failed"

# SeedSequence key for the final refit on the whole training set
_FINAL_FIT_KEY = 2 ** 31 - 1


def derive_seed(seed: int, *keys: int) -> int:
    """Independent, reproducible child seed for a (repeat, fold) pair."""
    return int(np.random.SeedSequence([seed, *keys]).generate_state(1)[0])


@dataclass(frozen=True)
class FoldData:
    """Training side (remediated) and validation side (untouched) of a fold."""

    repeat: int
    fold: int
    train: Dataset
    validation: Dataset
    weights: Optional[np.ndarray] = None


@dataclass(frozen=True)
class FoldOutcome:
    candidate: int
    repeat: int
    fold: int
    score: float
    status: str
    error: Optional[str] = None


@dataclass
class SearchResult:
    """
    Outcome of a grid search.

    Attributes:
        best_model: Winning candidate refitted on the full training set.
        best_params: Winning hyperparameters.
        best_score: Winning mean cross-validated score.
        per_fold_scores: One row per (candidate, repeat, fold) with the score,
            status and error message of failed fits.
        summary: One row per candidate with mean/std score and fold counts.
        config: Configuration the search ran with.
        folds: Fold assignment used by every candidate.
    """

    best_model: Any
    best_params: Dict[str, Any]
    best_score: float
    per_fold_scores: pd.DataFrame
    summary: pd.DataFrame
    config: SearchConfig
    folds: FoldAssignment = field(repr=False, default=None)

    @property
    def best_candidate(self) -> int:
        return int(self.summary.loc[self.summary["selected"], "candidate"].iloc[0])

    def best_fold_scores(self) -> pd.Series:
        """Per-fold scores of the winning candidate, indexed by (repeat, fold)."""
        rows = self.per_fold_scores[self.per_fold_scores["candidate"] == self.best_candidate]
        return rows.set_index(["repeat", "fold"])["score"]


def remediate(partition: Dataset, config: SearchConfig, seed: int) -> Tuple[Dataset, Optional[np.ndarray]]:
    """
    Apply the configured imbalance remediation to a training partition.

    Returns:
        ``(partition, weights)``: resampled partition with no weights, or the
        original partition with per-record class weights.
    """
    if config.class_weights:
        if config.strategy is not Strategy.NONE:
            raise ConflictingStrategyError(
                f"Config '{config.name}' requests both resampling and class weights"
            )
        return partition, sample_weights(partition)
    return resample(partition, config.strategy, seed=seed,
                    smote_neighbors=config.smote_neighbors), None


def check_feasible(data: Dataset, config: SearchConfig) -> FoldAssignment:
    """
    Build the fold assignment for ``config`` and verify the configured
    remediation can run on every training fold, without training anything.

    Raises:
        ConflictingStrategyError: If the config mixes resampling and weights.
        InsufficientSamplesError: If the data cannot be stratified into folds.
        InsufficientMinorityError: If SMOTE cannot run on a training fold.
    """
    config.validate()
    folds = stratified_kfold(data, k=config.n_folds, seed=config.seed, repeats=config.n_repeats)
    if config.strategy is Strategy.SMOTE:
        for repeat, fold, train_idx, _ in folds.splits():
            minority = int(data.labels[train_idx].sum())
            if minority <= config.smote_neighbors:
                raise InsufficientMinorityError(
                    f"Training fold (repeat {repeat}, fold {fold}) has {minority} "
                    f"minority records; SMOTE needs more than {config.smote_neighbors}"
                )
    return folds


def prepare_folds(data: Dataset, folds: FoldAssignment, config: SearchConfig) -> List[FoldData]:
    """
    Materialize every fold, remediating only the training side.

    Runs before any training.
    """
    prepared = []
    for repeat, fold, train_idx, valid_idx in folds.splits():
        train_part = data.subset(train_idx)
        remediated, weights = remediate(train_part, config, derive_seed(config.seed, repeat, fold))
        prepared.append(FoldData(
            repeat=repeat,
            fold=fold,
            train=remediated,
            validation=data.subset(valid_idx),
            weights=weights,
        ))
    return prepared


def _evaluate_fold(
    trainer: Any,
    metric_fn: MetricFn,
    candidate: int,
    params: Dict[str, Any],
    fold_data: FoldData,
) -> FoldOutcome:
    """Fit one candidate on one fold and score its validation side."""
    try:
        model = trainer.fit(fold_data.train.features, fold_data.train.labels,
                            fold_data.weights, params)
        scores = trainer.predict_proba(model, fold_data.validation.features)
        score = float(metric_fn(fold_data.validation.labels, scores))
        if math.isnan(score):
            raise ValueError("metric returned NaN")
    except Exception as e:
        failure = TrainerFailure(f"{type(e).__name__}: {e}", params=params,
                                 repeat=fold_data.repeat, fold=fold_data.fold)
        return FoldOutcome(candidate, fold_data.repeat, fold_data.fold,
                           float("nan"), STATUS_FAILED, str(failure))
    return FoldOutcome(candidate, fold_data.repeat, fold_data.fold, score, STATUS_OK)


def _summarize(candidates: List[Dict[str, Any]], outcomes: List[FoldOutcome]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    per_fold = pd.DataFrame(
        [
            {
                "candidate": o.candidate,
                "params": candidates[o.candidate],
                "repeat": o.repeat,
                "fold": o.fold,
                "score": o.score,
                "status": o.status,
                "error": o.error,
            }
            for o in outcomes
        ],
        columns=["candidate", "params", "repeat", "fold", "score", "status", "error"],
    )

    rows = []
    for index, params in enumerate(candidates):
        mine = per_fold[per_fold["candidate"] == index]
        ok = mine[mine["status"] == STATUS_OK]["score"]
        row = {"candidate": index}
        row.update(params)
        row.update({
            "mean_score": float(ok.mean()) if len(ok) else float("nan"),
            "std_score": float(ok.std(ddof=1)) if len(ok) > 1 else float("nan"),
            "n_ok": int(len(ok)),
            "n_failed": int(len(mine) - len(ok)),
        })
        rows.append(row)
    return per_fold, pd.DataFrame(rows)


def _select_best(summary: pd.DataFrame) -> Optional[int]:
    """Highest mean score; the earliest candidate in grid order wins ties."""
    best_index = None
    best_score = -math.inf
    for row in summary.itertuples(index=False):
        if math.isnan(row.mean_score):
            continue
        if row.mean_score > best_score:
            best_score = row.mean_score
            best_index = row.candidate
    return best_index


class GridSearchEngine:
    """
    Cross-validated grid search with per-fold imbalance remediation.

    Args:
        trainer: Object exposing ``fit(features, labels, weights, params)``
            and ``predict_proba(model, features)``.
        pool: Acquired :class:`WorkerPool` shared across the searches of a
            session. When omitted, each search acquires and releases its own
            pool sized by the configuration.
    """

    def __init__(self, trainer: Any, pool: Optional[WorkerPool] = None) -> None:
        self.trainer = trainer
        self.pool = pool

    def search(
        self,
        train_data: Dataset,
        config: SearchConfig,
        metric_fn: MetricFn = pr_auc_score,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchResult:
        """
        Evaluate every candidate of ``config.param_grid`` and refit the best.

        Args:
            train_data: Training partition; the test set must not be passed here.
            config: Search configuration.
            metric_fn: ``metric_fn(labels, scores) -> float``, higher is better.
            cancel_event: Cooperative cancellation flag checked between task
                batches.

        Returns:
            SearchResult for the winning candidate.

        Raises:
            ConflictingStrategyError: If the config mixes resampling and weights.
            InsufficientSamplesError: If the data cannot be stratified into folds.
            InsufficientMinorityError: If SMOTE cannot run on a training fold.
            NoViableModelError: If every candidate failed on every fold.
            SearchCancelledError: If the search was cancelled.
            TrainerFailure: If the final refit of the winner fails.
        """
        folds = check_feasible(train_data, config)
        fold_data = prepare_folds(train_data, folds, config)
        candidates = config.candidates()

        logger.info(
            f"Search '{config.name}': {len(candidates)} candidate(s) x {config.n_folds} folds "
            f"x {config.n_repeats} repeat(s), remediation={config.remediation}"
        )

        tasks = [
            (self.trainer, metric_fn, index, params, fd)
            for index, params in enumerate(candidates)
            for fd in fold_data
        ]
        outcomes = self._run(tasks, config, cancel_event)
        if len(outcomes) < len(tasks):
            raise SearchCancelledError(
                f"Search '{config.name}' cancelled after {len(outcomes)} of {len(tasks)} fold fits"
            )

        per_fold, summary = _summarize(candidates, outcomes)
        for outcome in outcomes:
            if outcome.status == STATUS_FAILED:
                logger.warning(f"Fold fit failed and was excluded: {outcome.error}")
        for row in summary.itertuples(index=False):
            logger.info(
                f"  candidate {row.candidate} {candidates[row.candidate]}: "
                f"mean={row.mean_score:.4f} ok={row.n_ok} failed={row.n_failed}"
            )

        best = _select_best(summary)
        if best is None:
            raise NoViableModelError(
                f"Search '{config.name}': all {len(candidates)} candidate(s) failed on every fold"
            )
        summary["selected"] = summary["candidate"] == best
        best_params = candidates[best]
        best_score = float(summary.loc[summary["candidate"] == best, "mean_score"].iloc[0])

        best_model = self._refit(train_data, config, best_params)
        logger.info(f"Search '{config.name}' selected {best_params} (mean score {best_score:.4f})")

        return SearchResult(
            best_model=best_model,
            best_params=best_params,
            best_score=best_score,
            per_fold_scores=per_fold,
            summary=summary,
            config=config,
            folds=folds,
        )

    def _run(
        self,
        tasks: List[Tuple[Any, ...]],
        config: SearchConfig,
        cancel_event: Optional[threading.Event],
    ) -> List[FoldOutcome]:
        if self.pool is not None:
            if not self.pool.active:
                raise RuntimeError("Worker pool passed to the search engine has not been acquired")
            return self.pool.run(_evaluate_fold, tasks, cancel_event)
        with WorkerPool(max_workers=config.max_workers, backend=config.backend) as pool:
            return pool.run(_evaluate_fold, tasks, cancel_event)

    def _refit(self, train_data: Dataset, config: SearchConfig, params: Dict[str, Any]) -> Any:
        remediated, weights = remediate(train_data, config, derive_seed(config.seed, _FINAL_FIT_KEY))
        try:
            return self.trainer.fit(remediated.features, remediated.labels, weights, params)
        except TrainerFailure:
            raise
        except Exception as e:
            raise TrainerFailure(
                f"Refit of the selected candidate failed: {type(e).__name__}: {e}",
                params=params,
            ) from e


def search(
    train_data: Dataset,
    grid: ParamGrid,
    k: int,
    repeats: int,
    strategy: Union[str, Strategy],
    metric_fn: MetricFn,
    trainer: Any,
    class_weights: bool = False,
    seed: int = 42,
    pool: Optional[WorkerPool] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
    backend: str = "loky",
) -> Tuple[Any, Dict[str, Any], pd.DataFrame]:
    """
    Functional form of :meth:`GridSearchEngine.search`.

    ``strategy`` may be ``"weights"`` to request class weighting instead of a
    resampling strategy.

    Returns:
        ``(best_model, best_params, per_fold_scores)``.
    """
    if isinstance(strategy, str) and strategy.strip().lower() == "weights":
        class_weights = True
        strategy = Strategy.NONE
    config = SearchConfig(
        name=str(getattr(strategy, "value", strategy)),
        param_grid=grid,
        n_folds=k,
        n_repeats=repeats,
        strategy=strategy,
        class_weights=class_weights,
        seed=seed,
        max_workers=max_workers,
        backend=backend,
    )
    result = GridSearchEngine(trainer=trainer, pool=pool).search(
        train_data, config, metric_fn=metric_fn, cancel_event=cancel_event,
    )
    return result.best_model, result.best_params, result.per_fold_scores
