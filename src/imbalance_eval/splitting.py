"""
Stratified splitting for imbalanced datasets.

Provides the train/test split and the k-fold assignment used by the grid
search. Both keep the minority/majority ratio of every partition close to the
ratio of the input, and both are pure functions of their seed: two runs that
pass the same dataset, ``k`` and seed always produce the same folds, so
results for different resampling strategies are directly comparable.

Example:
    from imbalance_eval.splitting import stratified_split, stratified_kfold

    train, test = stratified_split(data, fraction=0.75, seed=42, min_class_count=5)
    folds = stratified_kfold(train, k=5, seed=42)
    for repeat, fold, train_idx, valid_idx in folds.splits():
        ...
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, train_test_split

from imbalance_eval.dataset import Dataset
from imbalance_eval.exceptions import InsufficientSamplesError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FoldAssignment:
    """
    Immutable mapping from record position to fold ID, one row per repeat.

    ``folds[r, i]`` is the fold that holds record ``i`` in repeat ``r``.
    """

    folds: np.ndarray
    k: int
    seed: int

    def __post_init__(self) -> None:
        folds = np.array(self.folds, dtype=np.int64, ndmin=2)
        folds.setflags(write=False)
        object.__setattr__(self, "folds", folds)

    @property
    def repeats(self) -> int:
        return self.folds.shape[0]

    @property
    def n_records(self) -> int:
        return self.folds.shape[1]

    def validation_indices(self, repeat: int, fold: int) -> np.ndarray:
        return np.flatnonzero(self.folds[repeat] == fold)

    def train_indices(self, repeat: int, fold: int) -> np.ndarray:
        return np.flatnonzero(self.folds[repeat] != fold)

    def splits(self) -> Iterator[Tuple[int, int, np.ndarray, np.ndarray]]:
        """Yield ``(repeat, fold, train_indices, validation_indices)``."""
        for repeat in range(self.repeats):
            for fold in range(self.k):
                yield (
                    repeat,
                    fold,
                    self.train_indices(repeat, fold),
                    self.validation_indices(repeat, fold),
                )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FoldAssignment):
            return NotImplemented
        return self.k == other.k and np.array_equal(self.folds, other.folds)

    def __hash__(self) -> int:
        return hash((self.k, self.folds.tobytes()))


def stratified_split(
    dataset: Dataset,
    fraction: float,
    seed: int,
    min_class_count: int = 0,
) -> Tuple[Dataset, Dataset]:
    """
    Split a dataset into two stratified partitions.

    Args:
        dataset: Records to split.
        fraction: Share of each class that goes to the first partition.
        seed: Random seed; identical seeds give identical partitions.
        min_class_count: Minimum records per class required in the first
            partition. Pass the fold count when the first partition will be
            cross-validated.

    Returns:
        Tuple ``(A, B)``; rows keep their relative order from ``dataset``.

    Raises:
        ValueError: If ``fraction`` is not strictly between 0 and 1.
        InsufficientSamplesError: If a class cannot be represented on both
            sides, or the first partition would hold fewer than
            ``min_class_count`` records of a class.
    """
    if not 0.0 < fraction < 1.0:
        raise ValueError(f"Split fraction must be between 0 and 1, got {fraction}")

    for name, count in (("minority", dataset.minority_count), ("majority", dataset.majority_count)):
        if count < 2:
            raise InsufficientSamplesError(
                f"Cannot stratify: {name} class has {count} record(s), need at least 2"
            )

    try:
        idx_a, idx_b = train_test_split(
            np.arange(dataset.n_records),
            train_size=fraction,
            stratify=dataset.labels,
            random_state=seed,
        )
    except ValueError as e:
        raise InsufficientSamplesError(f"Cannot stratify split: {e}") from e

    part_a = dataset.subset(np.sort(idx_a))
    part_b = dataset.subset(np.sort(idx_b))

    for name, count in (("minority", part_a.minority_count), ("majority", part_a.majority_count)):
        if count < min_class_count:
            raise InsufficientSamplesError(
                f"Split leaves {count} {name} record(s) in the first partition, "
                f"need at least {min_class_count}"
            )

    logger.info(
        f"Stratified split (fraction={fraction}, seed={seed}): "
        f"A={part_a.n_records} records ({part_a.minority_fraction * 100:.2f}% minority), "
        f"B={part_b.n_records} records ({part_b.minority_fraction * 100:.2f}% minority)"
    )
    return part_a, part_b


def stratified_kfold(dataset: Dataset, k: int, seed: int, repeats: int = 1) -> FoldAssignment:
    """
    Assign every record to one of ``k`` stratified folds, ``repeats`` times.

    Each repeat shuffles with ``seed + repeat``. Class members are dealt out
    evenly, so every fold receives at least one minority record whenever the
    minority count is at least ``k``.

    Raises:
        ValueError: If ``k < 2`` or ``repeats < 1``.
        InsufficientSamplesError: If either class has fewer than ``k`` records.
    """
    if k < 2:
        raise ValueError(f"Fold count must be at least 2, got {k}")
    if repeats < 1:
        raise ValueError(f"Repeat count must be at least 1, got {repeats}")

    for name, count in (("minority", dataset.minority_count), ("majority", dataset.majority_count)):
        if count < k:
            raise InsufficientSamplesError(
                f"Cannot build {k} stratified folds: {name} class has only {count} record(s)"
            )

    folds = np.empty((repeats, dataset.n_records), dtype=np.int64)
    placeholder = np.zeros(dataset.n_records)
    for repeat in range(repeats):
        splitter = StratifiedKFold(n_splits=k, shuffle=True, random_state=seed + repeat)
        for fold, (_, valid_idx) in enumerate(splitter.split(placeholder, dataset.labels)):
            folds[repeat, valid_idx] = fold

    assignment = FoldAssignment(folds=folds, k=k, seed=seed)
    logger.info(
        f"Built {k}-fold assignment x {repeats} repeat(s) over {dataset.n_records} records (seed={seed})"
    )
    return assignment


def class_balance_report(partitions: Dict[str, Dataset]) -> pd.DataFrame:
    """
    Summarize class counts for named partitions.

    Returns:
        DataFrame with one row per partition and columns ``records``,
        ``minority``, ``majority`` and ``minority_fraction``.
    """
    rows = []
    for name, part in partitions.items():
        rows.append({
            "partition": name,
            "records": part.n_records,
            "minority": part.minority_count,
            "majority": part.majority_count,
            "minority_fraction": part.minority_fraction,
        })
        logger.info(
            f"  {name}: {part.n_records} records, {part.minority_count} minority "
            f"({part.minority_fraction * 100:.2f}%)"
        )
    return pd.DataFrame(rows, columns=["partition", "records", "minority", "majority",
                                       "minority_fraction"])
