"""
Class-imbalance resampling strategies for training partitions.

Every strategy takes a training partition and returns a new one; none of them
read anything outside the partition they are given, and the grid search only
ever hands them the training side of a fold. Validation and test partitions
keep their original class distribution.

Strategies:
    none:   identity
    up:     duplicate minority records (with replacement) up to the majority count
    down:   keep a random majority subset the size of the minority class
    smote:  interpolate synthetic minority records between minority neighbours

Up-sampled duplicates are exact copies and may encourage overfitting; down
sampling throws majority information away. Both effects are accepted.

Example:
    from imbalance_eval.resampling import Strategy, resample

    balanced = resample(train_part, Strategy.SMOTE, seed=7, smote_neighbors=5)
"""

import logging
from enum import Enum
from typing import Dict, Union

import numpy as np
import pandas as pd
from sklearn.neighbors import NearestNeighbors

from imbalance_eval.dataset import MAJORITY, MINORITY, SYNTHETIC_ORIGIN, Dataset, concat_datasets
from imbalance_eval.exceptions import InsufficientMinorityError

logger = logging.getLogger(__name__)

DEFAULT_SMOTE_NEIGHBORS = 5


class Strategy(str, Enum):
    """Resampling strategy identifiers."""

    NONE = "none"
    UP = "up"
    DOWN = "down"
    SMOTE = "smote"

    @classmethod
    def parse(cls, value: Union[str, "Strategy", None]) -> "Strategy":
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown resampling strategy '{value}'; expected one of: {valid}")


def _class_positions(partition: Dataset) -> Dict[int, np.ndarray]:
    return {
        MINORITY: np.flatnonzero(partition.labels == MINORITY),
        MAJORITY: np.flatnonzero(partition.labels == MAJORITY),
    }


def _require_minority(partition: Dataset, strategy: str) -> None:
    if partition.minority_count == 0:
        raise InsufficientMinorityError(
            f"Cannot apply '{strategy}' resampling: partition has no minority records"
        )


def no_resampling(partition: Dataset) -> Dataset:
    """Return the partition unchanged."""
    return partition


def up_sample(partition: Dataset, seed: int) -> Dataset:
    """
    Duplicate minority records until both classes have the same count.

    Original rows are kept in place; duplicates drawn with replacement are
    appended after them.
    """
    _require_minority(partition, Strategy.UP.value)
    positions = _class_positions(partition)
    extra = partition.majority_count - partition.minority_count
    if extra <= 0:
        return partition

    rng = np.random.default_rng(seed)
    draws = rng.choice(positions[MINORITY], size=extra, replace=True)
    result = concat_datasets([partition, partition.subset(draws)])

    logger.debug(
        f"Up-sampled minority {partition.minority_count} -> {result.minority_count} "
        f"(majority {result.majority_count})"
    )
    return result


def down_sample(partition: Dataset, seed: int) -> Dataset:
    """
    Keep a random majority subset (without replacement) the size of the
    minority class and discard the remaining majority records.
    """
    _require_minority(partition, Strategy.DOWN.value)
    positions = _class_positions(partition)
    if partition.majority_count <= partition.minority_count:
        return partition

    rng = np.random.default_rng(seed)
    kept = rng.choice(positions[MAJORITY], size=partition.minority_count, replace=False)
    result = partition.subset(np.sort(np.concatenate([positions[MINORITY], kept])))

    logger.debug(
        f"Down-sampled majority {partition.majority_count} -> {result.majority_count} "
        f"(minority {result.minority_count})"
    )
    return result


def smote(partition: Dataset, k_neighbors: int = DEFAULT_SMOTE_NEIGHBORS, seed: int = 0) -> Dataset:
    """
    Synthetic Minority Over-sampling.

    Synthetic records are spread round-robin over the minority records (in a
    seeded random order). Each one lies on the segment between its base
    record and one of the base's ``k_neighbors`` nearest minority neighbours,
    at a fraction drawn uniformly from [0, 1). Distances are Euclidean over
    the numeric feature columns; non-numeric columns copy the value of the
    endpoint the fraction is nearer to.

    Args:
        partition: Training partition.
        k_neighbors: Neighbour count per minority record.
        seed: Random seed.

    Returns:
        The partition with synthetic minority records appended, so that both
        classes have the same count.

    Raises:
        ValueError: If ``k_neighbors < 1`` or the partition has no numeric
            features.
        InsufficientMinorityError: If the minority count is not greater than
            ``k_neighbors``.
    """
    if k_neighbors < 1:
        raise ValueError(f"SMOTE neighbour count must be at least 1, got {k_neighbors}")
    if partition.minority_count <= k_neighbors:
        raise InsufficientMinorityError(
            f"SMOTE needs more than {k_neighbors} minority records to find "
            f"{k_neighbors} neighbours, partition has {partition.minority_count}"
        )

    n_new = partition.majority_count - partition.minority_count
    if n_new <= 0:
        return partition

    numeric = list(partition.numeric_columns)
    if not numeric:
        raise ValueError("SMOTE requires at least one numeric feature column")

    minority = partition.subset(_class_positions(partition)[MINORITY])
    points = minority.features[numeric].to_numpy(dtype=float)

    # kneighbors() without a query excludes each point from its own neighbours
    neighbours = NearestNeighbors(n_neighbors=k_neighbors).fit(points).kneighbors(
        return_distance=False
    )

    rng = np.random.default_rng(seed)
    order = rng.permutation(minority.n_records)
    base = order[np.arange(n_new) % minority.n_records]
    partner = neighbours[base, rng.integers(0, k_neighbors, size=n_new)]
    gap = rng.random(n_new)

    columns = {}
    for name in minority.features.columns:
        if name in numeric:
            column = points[:, numeric.index(name)]
            columns[name] = column[base] + gap * (column[partner] - column[base])
        else:
            column = minority.features[name].to_numpy()
            columns[name] = np.where(gap < 0.5, column[base], column[partner])

    frame = pd.DataFrame(columns, columns=minority.features.columns)
    for name in frame.columns:
        if name not in numeric:
            frame[name] = frame[name].astype(minority.features[name].dtype)

    synthetic = partition.with_rows(
        features=frame,
        labels=np.full(n_new, MINORITY, dtype=np.int8),
        origin=np.full(n_new, SYNTHETIC_ORIGIN, dtype=np.int64),
    )
    result = concat_datasets([partition, synthetic])

    logger.debug(
        f"SMOTE (k={k_neighbors}) added {n_new} synthetic minority records "
        f"({partition.minority_count} -> {result.minority_count})"
    )
    return result


def resample(
    partition: Dataset,
    strategy: Union[str, Strategy],
    seed: int,
    smote_neighbors: int = DEFAULT_SMOTE_NEIGHBORS,
) -> Dataset:
    """Apply a resampling strategy to a training partition."""
    strategy = Strategy.parse(strategy)
    if strategy is Strategy.NONE:
        return no_resampling(partition)
    if strategy is Strategy.UP:
        return up_sample(partition, seed)
    if strategy is Strategy.DOWN:
        return down_sample(partition, seed)
    return smote(partition, k_neighbors=smote_neighbors, seed=seed)
