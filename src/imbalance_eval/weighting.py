"""
Class weighting as an alternative to resampling.

Each class receives ``0.5 / count(class)`` so the weights of all records in
a partition sum to 1 and both classes carry the same total influence.
Weighting and resampling are mutually exclusive within one training run.
"""

from typing import Any, Dict

import numpy as np

from imbalance_eval.dataset import MINORITY, Dataset
from imbalance_eval.exceptions import InsufficientSamplesError


def class_weights(partition: Dataset) -> Dict[Any, float]:
    """
    Per-class weight mapping keyed by the original label values.

    Raises:
        InsufficientSamplesError: If either class is absent from the
            partition, since its weight would be undefined.
    """
    if partition.minority_count == 0 or partition.majority_count == 0:
        raise InsufficientSamplesError(
            "Class weights need both classes present, got "
            f"{partition.minority_count} minority / {partition.majority_count} majority"
        )
    return {
        partition.majority_label: 0.5 / partition.majority_count,
        partition.minority_label: 0.5 / partition.minority_count,
    }


def sample_weights(partition: Dataset) -> np.ndarray:
    """Per-record weights aligned with the partition's rows."""
    weights = class_weights(partition)
    return np.where(
        partition.labels == MINORITY,
        weights[partition.minority_label],
        weights[partition.majority_label],
    ).astype(float)
