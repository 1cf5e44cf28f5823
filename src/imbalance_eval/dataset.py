"""
Dataset schema and container for imbalanced binary classification data.

A :class:`DatasetSchema` names the ordered feature columns, the label column
and which label value is the minority (positive) class. :func:`load_dataset`
validates a DataFrame against the schema once and produces a read-only
:class:`Dataset` whose labels are encoded as ``1`` (minority) and ``0``
(majority).

Example:
    from imbalance_eval.dataset import DatasetSchema, load_dataset

    schema = DatasetSchema(
        feature_columns=("V1", "V2", "Amount"),
        label_column="Class",
        minority_label=1,
    )
    data = load_dataset(df, schema)
    print(data.n_records, data.minority_fraction)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from imbalance_eval.exceptions import SchemaError

logger = logging.getLogger(__name__)

MINORITY = 1
MAJORITY = 0

# Marks rows that were synthesized rather than drawn from the source data
SYNTHETIC_ORIGIN = -1


@dataclass(frozen=True)
class DatasetSchema:
    """Explicit column layout: ordered features plus one binary label."""

    feature_columns: Tuple[str, ...]
    label_column: str
    minority_label: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_columns", tuple(self.feature_columns))
        if not self.feature_columns:
            raise SchemaError("Schema must declare at least one feature column")
        if self.label_column in self.feature_columns:
            raise SchemaError(
                f"Label column '{self.label_column}' cannot also be a feature column"
            )
        if len(set(self.feature_columns)) != len(self.feature_columns):
            raise SchemaError("Schema feature columns must be unique")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DatasetSchema":
        """Build a schema from a plain mapping (e.g. a parsed YAML section)."""
        for key in ("feature_columns", "label_column", "minority_label"):
            if key not in raw:
                raise SchemaError(f"Dataset schema missing required field: '{key}'")
        if not isinstance(raw["feature_columns"], (list, tuple)):
            raise SchemaError(
                "Dataset schema field 'feature_columns' must be a list, "
                f"got {type(raw['feature_columns']).__name__}"
            )
        return cls(
            feature_columns=tuple(raw["feature_columns"]),
            label_column=raw["label_column"],
            minority_label=raw["minority_label"],
        )


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class Dataset:
    """
    Feature matrix paired with encoded binary labels.

    ``origin`` maps each row back to its position in the dataset that was
    loaded; synthesized rows carry :data:`SYNTHETIC_ORIGIN`. Instances are
    treated as read-only: every transformation returns a new Dataset.
    """

    features: pd.DataFrame
    labels: np.ndarray
    schema: DatasetSchema
    majority_label: Any
    origin: np.ndarray = field(default=None)

    def __post_init__(self) -> None:
        labels = np.asarray(self.labels, dtype=np.int8)
        if len(labels) != len(self.features):
            raise SchemaError(
                f"Feature rows ({len(self.features)}) and labels ({len(labels)}) differ in length"
            )
        object.__setattr__(self, "labels", _readonly(labels))
        if self.origin is None:
            origin = np.arange(len(labels), dtype=np.int64)
        else:
            origin = np.asarray(self.origin, dtype=np.int64)
        object.__setattr__(self, "origin", _readonly(origin))

    @property
    def n_records(self) -> int:
        return len(self.labels)

    @property
    def minority_count(self) -> int:
        return int(self.labels.sum())

    @property
    def majority_count(self) -> int:
        return self.n_records - self.minority_count

    @property
    def minority_fraction(self) -> float:
        if self.n_records == 0:
            return 0.0
        return self.minority_count / self.n_records

    @property
    def minority_label(self) -> Any:
        return self.schema.minority_label

    @property
    def numeric_columns(self) -> Tuple[str, ...]:
        return tuple(self.features.select_dtypes(include="number").columns)

    def counts(self) -> Dict[Any, int]:
        """Record count per original label value."""
        return {
            self.majority_label: self.majority_count,
            self.minority_label: self.minority_count,
        }

    def decode_labels(self) -> np.ndarray:
        """Labels mapped back to their original values."""
        return np.where(self.labels == MINORITY, self.minority_label, self.majority_label)

    def subset(self, indices: Iterable[int]) -> "Dataset":
        """Rows at the given positions, in the given order."""
        positions = np.asarray(indices, dtype=np.int64)
        return self._replace(
            features=self.features.iloc[positions].reset_index(drop=True),
            labels=self.labels[positions],
            origin=self.origin[positions],
        )

    def with_rows(
        self,
        features: pd.DataFrame,
        labels: np.ndarray,
        origin: np.ndarray,
    ) -> "Dataset":
        """New dataset sharing this one's schema."""
        return self._replace(
            features=features.reset_index(drop=True),
            labels=labels,
            origin=origin,
        )

    def _replace(self, **changes: Any) -> "Dataset":
        values = {
            "features": self.features,
            "labels": self.labels,
            "schema": self.schema,
            "majority_label": self.majority_label,
            "origin": self.origin,
        }
        values.update(changes)
        return Dataset(**values)

    def equals(self, other: "Dataset") -> bool:
        """Row-for-row equality of features, labels and origin."""
        return (
            self.features.equals(other.features)
            and np.array_equal(self.labels, other.labels)
            and np.array_equal(self.origin, other.origin)
        )


def concat_datasets(parts: Sequence[Dataset]) -> Dataset:
    """Stack partitions that share a schema into one dataset."""
    if not parts:
        raise ValueError("concat_datasets requires at least one partition")
    first = parts[0]
    return first.with_rows(
        features=pd.concat([p.features for p in parts], ignore_index=True),
        labels=np.concatenate([p.labels for p in parts]),
        origin=np.concatenate([p.origin for p in parts]),
    )


def load_dataset(frame: pd.DataFrame, schema: DatasetSchema) -> Dataset:
    """
    Validate a DataFrame against a schema and build a Dataset.

    Args:
        frame: Raw records; extra columns are ignored.
        schema: Column layout and minority label.

    Returns:
        Dataset with features in schema order and labels encoded 1/0.

    Raises:
        SchemaError: If columns are missing, labels contain nulls, the label
            column does not hold exactly two values, or the minority label
            is absent.
    """
    missing = [c for c in schema.feature_columns if c not in frame.columns]
    if missing:
        raise SchemaError(f"Required feature columns not found in dataset: {missing}")
    if schema.label_column not in frame.columns:
        raise SchemaError(f"Label column '{schema.label_column}' not found in dataset")

    raw_labels = frame[schema.label_column]
    if raw_labels.isna().any():
        raise SchemaError(
            f"Label column '{schema.label_column}' contains {int(raw_labels.isna().sum())} missing values"
        )

    values = list(pd.unique(raw_labels))
    if len(values) != 2:
        raise SchemaError(
            f"Label column '{schema.label_column}' must hold exactly two values, got {len(values)}: {values[:5]}"
        )
    if schema.minority_label not in values:
        raise SchemaError(
            f"Minority label {schema.minority_label!r} not present in label column "
            f"'{schema.label_column}' (values: {values})"
        )
    majority_label = values[0] if values[1] == schema.minority_label else values[1]

    labels = (raw_labels.to_numpy() == schema.minority_label).astype(np.int8)
    dataset = Dataset(
        features=frame.loc[:, list(schema.feature_columns)].reset_index(drop=True),
        labels=labels,
        schema=schema,
        majority_label=majority_label,
    )

    logger.info(
        f"Loaded {dataset.n_records} records: {dataset.minority_count} minority "
        f"({dataset.minority_fraction * 100:.2f}%), {dataset.majority_count} majority"
    )
    if dataset.minority_count > dataset.majority_count:
        logger.warning(
            f"Declared minority label {schema.minority_label!r} is the more frequent class "
            f"({dataset.minority_count} vs {dataset.majority_count})"
        )
    return dataset


def read_csv_dataset(path: str, schema: DatasetSchema, **read_kwargs: Any) -> Dataset:
    """Read a CSV file with pandas and validate it against ``schema``."""
    logger.info(f"Loading dataset from {path}")
    try:
        frame = pd.read_csv(path, **read_kwargs)
    except Exception as e:
        logger.error(f"Failed to load dataset from {path}: {str(e)}")
        raise
    return load_dataset(frame, schema)


def from_arrays(
    features: Any,
    labels: Any,
    feature_names: Optional[Sequence[str]] = None,
    minority_label: Any = 1,
) -> Dataset:
    """Convenience loader for a numeric matrix and a label vector."""
    matrix = np.asarray(features)
    if matrix.ndim != 2:
        raise SchemaError(f"Feature matrix must be 2-dimensional, got shape {matrix.shape}")
    names = list(feature_names) if feature_names is not None else [
        f"x{i}" for i in range(matrix.shape[1])
    ]
    frame = pd.DataFrame(matrix, columns=names)
    frame["label"] = np.asarray(labels)
    schema = DatasetSchema(feature_columns=tuple(names), label_column="label",
                           minority_label=minority_label)
    return load_dataset(frame, schema)
