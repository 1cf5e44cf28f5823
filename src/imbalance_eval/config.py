"""
Immutable run configuration for cross-validated searches.

A :class:`SearchConfig` enumerates every option the grid search recognizes.
It is built once per run, validated on construction (conflicting strategies
are rejected here, before any training) and never mutated afterwards.

Configurations can be written as YAML::

    dataset:
      path: data/transactions.csv
      feature_columns: [V1, V2, Amount]
      label_column: Class
      minority_label: 1
    split:
      train_fraction: 0.75
      seed: 42
    search:
      n_folds: 5
      n_repeats: 1
      seed: 42
      param_grid:
        max_depth: [1, 5, 9]
        n_estimators: [50, 100, 150]
    strategies:
      original: {}
      weighted: {class_weights: true}
      down: {strategy: down}
      up: {strategy: up}
      smote: {strategy: smote, smote_neighbors: 5}

Example:
    from imbalance_eval.config import load_experiment

    experiment = load_experiment("experiment.yaml")
    for name, config in experiment.searches.items():
        print(name, config.strategy, config.class_weights)
"""

import dataclasses
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from imbalance_eval.dataset import DatasetSchema
from imbalance_eval.exceptions import ConflictingStrategyError
from imbalance_eval.resampling import DEFAULT_SMOTE_NEIGHBORS, Strategy

DEFAULT_SEED = 42
DEFAULT_TRAIN_FRACTION = 0.75
JOBLIB_BACKENDS = ("loky", "threading", "multiprocessing", "sequential")

ParamGrid = Union[Mapping[str, Sequence[Any]], Sequence[Mapping[str, Any]]]
Candidate = Tuple[Tuple[str, Any], ...]


def expand_grid(param_grid: Optional[ParamGrid]) -> Tuple[Candidate, ...]:
    """
    Expand a grid into an ordered tuple of candidates.

    A mapping of name -> values is expanded as a cartesian product with the
    first name varying slowest; a sequence of mappings is taken as-is. An
    empty or missing grid yields one candidate with no parameters.

    Raises:
        ValueError: If a parameter has no values, or the grid has a shape
            other than the two above.
    """
    if not param_grid:
        return ((),)

    if isinstance(param_grid, Mapping):
        names = list(param_grid.keys())
        values = []
        for name in names:
            options = param_grid[name]
            if isinstance(options, (str, bytes)) or not isinstance(options, Sequence):
                options = [options]
            if len(options) == 0:
                raise ValueError(f"Hyperparameter '{name}' has no candidate values")
            values.append(list(options))
        return tuple(tuple(zip(names, combo)) for combo in itertools.product(*values))

    candidates = []
    for entry in param_grid:
        if not isinstance(entry, Mapping):
            raise ValueError(
                f"Grid entries must be mappings of parameter values, got {type(entry).__name__}"
            )
        candidates.append(tuple(entry.items()))
    if not candidates:
        return ((),)
    return tuple(candidates)


@dataclass(frozen=True)
class SearchConfig:
    """
    Every option recognized by the grid search.

    Attributes:
        name: Label used in logs and reports.
        param_grid: Expanded candidates (see :func:`expand_grid`).
        n_folds: Folds per repeat.
        n_repeats: Cross-validation repeats.
        strategy: Resampling applied to training folds.
        class_weights: Weight training records by ``0.5 / class count``.
        smote_neighbors: Neighbour count for SMOTE.
        seed: Seeds fold generation and resampling.
        max_workers: Worker pool size (None means one per CPU core).
        backend: joblib backend used by the worker pool.
    """

    name: str = "baseline"
    param_grid: Tuple[Candidate, ...] = field(default=((),))
    n_folds: int = 5
    n_repeats: int = 1
    strategy: Strategy = Strategy.NONE
    class_weights: bool = False
    smote_neighbors: int = DEFAULT_SMOTE_NEIGHBORS
    seed: int = DEFAULT_SEED
    max_workers: Optional[int] = None
    backend: str = "loky"

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        if not (isinstance(self.param_grid, tuple)
                and all(isinstance(c, tuple) for c in self.param_grid)):
            object.__setattr__(self, "param_grid", expand_grid(self.param_grid))
        self.validate()

    def validate(self) -> None:
        """
        Check option ranges and strategy compatibility.

        Raises:
            ConflictingStrategyError: If a resampling strategy and class
                weights are both requested.
            ValueError: If an option is out of range.
        """
        if self.class_weights and self.strategy is not Strategy.NONE:
            raise ConflictingStrategyError(
                f"Config '{self.name}' requests both '{self.strategy.value}' resampling and "
                "class weights; choose one"
            )
        if self.n_folds < 2:
            raise ValueError(f"n_folds must be at least 2, got {self.n_folds}")
        if self.n_repeats < 1:
            raise ValueError(f"n_repeats must be at least 1, got {self.n_repeats}")
        if self.smote_neighbors < 1:
            raise ValueError(f"smote_neighbors must be at least 1, got {self.smote_neighbors}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.backend not in JOBLIB_BACKENDS:
            raise ValueError(
                f"backend must be one of {JOBLIB_BACKENDS}, got '{self.backend}'"
            )
        if not self.param_grid:
            raise ValueError("param_grid must contain at least one candidate")

    def candidates(self) -> List[Dict[str, Any]]:
        """Fresh parameter dicts, in grid order."""
        return [dict(c) for c in self.param_grid]

    @property
    def n_tasks(self) -> int:
        return len(self.param_grid) * self.n_folds * self.n_repeats

    @property
    def remediation(self) -> str:
        """Short description of how imbalance is handled."""
        if self.class_weights:
            return "weights"
        return self.strategy.value

    def replace(self, **changes: Any) -> "SearchConfig":
        """Copy with some options changed; the original is untouched."""
        return dataclasses.replace(self, **changes)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "n_folds": self.n_folds,
            "n_repeats": self.n_repeats,
            "strategy": self.strategy.value,
            "class_weights": self.class_weights,
            "smote_neighbors": self.smote_neighbors,
            "seed": self.seed,
            "n_candidates": len(self.param_grid),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], name: Optional[str] = None) -> "SearchConfig":
        """
        Build a config from a plain mapping, rejecting unknown options.

        Raises:
            ValueError: If an option is not recognized or has the wrong type.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unrecognized search option(s): {unknown}")

        expected_types: Dict[str, type] = {
            "n_folds": int,
            "n_repeats": int,
            "smote_neighbors": int,
            "seed": int,
            "class_weights": bool,
        }
        for option, expected_type in expected_types.items():
            if option in raw and not isinstance(raw[option], expected_type):
                raise ValueError(
                    f"Search option '{option}' must be {expected_type.__name__}, "
                    f"got {type(raw[option]).__name__}"
                )

        values = dict(raw)
        if name is not None:
            values["name"] = name
        if "param_grid" in values:
            values["param_grid"] = expand_grid(values["param_grid"])
        return cls(**values)


@dataclass(frozen=True)
class ExperimentConfig:
    """A dataset, a held-out split and one search config per strategy."""

    schema: DatasetSchema
    searches: Dict[str, SearchConfig]
    data_path: Optional[str] = None
    train_fraction: float = DEFAULT_TRAIN_FRACTION
    split_seed: int = DEFAULT_SEED

    def __post_init__(self) -> None:
        if not self.searches:
            raise ValueError("Experiment must define at least one search")
        if not 0.0 < self.train_fraction < 1.0:
            raise ValueError(
                f"train_fraction must be between 0 and 1, got {self.train_fraction}"
            )


def experiment_from_dict(raw: Mapping[str, Any]) -> ExperimentConfig:
    """
    Build an :class:`ExperimentConfig` from a parsed configuration document.

    Options under ``search`` are shared by every entry under ``strategies``;
    each strategy entry may override them. A document without ``strategies``
    defines a single search named ``baseline``.
    """
    if "dataset" not in raw:
        raise ValueError("Configuration missing required top-level 'dataset' key")
    dataset_section = dict(raw["dataset"])
    data_path = dataset_section.pop("path", None)
    schema = DatasetSchema.from_dict(dataset_section)

    split_section = raw.get("split") or {}
    shared = dict(raw.get("search") or {})
    strategies = raw.get("strategies") or {"baseline": {}}
    if not isinstance(strategies, Mapping):
        raise ValueError(
            f"Configuration 'strategies' must be a mapping, got {type(strategies).__name__}"
        )

    searches = {}
    for name, overrides in strategies.items():
        if overrides is not None and not isinstance(overrides, Mapping):
            raise ValueError(
                f"Strategy '{name}' must map option names to values, "
                f"got {type(overrides).__name__}"
            )
        options = dict(shared)
        options.update(overrides or {})
        searches[name] = SearchConfig.from_dict(options, name=name)

    return ExperimentConfig(
        schema=schema,
        searches=searches,
        data_path=data_path,
        train_fraction=float(split_section.get("train_fraction", DEFAULT_TRAIN_FRACTION)),
        split_seed=int(split_section.get("seed", shared.get("seed", DEFAULT_SEED))),
    )


def load_experiment(path: str) -> ExperimentConfig:
    """Read an experiment configuration from a YAML file."""
    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Configuration file {path} is not valid YAML: {e}") from e
    if not isinstance(raw, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping at the top level")
    return experiment_from_dict(raw)


def load_config(path: str, name: Optional[str] = None) -> SearchConfig:
    """Read a single search configuration (the ``search`` section) from YAML."""
    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Configuration file {path} is not valid YAML: {e}") from e
    section = raw.get("search", raw) if isinstance(raw, Mapping) else None
    if not isinstance(section, Mapping):
        raise ValueError(f"Configuration file {path} must contain a 'search' mapping")
    return SearchConfig.from_dict(section, name=name)
