"""
Error taxonomy for the imbalance evaluation harness.

Every error raised by the harness derives from :class:`ImbalanceEvalError`
and records the ``stage`` that failed (``split``, ``resample``, ``config``,
``train``, ``search`` or ``metrics``) so callers can report a structured
failure instead of a partial result.

Configuration-level errors (:class:`ConflictingStrategyError`,
:class:`InsufficientSamplesError`, :class:`InsufficientMinorityError`,
:class:`SchemaError`) are raised before any training starts. Per-fold
:class:`TrainerFailure` errors are recovered by the grid search and only
surface through :class:`NoViableModelError` when nothing could be trained.
"""

from typing import Any, Dict, Optional


class ImbalanceEvalError(Exception):
    """Base class for all harness errors.

    Args:
        message: Human readable description.
        stage: Pipeline stage that failed.
    """

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class SchemaError(ImbalanceEvalError):
    """Raised when a dataset does not match its declared schema.

    Missing feature or label columns, a label column that does not hold
    exactly two values, or a minority label that is absent all end up here.
    """

    stage = "config"


class InsufficientSamplesError(ImbalanceEvalError):
    """Raised when a class has too few records to stratify a split."""

    stage = "split"


class InsufficientMinorityError(ImbalanceEvalError):
    """Raised when SMOTE is asked for more neighbours than the minority class
    can provide."""

    stage = "resample"


class ConflictingStrategyError(ImbalanceEvalError):
    """Raised when resampling and class weighting are requested together."""

    stage = "config"


class EmptyCurveError(ImbalanceEvalError):
    """Raised when a precision-recall curve has no usable points."""

    stage = "metrics"


class NoViableModelError(ImbalanceEvalError):
    """Raised when every hyperparameter candidate failed on every fold."""

    stage = "search"


class SearchCancelledError(ImbalanceEvalError):
    """Raised when a search was cancelled before all folds were evaluated."""

    stage = "search"


class TrainerFailure(ImbalanceEvalError):
    """Opaque failure surfaced from the external trainer.

    Carries the failing hyperparameters and fold coordinates for
    diagnostics.

    Args:
        message: Description of the failure.
        params: Hyperparameters that were being fitted.
        repeat: Cross-validation repeat index, if any.
        fold: Fold index within the repeat, if any.
    """

    stage = "train"

    def __init__(
        self,
        message: str,
        params: Optional[Dict[str, Any]] = None,
        repeat: Optional[int] = None,
        fold: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.params = dict(params or {})
        self.repeat = repeat
        self.fold = fold

    def __str__(self) -> str:
        base = super().__str__()
        if self.repeat is None and self.fold is None:
            return f"{base} (params={self.params})"
        return f"{base} (params={self.params}, repeat={self.repeat}, fold={self.fold})"
