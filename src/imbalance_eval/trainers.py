"""
Trainer adapters for the grid search.

The search treats the classifier as an opaque collaborator exposing
``fit(features, labels, weights, hyperparameters) -> model`` and
``predict_proba(model, features) -> scores``. Labels arrive encoded as 1
(minority) / 0 (majority) and scores must be minority-class probabilities.

Trainers must fail loudly on a single-class training set instead of
returning a constant scorer.

Example:
    from imbalance_eval.trainers import XGBoostTrainer

    trainer = XGBoostTrainer(base_params={"n_estimators": 100})
    model = trainer.fit(X_train, y_train, None, {"max_depth": 5})
    scores = trainer.predict_proba(model, X_test)
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import numpy as np
from xgboost import XGBClassifier

from imbalance_eval.exceptions import TrainerFailure

# Defaults for the gradient-boosted trees trainer; grid values override them
XGBOOST_DEFAULTS: Dict[str, Any] = {
    "max_depth": 5,
    "learning_rate": 0.2,
    "n_estimators": 100,
    "subsample": 0.8,
    "colsample_bytree": 0.8,
    "eval_metric": "logloss",
}


def _require_both_classes(labels: Any) -> np.ndarray:
    label_arr = np.asarray(labels)
    present = np.unique(label_arr)
    if len(present) < 2:
        raise TrainerFailure(
            f"Training set holds a single class ({present.tolist()}); cannot fit a binary classifier"
        )
    return label_arr


def _normalized_weights(weights: Optional[Any]) -> Optional[np.ndarray]:
    # only relative weights matter; rescale to mean 1 so absolute
    # thresholds such as min_child_weight keep their usual meaning
    if weights is None:
        return None
    w = np.asarray(weights, dtype=float)
    return w * (len(w) / w.sum())


class Trainer(ABC):
    """Interface the grid search uses to train and score candidates."""

    name = "trainer"

    @abstractmethod
    def fit(
        self,
        features: Any,
        labels: Any,
        weights: Optional[Any] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Train a model and return an opaque handle."""

    @abstractmethod
    def predict_proba(self, model: Any, features: Any) -> np.ndarray:
        """Minority-class probability for every row of ``features``."""


class EstimatorTrainer(Trainer):
    """
    Adapter for scikit-learn style classifiers.

    Args:
        model_class: Class or factory called with the merged hyperparameters.
        base_params: Parameters applied to every candidate before the grid
            values.
    """

    def __init__(
        self,
        model_class: Callable[..., Any],
        base_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.model_class = model_class
        self.base_params = dict(base_params or {})
        self.name = getattr(model_class, "__name__", str(model_class))

    def build(self, hyperparameters: Optional[Dict[str, Any]]) -> Any:
        params = dict(self.base_params)
        params.update(hyperparameters or {})
        return self.model_class(**params)

    def fit(self, features, labels, weights=None, hyperparameters=None):
        label_arr = _require_both_classes(labels)
        model = self.build(hyperparameters)
        sample_weight = _normalized_weights(weights)
        if sample_weight is None:
            model.fit(features, label_arr)
        else:
            model.fit(features, label_arr, sample_weight=sample_weight)
        return model

    def predict_proba(self, model, features):
        proba = np.asarray(model.predict_proba(features), dtype=float)
        if proba.ndim == 2:
            proba = proba[:, 1]
        return np.clip(proba, 0.0, 1.0)


class XGBoostTrainer(EstimatorTrainer):
    """Gradient-boosted trees via ``xgboost.XGBClassifier``."""

    def __init__(
        self,
        base_params: Optional[Dict[str, Any]] = None,
        random_state: int = 42,
        n_jobs: int = 1,
    ) -> None:
        params = dict(XGBOOST_DEFAULTS)
        params.update({"random_state": random_state, "n_jobs": n_jobs,
                       "tree_method": "hist", "enable_categorical": True})
        params.update(base_params or {})
        super().__init__(XGBClassifier, base_params=params)
        self.name = "XGBoost"


class PriorTrainer(Trainer):
    """
    Majority-only baseline: every record gets the training minority prior.

    Its PR-AUC equals the minority prevalence of the scored set, which is
    the floor any useful model has to beat.
    """

    name = "prior"

    def fit(self, features, labels, weights=None, hyperparameters=None):
        label_arr = _require_both_classes(labels).astype(float)
        if weights is None:
            return float(label_arr.mean())
        w = np.asarray(weights, dtype=float)
        return float(np.sum(w * label_arr) / np.sum(w))

    def predict_proba(self, model, features):
        return np.full(len(features), float(model))
