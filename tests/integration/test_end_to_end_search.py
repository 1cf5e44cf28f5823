"""
Integration tests for the complete evaluation workflow.

Runs real XGBoost searches on synthetic imbalanced data:
1. Baseline grid search on ~1.2% minority data beats the majority-only prior
2. Every remediation strategy compared on identical folds and one test set
3. Conflicting configuration rejected before any model is trained
4. Validation folds bit-identical across strategies
"""

import pytest
import sys
import os
import numpy as np
from unittest.mock import Mock
from sklearn.datasets import make_classification

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from imbalance_eval.comparison import compare_strategies, fold_score_frame, summary_frame
from imbalance_eval.config import SearchConfig
from imbalance_eval.dataset import from_arrays
from imbalance_eval.exceptions import ConflictingStrategyError
from imbalance_eval.grid_search import GridSearchEngine, check_feasible, prepare_folds, search
from imbalance_eval.metrics import pr_auc_score
from imbalance_eval.pool import WorkerPool
from imbalance_eval.splitting import stratified_split
from imbalance_eval.trainers import PriorTrainer, XGBoostTrainer


@pytest.fixture(scope="module")
def rare_event_data():
    """10,000 records with roughly 1.21% minority."""
    X, y = make_classification(
        n_samples=10000,
        n_features=10,
        n_informative=5,
        n_redundant=2,
        weights=[0.9879],
        flip_y=0,
        class_sep=1.5,
        random_state=42,
    )
    return from_arrays(X, y)


@pytest.fixture(scope="module")
def moderate_data():
    """2,000 records with roughly 5% minority for the strategy comparison."""
    X, y = make_classification(
        n_samples=2000,
        n_features=6,
        n_informative=4,
        n_redundant=1,
        weights=[0.95],
        flip_y=0,
        class_sep=1.2,
        random_state=7,
    )
    return from_arrays(X, y)


class TestBaselineSearch:
    """Baseline XGBoost grid search on rare-event data."""

    def test_best_candidate_beats_prior(self, rare_event_data):
        assert 0.01 < rare_event_data.minority_fraction < 0.015

        train, test = stratified_split(rare_event_data, fraction=0.75, seed=42, min_class_count=5)
        config = SearchConfig(
            name="baseline",
            param_grid={
                "max_depth": [1, 3, 5],
                "n_estimators": [25, 50, 100],
                "learning_rate": [0.1],
                "min_child_weight": [1, 5],
            },
            n_folds=5,
            n_repeats=1,
            seed=42,
        )

        with WorkerPool(max_workers=2, backend="threading") as pool:
            result = GridSearchEngine(XGBoostTrainer(), pool=pool).search(train, config)
            prior = GridSearchEngine(PriorTrainer(), pool=pool).search(
                train, config.replace(name="prior", param_grid=((),))
            )

        assert len(result.per_fold_scores) == 3 * 3 * 1 * 2 * 5
        assert set(result.best_params) == {"max_depth", "n_estimators", "learning_rate", "min_child_weight"}
        assert result.best_score > train.minority_fraction
        assert result.best_score > prior.best_score
        assert prior.best_score == pytest.approx(train.minority_fraction, abs=0.005)

        scores = XGBoostTrainer().predict_proba(result.best_model, test.features)
        assert pr_auc_score(test.labels, scores) > test.minority_fraction


class TestStrategyComparison:
    """All remediation strategies on one split."""

    def test_all_strategies_beat_prior(self, moderate_data):
        train, test = stratified_split(moderate_data, fraction=0.75, seed=1, min_class_count=5)
        grid = {"max_depth": [2, 3], "n_estimators": [30]}
        common = {"param_grid": grid, "n_folds": 5, "seed": 3}
        configs = {
            "original": SearchConfig(name="original", **common),
            "weighted": SearchConfig(name="weighted", class_weights=True, **common),
            "down": SearchConfig(name="down", strategy="down", **common),
            "up": SearchConfig(name="up", strategy="up", **common),
            "smote": SearchConfig(name="smote", strategy="smote", **common),
        }

        reports = compare_strategies(train, test, configs, XGBoostTrainer(),
                                     max_workers=2, backend="threading")

        summary = summary_frame(reports)
        assert list(summary["name"]) == list(configs)
        assert (summary["test_pr_auc"] > test.minority_fraction).all()
        assert (summary["optimized_f1"] >= summary["default_f1"]).all()
        assert fold_score_frame(reports).shape == (5, 5)

    def test_validation_folds_identical_across_strategies(self, moderate_data):
        base = SearchConfig(name="original", n_folds=5, seed=9)
        variants = [
            base,
            base.replace(name="weighted", class_weights=True),
            base.replace(name="up", strategy="up"),
            base.replace(name="down", strategy="down"),
            base.replace(name="smote", strategy="smote"),
        ]

        validations = []
        for config in variants:
            folds = check_feasible(moderate_data, config)
            validations.append([fd.validation for fd in prepare_folds(moderate_data, folds, config)])

        for other in validations[1:]:
            for a, b in zip(validations[0], other):
                assert a.equals(b)


class TestConflictingConfiguration:

    def test_conflict_rejected_before_training(self, moderate_data):
        trainer = Mock()

        with pytest.raises(ConflictingStrategyError):
            search(moderate_data, {"max_depth": [3]}, k=5, repeats=1, strategy="up",
                   metric_fn=pr_auc_score, trainer=trainer, class_weights=True)

        trainer.fit.assert_not_called()
        trainer.predict_proba.assert_not_called()
