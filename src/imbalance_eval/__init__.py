"""
imbalance_eval: cross-validated evaluation of classifiers on imbalanced data.

This package runs leakage-safe model selection for binary classifiers whose
minority class is rare: stratified splitting, resampling or class weighting
applied to training folds only, hyperparameter grid search scored by
precision-recall AUC, and F1-optimal cutoff selection on held-out data.

Modules:
    dataset:      DatasetSchema and the read-only Dataset container
    splitting:    stratified train/test split and k-fold assignment
    resampling:   none / up / down / SMOTE strategies for training partitions
    weighting:    per-class and per-record weights
    metrics:      precision-recall curve, PR-AUC, confusion matrix
    thresholds:   best-F1 cutoff selection
    config:       immutable SearchConfig and YAML experiment loading
    pool:         WorkerPool with explicit acquire/release lifecycle
    trainers:     Trainer interface, XGBoost adapter, prior baseline
    grid_search:  GridSearchEngine
    comparison:   strategy comparison and reporting
    cli:          command-line entry point

Example:
    from imbalance_eval.config import SearchConfig
    from imbalance_eval.grid_search import GridSearchEngine
    from imbalance_eval.trainers import XGBoostTrainer
"""

__version__ = "0.1.0"
