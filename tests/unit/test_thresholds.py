"""
Unit tests for best-F1 cutoff selection.
"""

import pytest
import sys
import os
import math
import numpy as np

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from imbalance_eval.exceptions import EmptyCurveError
from imbalance_eval.metrics import PRCurve, confusion_matrix, pr_curve
from imbalance_eval.thresholds import best_f1_cutoff, f1_table, optimize_cutoff


class TestBestF1Cutoff:
    """Tests for best_f1_cutoff."""

    def test_returns_threshold_with_highest_f1(self):
        """Test F1 0.5 at cutoff 0.5 beats F1 0.45 at cutoff 0.3."""
        curve = PRCurve.from_points([(0.5, 0.5, 0.5), (0.3, 0.3, 0.9)])
        assert best_f1_cutoff(curve) == 0.5

    def test_lower_threshold_can_win(self):
        curve = PRCurve.from_points([(0.5, 0.9, 0.2), (0.3, 0.6, 0.8)])
        assert best_f1_cutoff(curve) == 0.3

    def test_ties_prefer_higher_threshold(self):
        curve = PRCurve.from_points([(0.4, 0.5, 0.5), (0.7, 0.5, 0.5)])
        assert best_f1_cutoff(curve) == 0.7

    def test_ignores_anchor_point(self):
        """Test that the +inf anchor is never returned as a cutoff."""
        curve = pr_curve([0.9, 0.8, 0.7, 0.6], [1, 0, 1, 0])
        cutoff = best_f1_cutoff(curve)
        assert math.isfinite(cutoff)
        assert cutoff == 0.7

    def test_empty_curve_raises(self):
        with pytest.raises(EmptyCurveError):
            best_f1_cutoff(pr_curve([0.3, 0.4], [1, 1]))

    def test_anchor_only_curve_raises(self):
        with pytest.raises(EmptyCurveError):
            best_f1_cutoff(PRCurve.from_points([(math.inf, 0.1, 0.0)]))

    def test_zero_precision_and_recall_points(self):
        curve = PRCurve.from_points([(0.9, 0.0, 0.0), (0.2, 0.1, 1.0)])
        assert best_f1_cutoff(curve) == 0.2


class TestF1Table:

    def test_adds_f1_column(self):
        curve = PRCurve.from_points([(0.5, 0.5, 0.5), (0.3, 0.3, 0.9)])
        table = f1_table(curve)

        assert list(table.columns) == ["threshold", "precision", "recall", "f1"]
        assert table["f1"].tolist() == pytest.approx([0.5, 0.45])

    def test_anchor_row_has_zero_f1(self):
        table = f1_table(pr_curve([0.9, 0.1], [1, 0]))
        assert table.loc[0, "f1"] == 0.0


class TestOptimizeCutoff:
    """Tests for optimize_cutoff."""

    def test_confusion_matrix_at_best_cutoff(self):
        scores = np.array([0.95, 0.9, 0.7, 0.65, 0.4, 0.3, 0.2, 0.1])
        labels = np.array([1, 1, 0, 1, 0, 0, 0, 0])

        cutoff, cm = optimize_cutoff(scores, labels)

        assert cutoff == 0.65
        assert cm.cutoff == 0.65
        assert (cm.tp, cm.fp, cm.fn) == (3, 1, 0)
        assert cm.f1 == pytest.approx(f1_table(pr_curve(scores, labels))["f1"].max())

    def test_beats_default_cutoff(self):
        """Test that the chosen cutoff never does worse than 0.5 on F1."""
        rng = np.random.default_rng(1)
        labels = (rng.random(400) < 0.05).astype(int)
        labels[:2] = 1
        scores = np.clip(labels * 0.3 + rng.random(400) * 0.4, 0, 1)

        _, cm = optimize_cutoff(scores, labels)

        assert cm.f1 >= confusion_matrix(scores, labels, 0.5).f1
