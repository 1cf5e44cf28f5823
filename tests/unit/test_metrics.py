"""
Unit tests for the metric engine.

Tests precision-recall curve construction (tie grouping, the recall-0
anchor, single-class inputs), trapezoidal PR-AUC and confusion matrices.
"""

import pytest
import sys
import os
import math
import numpy as np
from hypothesis import given, strategies as st, settings, assume

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from imbalance_eval.exceptions import EmptyCurveError
from imbalance_eval.metrics import (
    ANCHOR_THRESHOLD,
    ConfusionMatrix,
    PRCurve,
    confusion_matrix,
    pr_auc,
    pr_auc_score,
    pr_curve,
    validate_scored,
)


class TestValidateScored:
    """Tests for validate_scored."""

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="differ in length"):
            validate_scored([0.1, 0.2], [0, 1, 1])

    @pytest.mark.parametrize("bad", [1.2, -0.1])
    def test_scores_outside_unit_interval(self, bad):
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            validate_scored([0.3, bad], [0, 1])

    def test_non_finite_scores(self):
        with pytest.raises(ValueError, match="finite"):
            validate_scored([0.3, float("nan")], [0, 1])

    def test_labels_must_be_binary(self):
        with pytest.raises(ValueError, match="0 \\(majority\\)"):
            validate_scored([0.3, 0.4], [0, 2])


class TestPRCurve:
    """Tests for pr_curve."""

    def test_points_for_distinct_scores(self):
        """Test one point per score, preceded by the prior anchor."""
        curve = pr_curve([0.9, 0.8, 0.7, 0.6], [1, 0, 1, 0])

        assert curve.points() == (
            (ANCHOR_THRESHOLD, 0.5, 0.0),
            (0.9, 1.0, 0.5),
            (0.8, 0.5, 0.5),
            (0.7, pytest.approx(2 / 3), 1.0),
            (0.6, 0.5, 1.0),
        )
        assert curve.prior == 0.5

    def test_input_order_does_not_matter(self):
        a = pr_curve([0.6, 0.9, 0.7, 0.8], [0, 1, 1, 0])
        b = pr_curve([0.9, 0.8, 0.7, 0.6], [1, 0, 1, 0])
        np.testing.assert_array_equal(a.thresholds, b.thresholds)
        np.testing.assert_array_equal(a.precision, b.precision)
        np.testing.assert_array_equal(a.recall, b.recall)

    def test_tied_scores_share_one_point(self):
        """Test that records with equal scores are classified together."""
        curve = pr_curve([0.5, 0.5, 0.5, 0.2], [1, 0, 0, 1])

        assert len(curve) == 3
        assert curve.points()[1] == (0.5, pytest.approx(1 / 3), 0.5)
        assert curve.points()[2] == (0.2, 0.5, 1.0)

    def test_thresholds_decrease_and_recall_never_drops(self):
        rng = np.random.default_rng(0)
        scores = rng.random(200).round(2)
        labels = (rng.random(200) < 0.1).astype(int)
        labels[0] = 1

        curve = pr_curve(scores, labels)

        assert np.all(np.diff(curve.thresholds) < 0)
        assert np.all(np.diff(curve.recall) >= 0)
        assert curve.recall[-1] == 1.0

    def test_every_distinct_score_matches_direct_count(self):
        """Test each point against counting predictions at its threshold."""
        rng = np.random.default_rng(3)
        scores = rng.integers(0, 20, size=150) / 20
        labels = (rng.random(150) < 0.2).astype(int)
        labels[:2] = [0, 1]

        curve = pr_curve(scores, labels)

        np.testing.assert_array_equal(curve.thresholds[1:], np.unique(scores)[::-1])
        for threshold, precision, recall in curve.points()[1:]:
            predicted = scores >= threshold
            tp = int((predicted & (labels == 1)).sum())
            assert precision == pytest.approx(tp / predicted.sum())
            assert recall == pytest.approx(tp / labels.sum())

    def test_single_class_gives_empty_curve(self):
        assert pr_curve([0.1, 0.9, 0.4], [0, 0, 0]).is_empty
        assert pr_curve([0.1, 0.9, 0.4], [1, 1, 1]).is_empty
        assert pr_curve([], []).is_empty

    def test_curve_arrays_are_read_only(self):
        curve = pr_curve([0.9, 0.1], [1, 0])
        with pytest.raises(ValueError):
            curve.precision[0] = 0.0

    def test_to_frame(self):
        frame = pr_curve([0.9, 0.1], [1, 0]).to_frame()
        assert list(frame.columns) == ["threshold", "precision", "recall"]
        assert len(frame) == 3

    def test_from_points_sorts_by_threshold(self):
        curve = PRCurve.from_points([(0.3, 0.3, 0.9), (0.5, 0.5, 0.5)])
        assert list(curve.thresholds) == [0.5, 0.3]
        assert curve.pairs() == ((0.5, 0.5), (0.3, 0.9))

    def test_rejects_repeated_thresholds(self):
        with pytest.raises(ValueError, match="strictly decreasing"):
            PRCurve(thresholds=[0.5, 0.5], precision=[1.0, 0.5], recall=[0.5, 1.0])

    def test_rejects_ragged_arrays(self):
        with pytest.raises(ValueError, match="equal length"):
            PRCurve(thresholds=[0.5, 0.4], precision=[1.0], recall=[0.5, 1.0])


class TestPRAUC:
    """Tests for pr_auc and pr_auc_score."""

    def test_trapezoid_over_curve(self):
        curve = pr_curve([0.9, 0.8, 0.7, 0.6], [1, 0, 1, 0])
        # (0.5 + 1.0) / 2 * 0.5 + (0.5 + 2/3) / 2 * 0.5
        assert pr_auc(curve) == pytest.approx(0.375 + 7 / 24)

    def test_constant_scorer_scores_prior(self):
        """Test that a scorer that cannot rank gets the minority prevalence."""
        labels = np.r_[np.ones(3, dtype=int), np.zeros(97, dtype=int)]
        assert pr_auc_score(labels, np.full(100, 0.3)) == pytest.approx(0.03)

    def test_perfect_ranking_close_to_one(self):
        labels = np.r_[np.ones(200, dtype=int), np.zeros(800, dtype=int)]
        scores = np.r_[np.linspace(0.99, 0.6, 200), np.linspace(0.5, 0.0, 800)]

        area = pr_auc_score(labels, scores)

        # only the first segment, from the prior anchor to 1/200 recall, is below 1
        assert area == pytest.approx(1 - (1 / 200) * (1 - 0.2) / 2)
        assert area > 0.99

    def test_perfect_ranking_beats_random(self):
        rng = np.random.default_rng(3)
        labels = (rng.random(500) < 0.05).astype(int)
        labels[:3] = 1
        perfect = np.where(labels == 1, 0.9, 0.1) + rng.random(500) * 0.01
        random_scores = rng.random(500)
        assert pr_auc_score(labels, perfect) > pr_auc_score(labels, random_scores)

    def test_empty_curve_raises(self):
        with pytest.raises(EmptyCurveError):
            pr_auc(pr_curve([0.2, 0.4], [0, 0]))

    def test_single_class_score_raises(self):
        with pytest.raises(EmptyCurveError) as excinfo:
            pr_auc_score([1, 1], [0.2, 0.4])
        assert excinfo.value.stage == "metrics"


@settings(max_examples=50, deadline=None)
@given(
    scores=st.lists(st.floats(min_value=0.0, max_value=1.0), min_size=2, max_size=60),
    data=st.data(),
    scale=st.floats(min_value=0.05, max_value=1.0),
)
def test_pr_auc_invariant_under_order_preserving_rescale(scores, data, scale):
    """
    PR-AUC depends only on the ranking: multiplying every score by a positive
    constant that keeps them distinct and in [0, 1] leaves it unchanged.
    """
    labels = data.draw(st.lists(st.integers(0, 1), min_size=len(scores), max_size=len(scores)))
    assume(0 < sum(labels) < len(labels))
    scaled = [s * scale for s in scores]
    assume(len(set(scaled)) == len(set(scores)))
    assume(all((a < b) == (x < y) for a, x in zip(scores, scaled) for b, y in zip(scores, scaled)))

    assert pr_auc_score(labels, scaled) == pytest.approx(pr_auc_score(labels, scores), abs=1e-12)
    assert pr_curve(scaled, labels).pairs() == pr_curve(scores, labels).pairs()


@settings(max_examples=50, deadline=None)
@given(labels=st.lists(st.integers(0, 1), min_size=2, max_size=80))
def test_pr_auc_bounded_by_unit_interval(labels):
    assume(0 < sum(labels) < len(labels))
    rng = np.random.default_rng(len(labels))
    area = pr_auc_score(labels, rng.random(len(labels)))
    assert 0.0 <= area <= 1.0 + 1e-12


class TestConfusionMatrix:
    """Tests for confusion_matrix and ConfusionMatrix."""

    def test_counts_at_default_cutoff(self):
        cm = confusion_matrix([0.9, 0.6, 0.4, 0.2], [1, 0, 1, 0])

        assert (cm.tp, cm.fp, cm.tn, cm.fn) == (1, 1, 1, 1)
        assert cm.cutoff == 0.5
        assert cm.precision == 0.5
        assert cm.recall == 0.5
        assert cm.f1 == 0.5
        assert cm.accuracy == 0.5

    def test_cutoff_is_inclusive(self):
        """Test that a score equal to the cutoff counts as positive."""
        cm = confusion_matrix([0.9, 0.6, 0.4, 0.2], [1, 0, 1, 0], cutoff=0.4)
        assert (cm.tp, cm.fp, cm.tn, cm.fn) == (2, 1, 1, 0)

    def test_as_array_layout(self):
        cm = ConfusionMatrix(tp=4, fp=3, tn=90, fn=1)
        np.testing.assert_array_equal(cm.as_array(), [[90, 3], [1, 4]])

    def test_zero_division_yields_zero(self):
        cm = confusion_matrix([0.1, 0.2, 0.3], [1, 0, 0], cutoff=0.9)

        assert cm.tp == 0
        assert cm.precision == 0.0
        assert cm.recall == 0.0
        assert cm.f1 == 0.0
        assert cm.specificity == 1.0

    def test_as_dict(self):
        cm = ConfusionMatrix(tp=2, fp=2, tn=5, fn=1, cutoff=0.3)
        d = cm.as_dict()

        assert d["cutoff"] == 0.3
        assert d["precision"] == 0.5
        assert d["recall"] == pytest.approx(2 / 3)
        assert d["f1"] == pytest.approx(2 * 0.5 * (2 / 3) / (0.5 + 2 / 3))
        assert not math.isnan(d["specificity"])
