"""
Property-based tests for the resampling strategies.

Validates, for arbitrary class sizes and seeds:
- Up-sampling: minority == majority afterwards, majority records unchanged
- Down-sampling: majority == minority afterwards, minority records unchanged
- SMOTE: minority == majority afterwards, synthetic values inside the
  minority range of every numeric feature

Testing Framework: pytest with hypothesis for property-based testing
"""

import sys
import os
import numpy as np
from hypothesis import given, strategies as st, settings

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from imbalance_eval.dataset import SYNTHETIC_ORIGIN, from_arrays
from imbalance_eval.resampling import down_sample, smote, up_sample


def _partition(n_majority, n_minority, seed):
    rng = np.random.default_rng(seed)
    labels = rng.permutation(np.r_[np.zeros(n_majority, dtype=int), np.ones(n_minority, dtype=int)])
    return from_arrays(rng.normal(size=(len(labels), 2)), labels)


class_sizes = st.tuples(
    st.integers(min_value=1, max_value=40),
    st.integers(min_value=0, max_value=200),
).map(lambda t: (t[0] + t[1], t[0]))


@settings(max_examples=50, deadline=None)
@given(sizes=class_sizes, seed=st.integers(min_value=0, max_value=10 ** 6))
def test_up_sample_balances_and_keeps_majority(sizes, seed):
    n_majority, n_minority = sizes
    part = _partition(n_majority, n_minority, seed)

    result = up_sample(part, seed=seed)

    assert result.minority_count == n_majority
    assert result.majority_count == n_majority
    np.testing.assert_array_equal(
        np.sort(result.origin[result.labels == 0]), np.sort(part.origin[part.labels == 0])
    )


@settings(max_examples=50, deadline=None)
@given(sizes=class_sizes, seed=st.integers(min_value=0, max_value=10 ** 6))
def test_down_sample_balances_and_keeps_minority(sizes, seed):
    n_majority, n_minority = sizes
    part = _partition(n_majority, n_minority, seed)

    result = down_sample(part, seed=seed)

    assert result.majority_count == n_minority
    assert result.minority_count == n_minority
    np.testing.assert_array_equal(
        result.origin[result.labels == 1], part.origin[part.labels == 1]
    )


@settings(max_examples=30, deadline=None)
@given(
    n_minority=st.integers(min_value=4, max_value=30),
    extra_majority=st.integers(min_value=0, max_value=150),
    k=st.integers(min_value=1, max_value=3),
    seed=st.integers(min_value=0, max_value=10 ** 6),
)
def test_smote_balances_within_minority_range(n_minority, extra_majority, k, seed):
    part = _partition(n_minority + extra_majority, n_minority, seed)

    result = smote(part, k_neighbors=k, seed=seed)

    assert result.minority_count == result.majority_count == part.majority_count
    minority_points = part.features.to_numpy()[part.labels == 1]
    synthetic = result.features.to_numpy()[result.origin == SYNTHETIC_ORIGIN]
    assert len(synthetic) == part.majority_count - part.minority_count
    if len(synthetic):
        assert np.all(synthetic >= minority_points.min(axis=0) - 1e-12)
        assert np.all(synthetic <= minority_points.max(axis=0) + 1e-12)
