"""
Dependency Injector Tests.

Includes property-based tests via Hypothesis.
"""

import numpy as np
import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from adaptrisk.engine.dependence import (
    DependenceEngine,
    average_ranks,
    is_positive_definite,
    nearest_positive_definite,
    ordinal_ranks,
    spearman_rho,
    validate_correlation_matrix,
    van_der_waerden_scores,
)
from adaptrisk.engine.schemas import CopulaConfig, DependenceConfig
from adaptrisk.errors import InsufficientSamples, InvalidConfig


def _samples(n: int = 2_000, seed: int = 0) -> dict[str, np.ndarray]:
    rng = np.random.default_rng(seed)
    return {
        "a": rng.normal(0, 1, n),
        "b": rng.uniform(0, 10, n),
        "c": rng.lognormal(0, 0.5, n),
    }


class TestRankHelpers:

    def test_ordinal_ranks(self):
        assert list(ordinal_ranks(np.array([30.0, 10.0, 20.0]))) == [2, 0, 1]

    def test_ordinal_ranks_ties_by_position(self):
        assert list(ordinal_ranks(np.array([5.0, 5.0, 1.0]))) == [1, 2, 0]

    def test_van_der_waerden_scores(self):
        scores = van_der_waerden_scores(np.array([30.0, 10.0, 20.0]))
        assert scores[2] == pytest.approx(0.0)
        assert scores[0] == pytest.approx(-scores[1])
        assert scores[0] > 0

    def test_average_ranks_ties(self):
        assert list(average_ranks(np.array([1.0, 1.0, 3.0]))) == [0.5, 0.5, 2.0]

    def test_spearman_perfect(self):
        x = np.arange(50, dtype=float)
        assert spearman_rho(x, x ** 3) == pytest.approx(1.0)
        assert spearman_rho(x, -x) == pytest.approx(-1.0)

    def test_spearman_constant_is_zero(self):
        assert spearman_rho(np.ones(10), np.arange(10.0)) == 0.0


class TestPairwise:
    """Pairwise rank reordering."""

    def setup_method(self):
        self.engine = DependenceEngine(min_runs=50)

    def test_multiset_preserved(self):
        """Reordering is a permutation: sorted values are unchanged."""
        samples = _samples()
        result = self.engine.apply_pairwise(
            samples, DependenceConfig(var_a="a", var_b="b", target_rho=0.7), np.random.default_rng(1),
        )
        assert np.array_equal(np.sort(result.samples["b"]), np.sort(samples["b"]))
        assert np.array_equal(result.samples["a"], samples["a"])

    @pytest.mark.parametrize("target", [-0.8, -0.3, 0.0, 0.5, 0.9])
    def test_achieved_close_to_target(self, target):
        result = self.engine.apply_pairwise(
            _samples(5_000), DependenceConfig(var_a="a", var_b="c", target_rho=target),
            np.random.default_rng(2),
        )
        assert abs(result.achieved_rho - target) < 0.05

    def test_same_variable_rejected(self):
        with pytest.raises(InvalidConfig):
            self.engine.apply_pairwise(
                _samples(), DependenceConfig(var_a="a", var_b="a", target_rho=0.5), np.random.default_rng(0),
            )

    def test_unknown_variable_rejected(self):
        with pytest.raises(InvalidConfig):
            self.engine.apply_pairwise(
                _samples(), DependenceConfig(var_a="a", var_b="zzz", target_rho=0.5), np.random.default_rng(0),
            )

    def test_too_few_runs(self):
        with pytest.raises(InsufficientSamples) as exc:
            self.engine.apply_pairwise(
                _samples(20), DependenceConfig(var_a="a", var_b="b", target_rho=0.5), np.random.default_rng(0),
            )
        assert exc.value.required == 50
        assert exc.value.runs == 20

    @given(
        target=st.floats(min_value=-0.9, max_value=0.9),
        seed=st.integers(min_value=0, max_value=10_000),
    )
    @hyp_settings(max_examples=25, deadline=None)
    def test_reorder_never_changes_values(self, target, seed):
        samples = _samples(200, seed)
        result = self.engine.apply_pairwise(
            samples, DependenceConfig(var_a="a", var_b="b", target_rho=target), np.random.default_rng(seed),
        )
        assert np.array_equal(np.sort(result.samples["b"]), np.sort(samples["b"]))
        assert -1.0 <= result.achieved_rho <= 1.0


class TestCopula:
    """k-variable copula reordering."""

    def setup_method(self):
        self.engine = DependenceEngine(min_runs=50)

    def test_achieved_matrix_close_to_target(self):
        matrix = [[1.0, 0.6, -0.3], [0.6, 1.0, 0.2], [-0.3, 0.2, 1.0]]
        result = self.engine.apply_copula(
            _samples(5_000), CopulaConfig(variables=["a", "b", "c"], matrix=matrix), np.random.default_rng(3),
        )
        snapshot = result.snapshot
        assert snapshot.k == 3
        assert not snapshot.projected
        assert snapshot.frobenius_error < 0.1
        assert snapshot.achieved[0][1] == pytest.approx(0.6, abs=0.05)

    def test_marginals_preserved(self):
        samples = _samples()
        matrix = [[1.0, 0.5], [0.5, 1.0]]
        result = self.engine.apply_copula(
            samples, CopulaConfig(variables=["a", "b"], matrix=matrix), np.random.default_rng(4),
        )
        for key in ("a", "b"):
            assert np.array_equal(np.sort(result.samples[key]), np.sort(samples[key]))

    def test_non_pd_matrix_is_projected(self):
        matrix = [[1.0, 0.9, -0.9], [0.9, 1.0, 0.9], [-0.9, 0.9, 1.0]]
        result = self.engine.apply_copula(
            _samples(), CopulaConfig(variables=["a", "b", "c"], matrix=matrix), np.random.default_rng(5),
        )
        assert result.snapshot.projected

    def test_non_pd_without_projection_falls_back(self):
        matrix = [[1.0, 0.9, -0.9], [0.9, 1.0, 0.9], [-0.9, 0.9, 1.0]]
        samples = _samples()
        result = self.engine.apply_copula(
            samples,
            CopulaConfig(variables=["a", "b", "c"], matrix=matrix, use_nearest_pd=False),
            np.random.default_rng(6),
        )
        assert not result.snapshot.projected
        assert result.snapshot.achieved[0][1] > 0.5
        assert np.array_equal(np.sort(result.samples["c"]), np.sort(samples["c"]))

    def test_asymmetric_matrix_rejected(self):
        with pytest.raises(InvalidConfig):
            self.engine.apply_copula(
                _samples(), CopulaConfig(variables=["a", "b"], matrix=[[1.0, 0.5], [0.2, 1.0]]),
                np.random.default_rng(0),
            )

    def test_wrong_shape_rejected(self):
        with pytest.raises(InvalidConfig):
            self.engine.apply_copula(
                _samples(), CopulaConfig(variables=["a", "b", "c"], matrix=[[1.0, 0.5], [0.5, 1.0]]),
                np.random.default_rng(0),
            )

    def test_too_few_runs(self):
        with pytest.raises(InsufficientSamples):
            self.engine.apply_copula(
                _samples(10), CopulaConfig(variables=["a", "b"], matrix=[[1.0, 0.5], [0.5, 1.0]]),
                np.random.default_rng(0),
            )


class TestMatrixHelpers:

    def test_identity_is_pd(self):
        assert is_positive_definite(np.eye(3))

    def test_nearest_pd_keeps_unit_diagonal(self):
        bad = np.array([[1.0, 0.99, -0.99], [0.99, 1.0, 0.99], [-0.99, 0.99, 1.0]])
        fixed = nearest_positive_definite(bad)
        assert is_positive_definite(fixed)
        assert np.allclose(np.diag(fixed), 1.0)

    def test_validate_rejects_out_of_range(self):
        with pytest.raises(InvalidConfig):
            validate_correlation_matrix(np.array([[1.0, 1.5], [1.5, 1.0]]), 2)
