"""
Distribution Sampler Tests.
"""

import numpy as np
import pytest
from pydantic import TypeAdapter, ValidationError

from adaptrisk.engine.distributions import (
    Distribution,
    LognormalDistribution,
    NormalDistribution,
    TriangularDistribution,
    UniformDistribution,
    distribution_from_params,
)
from adaptrisk.errors import InvalidConfig


class TestSampling:
    """Vectorised draws from a seeded Generator."""

    def test_normal_moments(self):
        draws = NormalDistribution(mean=100, stdev=20).sample(np.random.default_rng(1), 20_000)
        assert draws.shape == (20_000,)
        assert abs(draws.mean() - 100) < 1.0
        assert abs(draws.std() - 20) < 1.0

    def test_uniform_within_bounds(self):
        draws = UniformDistribution(low=-5, high=5).sample(np.random.default_rng(2), 5_000)
        assert draws.min() >= -5
        assert draws.max() <= 5

    def test_lognormal_positive(self):
        draws = LognormalDistribution(mu=0.0, sigma=0.5).sample(np.random.default_rng(3), 5_000)
        assert np.all(draws > 0)

    def test_triangular_within_bounds(self):
        draws = TriangularDistribution(low=1, mode=2, high=5).sample(np.random.default_rng(4), 5_000)
        assert draws.min() >= 1
        assert draws.max() <= 5

    def test_degenerate_triangular_is_constant(self):
        draws = TriangularDistribution(low=3, mode=3, high=3).sample(np.random.default_rng(5), 10)
        assert np.all(draws == 3.0)

    def test_zero_stdev_is_constant(self):
        draws = NormalDistribution(mean=7, stdev=0).sample(np.random.default_rng(6), 10)
        assert np.all(draws == 7.0)

    def test_same_seed_same_draws(self):
        dist = NormalDistribution(mean=0, stdev=1)
        a = dist.sample(np.random.default_rng(42), 100)
        b = dist.sample(np.random.default_rng(42), 100)
        assert np.array_equal(a, b)


class TestValidation:
    """Out-of-domain parameters are rejected."""

    def test_negative_stdev(self):
        with pytest.raises(ValidationError):
            NormalDistribution(mean=0, stdev=-1)

    def test_uniform_low_above_high(self):
        with pytest.raises(ValidationError):
            UniformDistribution(low=2, high=1)

    def test_triangular_mode_outside(self):
        with pytest.raises(ValidationError):
            TriangularDistribution(low=0, mode=5, high=4)

    def test_non_finite_mean(self):
        with pytest.raises(ValidationError):
            NormalDistribution(mean=float("inf"), stdev=1)

    def test_discriminated_union(self):
        dist = TypeAdapter(Distribution).validate_python({"kind": "uniform", "low": 0, "high": 1})
        assert isinstance(dist, UniformDistribution)


class TestFromParams:
    """Legacy positional constructor."""

    def test_normal(self):
        dist = distribution_from_params("normal", [10, 2])
        assert dist == NormalDistribution(mean=10, stdev=2)

    def test_triangular(self):
        dist = distribution_from_params("triangular", [0, 1, 2])
        assert isinstance(dist, TriangularDistribution)

    def test_wrong_arity(self):
        with pytest.raises(InvalidConfig) as exc:
            distribution_from_params("normal", [1, 2, 3])
        assert exc.value.context["expected"] == 2

    def test_unknown_kind(self):
        with pytest.raises(InvalidConfig):
            distribution_from_params("beta", [1, 2])

    def test_invalid_values_become_invalid_config(self):
        with pytest.raises(InvalidConfig):
            distribution_from_params("uniform", [5, 1])


class TestPosteriorAndScaling:
    """Posterior substitution and signal-ratio scaling."""

    def test_normal_posterior(self):
        dist = NormalDistribution(mean=0, stdev=5).with_posterior(10.0, 4.0)
        assert dist.mean == 10.0
        assert dist.stdev == pytest.approx(2.0)

    def test_uniform_posterior_matches_moments(self):
        dist = UniformDistribution(low=0, high=1).with_posterior(10.0, 3.0)
        assert (dist.low + dist.high) / 2 == pytest.approx(10.0)
        assert (dist.high - dist.low) ** 2 / 12 == pytest.approx(3.0)

    def test_triangular_posterior_is_symmetric(self):
        dist = TriangularDistribution(low=0, mode=1, high=2).with_posterior(5.0, 1.5)
        assert dist.mode == 5.0
        assert dist.high - dist.mode == pytest.approx(dist.mode - dist.low)

    def test_normal_scaled_moves_mean_only(self):
        dist = NormalDistribution(mean=100, stdev=10).scaled(1.1)
        assert dist.mean == pytest.approx(110)
        assert dist.stdev == 10

    def test_uniform_scaled_by_negative_ratio_stays_ordered(self):
        dist = UniformDistribution(low=1, high=3).scaled(-1.0)
        assert dist.low == -3
        assert dist.high == -1
