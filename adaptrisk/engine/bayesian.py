"""
Bayesian Prior Blender.

Conjugate Normal-Normal update for a scenario variable's location:

    prior:      N(μ₀, σ₀²)
    evidence:   N(μₗ, σₗ²)
    posterior:  σ₁² = 1 / (1/σ₀² + 1/σₗ²)
                μ₁  = σ₁² × (μ₀/σ₀² + μₗ/σₗ²)

The posterior variance is strictly below both input variances. The posterior
then replaces the variable's location/scale (see Distribution.with_posterior).

CONFIGURABLE: credible interval level is a parameter, not a magic number.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import structlog

from adaptrisk.engine.distributions import Distribution
from adaptrisk.engine.schemas import BayesianOverride
from adaptrisk.errors import InvalidConfig

logger = structlog.get_logger(__name__)

# ── Configuration (no magic numbers) ─────────────────────────────────────

CREDIBLE_INTERVAL_LEVEL: float = 0.95
CREDIBLE_INTERVAL_Z: float = 1.959964   # two-sided 95%
MIN_HISTORY_OBSERVATIONS: int = 2


@dataclass(frozen=True)
class NormalPosterior:
    """
    Result of a Normal-Normal update.

    Traceable back to the prior and the evidence that produced it.
    """
    mean: float
    variance: float
    ci_lower: float
    ci_upper: float
    ci_level: float
    prior_mean: float
    prior_var: float
    likelihood_mean: float
    likelihood_var: float
    prior_weight: float       # share of posterior precision coming from the prior
    data_influence: float     # |posterior mean - prior mean| / max(|prior mean|, eps)

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)


def _check_variance(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise InvalidConfig(f"{name} must be a positive finite variance", **{name: value})


class PriorBlender:
    """Normal-Normal blending of a prior belief with observed evidence."""

    def __init__(self, ci_level: float = CREDIBLE_INTERVAL_LEVEL, ci_z: float = CREDIBLE_INTERVAL_Z):
        self.ci_level = ci_level
        self.ci_z = ci_z

    def blend(
        self,
        prior_mean: float,
        prior_var: float,
        likelihood_mean: float,
        likelihood_var: float,
    ) -> NormalPosterior:
        """
        Raises:
            InvalidConfig: a variance is non-positive or non-finite, or a
                mean is non-finite.
        """
        _check_variance("prior_var", prior_var)
        _check_variance("likelihood_var", likelihood_var)
        if not (math.isfinite(prior_mean) and math.isfinite(likelihood_mean)):
            raise InvalidConfig(
                "Prior and likelihood means must be finite",
                prior_mean=prior_mean, likelihood_mean=likelihood_mean,
            )

        prior_precision = 1.0 / prior_var
        data_precision = 1.0 / likelihood_var
        precision = prior_precision + data_precision

        variance = 1.0 / precision
        mean = variance * (prior_mean * prior_precision + likelihood_mean * data_precision)
        half = self.ci_z * math.sqrt(variance)

        data_influence = abs(mean - prior_mean) / max(abs(prior_mean), 1e-10)

        return NormalPosterior(
            mean=mean,
            variance=variance,
            ci_lower=round(mean - half, 6),
            ci_upper=round(mean + half, 6),
            ci_level=self.ci_level,
            prior_mean=prior_mean,
            prior_var=prior_var,
            likelihood_mean=likelihood_mean,
            likelihood_var=likelihood_var,
            prior_weight=round(prior_precision / precision, 6),
            data_influence=round(data_influence, 4),
        )

    def blend_with_history(
        self,
        prior_mean: float,
        prior_var: float,
        observations: Sequence[float],
    ) -> NormalPosterior:
        """
        Evidence implied from history: likelihood mean = sample mean,
        likelihood variance = sample variance / n.

        With fewer than two observations (or zero spread) the prior is
        returned unchanged.
        """
        values = np.asarray(observations, dtype=float)
        if len(values) < MIN_HISTORY_OBSERVATIONS or float(np.var(values, ddof=1)) <= 0:
            _check_variance("prior_var", prior_var)
            half = self.ci_z * math.sqrt(prior_var)
            return NormalPosterior(
                mean=prior_mean,
                variance=prior_var,
                ci_lower=round(prior_mean - half, 6),
                ci_upper=round(prior_mean + half, 6),
                ci_level=self.ci_level,
                prior_mean=prior_mean,
                prior_var=prior_var,
                likelihood_mean=prior_mean,
                likelihood_var=math.inf,
                prior_weight=1.0,
                data_influence=0.0,
            )
        return self.blend(
            prior_mean,
            prior_var,
            float(values.mean()),
            float(np.var(values, ddof=1)) / len(values),
        )

    def apply_override(
        self, distribution: Distribution, override: BayesianOverride
    ) -> tuple[Distribution, NormalPosterior]:
        """Blend the override's evidence and substitute it into `distribution`."""
        posterior = self.blend(
            override.prior_mean,
            override.prior_var,
            override.likelihood_mean,
            override.likelihood_var,
        )
        logger.debug(
            "bayesian_override_applied",
            variable=override.variable_key,
            kind=distribution.kind,
            posterior_mean=round(posterior.mean, 6),
            posterior_var=round(posterior.variance, 6),
        )
        return distribution.with_posterior(posterior.mean, posterior.variance), posterior
