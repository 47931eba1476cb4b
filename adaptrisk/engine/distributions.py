"""
Distribution Sampler.

Each scenario variable carries one tagged distribution variant with named
fields. Variants sample vectorised draws from a numpy Generator, accept a
Bayesian posterior (moment-matched location/scale substitution), and can be
ratio-scaled when a linked signal moves.

    normal{mean, stdev}        lognormal{mu, sigma}   (log-space parameters)
    uniform{low, high}         triangular{low, mode, high}

`distribution_from_params(kind, params)` accepts the legacy positional form
and validates arity.
"""

import math
from typing import Annotated, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from adaptrisk.errors import InvalidConfig

# ── Configuration ─────────────────────────────────────────────────────────

PARAM_ARITY: dict[str, int] = {
    "normal": 2,
    "lognormal": 2,
    "uniform": 2,
    "triangular": 3,
}


def _check_finite(**values: float) -> None:
    for name, value in values.items():
        if not math.isfinite(value):
            raise ValueError(f"{name} must be finite, got {value}")


# ── Variants ──────────────────────────────────────────────────────────────


class NormalDistribution(BaseModel):
    """Normal(mean, stdev)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["normal"] = "normal"
    mean: float
    stdev: float = Field(ge=0.0)

    @model_validator(mode="after")
    def _validate(self) -> "NormalDistribution":
        _check_finite(mean=self.mean, stdev=self.stdev)
        return self

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        return rng.normal(self.mean, self.stdev, size=n)

    def with_posterior(self, mean: float, variance: float) -> "NormalDistribution":
        return NormalDistribution(mean=mean, stdev=math.sqrt(variance))

    def scaled(self, ratio: float) -> "NormalDistribution":
        return self.model_copy(update={"mean": self.mean * ratio})


class LognormalDistribution(BaseModel):
    """
    Lognormal(mu, sigma): exp of a Normal(mu, sigma) draw.

    Posterior substitution and signal shifts act on the log-space location.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["lognormal"] = "lognormal"
    mu: float
    sigma: float = Field(ge=0.0)

    @model_validator(mode="after")
    def _validate(self) -> "LognormalDistribution":
        _check_finite(mu=self.mu, sigma=self.sigma)
        return self

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        return rng.lognormal(self.mu, self.sigma, size=n)

    def with_posterior(self, mean: float, variance: float) -> "LognormalDistribution":
        return LognormalDistribution(mu=mean, sigma=math.sqrt(variance))

    def scaled(self, ratio: float) -> "LognormalDistribution":
        return self.model_copy(update={"mu": self.mu * ratio})


class UniformDistribution(BaseModel):
    """Uniform(low, high)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["uniform"] = "uniform"
    low: float
    high: float

    @model_validator(mode="after")
    def _validate(self) -> "UniformDistribution":
        _check_finite(low=self.low, high=self.high)
        if self.low > self.high:
            raise ValueError(f"uniform requires low <= high, got low={self.low} high={self.high}")
        return self

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        return rng.uniform(self.low, self.high, size=n)

    def with_posterior(self, mean: float, variance: float) -> "UniformDistribution":
        # Var(U(a, b)) = (b - a)^2 / 12  →  half-width = sqrt(3 var)
        half = math.sqrt(3.0 * variance)
        return UniformDistribution(low=mean - half, high=mean + half)

    def scaled(self, ratio: float) -> "UniformDistribution":
        low, high = sorted((self.low * ratio, self.high * ratio))
        return UniformDistribution(low=low, high=high)


class TriangularDistribution(BaseModel):
    """Triangular(low, mode, high)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["triangular"] = "triangular"
    low: float
    mode: float
    high: float

    @model_validator(mode="after")
    def _validate(self) -> "TriangularDistribution":
        _check_finite(low=self.low, mode=self.mode, high=self.high)
        if not (self.low <= self.mode <= self.high):
            raise ValueError(
                f"triangular requires low <= mode <= high, "
                f"got low={self.low} mode={self.mode} high={self.high}"
            )
        return self

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        if self.low == self.high:
            return np.full(n, self.low, dtype=float)
        return rng.triangular(self.low, self.mode, self.high, size=n)

    def with_posterior(self, mean: float, variance: float) -> "TriangularDistribution":
        # Symmetric triangle: Var = h^2 / 6 for half-width h
        half = math.sqrt(6.0 * variance)
        return TriangularDistribution(low=mean - half, mode=mean, high=mean + half)

    def scaled(self, ratio: float) -> "TriangularDistribution":
        low, mode, high = sorted((self.low * ratio, self.mode * ratio, self.high * ratio))
        return TriangularDistribution(low=low, mode=mode, high=high)


Distribution = Annotated[
    Union[NormalDistribution, LognormalDistribution, UniformDistribution, TriangularDistribution],
    Field(discriminator="kind"),
]


# ── Legacy positional constructor ─────────────────────────────────────────


def distribution_from_params(kind: str, params: list[float]) -> Distribution:
    """
    Build a distribution from the positional `(kind, params[])` form.

    Raises:
        InvalidConfig: unknown kind, wrong arity, or out-of-domain values.
    """
    arity = PARAM_ARITY.get(kind)
    if arity is None:
        raise InvalidConfig(f"Unknown distribution kind '{kind}'", kind=kind)
    if len(params) != arity:
        raise InvalidConfig(
            f"Distribution '{kind}' expects {arity} params, got {len(params)}",
            kind=kind, expected=arity, got=len(params),
        )

    try:
        if kind == "normal":
            return NormalDistribution(mean=params[0], stdev=params[1])
        if kind == "lognormal":
            return LognormalDistribution(mu=params[0], sigma=params[1])
        if kind == "uniform":
            return UniformDistribution(low=params[0], high=params[1])
        return TriangularDistribution(low=params[0], mode=params[1], high=params[2])
    except ValidationError as e:
        raise InvalidConfig(
            f"Invalid params for '{kind}' distribution",
            kind=kind, params=list(params), errors=[err["msg"] for err in e.errors()],
        ) from e
