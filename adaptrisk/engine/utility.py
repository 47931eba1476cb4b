"""
Utility Families.

Closed-form utility functions with matching inverses, so that
inverse(utility(x)) ≈ x on each family's domain:

    CARA         U = 1 - exp(-a·x/s)           U⁻¹ = -s/a · ln(1 - u)
    CRRA         U = x^(1-a)/(1-a)  (ln x @1)  U⁻¹ = ((1-a)·u)^(1/(1-a))  (exp u @1)
    Exponential  U = -exp(-a·x/s)              U⁻¹ = -s/a · ln(-u)
    Quadratic    U = x/s - (a/2)(x/s)²         U⁻¹ = s·(1 - sqrt(1 - 2a·u))/a
    Power        U = x^(1-a)        (ln x @1)  U⁻¹ = u^(1/(1-a))          (exp u @1)

With a ≈ 0 the CARA, Exponential and Quadratic families are risk-neutral
(U = x/s). CRRA and Power are undefined for x ≤ 0 and return -inf there.
Certainty equivalent CE = U⁻¹(E[U]); risk premium = EV - CE.
"""

import math

import numpy as np
import structlog

from adaptrisk.engine.schemas import UtilityMode, UtilityOutcome, UtilityParams
from adaptrisk.errors import ComputationFailure

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

RISK_NEUTRAL_EPS: float = 1e-10


class UtilityFunction:
    """One utility family with its parameters."""

    def __init__(self, params: UtilityParams):
        self.params = params

    @property
    def mode(self) -> UtilityMode:
        return self.params.mode

    def utility(self, x: np.ndarray | float) -> np.ndarray:
        a, s = self.params.a, self.params.scale
        x = np.asarray(x, dtype=float)
        xs = x / s

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if self.mode == UtilityMode.CARA:
                if a <= RISK_NEUTRAL_EPS:
                    return xs
                return 1.0 - np.exp(-a * xs)

            if self.mode == UtilityMode.EXPONENTIAL:
                if a <= RISK_NEUTRAL_EPS:
                    return xs
                return -np.exp(-a * xs)

            if self.mode == UtilityMode.QUADRATIC:
                return xs - (a / 2.0) * xs * xs

            if self.mode == UtilityMode.CRRA:
                positive = np.where(x > 0, x, 1.0)
                if abs(a - 1.0) < RISK_NEUTRAL_EPS:
                    u = np.log(positive)
                else:
                    u = np.power(positive, 1.0 - a) / (1.0 - a)
                return np.where(x > 0, u, -np.inf)

            # Power
            positive = np.where(x > 0, x, 1.0)
            alpha = 1.0 - a
            if abs(alpha) < RISK_NEUTRAL_EPS:
                u = np.log(positive)
            else:
                u = np.power(positive, alpha)
            return np.where(x > 0, u, -np.inf)

    def inverse(self, u: float) -> float:
        a, s = self.params.a, self.params.scale

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if self.mode == UtilityMode.CARA:
                if a <= RISK_NEUTRAL_EPS:
                    return u * s
                return float(-(s / a) * np.log(1.0 - u))

            if self.mode == UtilityMode.EXPONENTIAL:
                if a <= RISK_NEUTRAL_EPS:
                    return u * s
                return float(-(s / a) * np.log(-u))

            if self.mode == UtilityMode.QUADRATIC:
                if a <= RISK_NEUTRAL_EPS:
                    return u * s
                disc = 1.0 - 2.0 * a * u
                if disc < 0:
                    return math.nan
                return float(s * (1.0 - math.sqrt(disc)) / a)

            if self.mode == UtilityMode.CRRA:
                if abs(a - 1.0) < RISK_NEUTRAL_EPS:
                    return float(np.exp(u))
                base = (1.0 - a) * u
                if base <= 0:
                    return math.nan
                return float(np.power(base, 1.0 / (1.0 - a)))

            alpha = 1.0 - a
            if abs(alpha) < RISK_NEUTRAL_EPS:
                return float(np.exp(u))
            if u <= 0:
                return math.nan
            return float(np.power(u, 1.0 / alpha))

    def evaluate(self, outcomes: np.ndarray, ev: float) -> UtilityOutcome:
        """
        Expected utility, certainty equivalent and risk premium of `outcomes`.

        A non-finite certainty equivalent is recovered: it is logged as a
        ComputationFailure and CE falls back to `ev` (risk premium 0).
        """
        with np.errstate(invalid="ignore", over="ignore"):
            expected = float(np.mean(self.utility(outcomes)))
        ce = self.inverse(expected) if math.isfinite(expected) else math.nan

        if not math.isfinite(ce):
            failure = ComputationFailure(
                "Certainty equivalent is not finite",
                mode=self.mode.value, expected_utility=expected,
            )
            logger.warning("utility_fallback_to_ev", **failure.to_dict())
            return UtilityOutcome(
                mode=self.mode,
                expected_utility=expected,
                certainty_equivalent=ev,
                risk_premium=0.0,
                fallback=True,
            )

        return UtilityOutcome(
            mode=self.mode,
            expected_utility=expected,
            certainty_equivalent=ce,
            risk_premium=ev - ce,
        )
