"""
Dependency Injector — rank correlation by reordering.

Problem: scenario variables are sampled independently, but real drivers move
together (demand and price, FX and freight). Resampling would distort the
marginals.

Solution: only PERMUTE each sample vector so that its ranks follow a
correlated Gaussian score (Iman-Conover). Every vector keeps exactly the
same multiset of values, so the marginals are untouched.

- Pairwise: reorder `var_b` against `var_a` for a target Spearman rho.
- Copula: reorder k variables jointly against a k×k Spearman matrix and
  report the achieved matrix plus the Frobenius error.

Spearman targets are mapped to Gaussian-score correlations with
r = 2·sin(π·ρs/6), the exact relation for a Gaussian copula. Ranks, normal
scores and achieved Spearman rho come from scipy.stats.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog
from scipy import stats

from adaptrisk.config import settings
from adaptrisk.engine.schemas import CopulaConfig, CopulaSnapshot, DependenceConfig
from adaptrisk.errors import InsufficientSamples, InvalidConfig

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

MATRIX_TOLERANCE: float = 1e-6       # symmetry / unit-diagonal tolerance
PD_SHRINK_FACTOR: float = 0.95       # off-diagonal shrink per projection step
PD_MAX_ITERATIONS: int = 200
MIN_LINK_RHO: float = 0.01           # sequential fallback ignores weaker links


@dataclass(frozen=True)
class PairwiseResult:
    """Reordered `var_b` samples and the Spearman rho actually achieved."""
    samples: dict[str, np.ndarray]
    achieved_rho: float


@dataclass(frozen=True)
class CopulaResult:
    samples: dict[str, np.ndarray]
    snapshot: CopulaSnapshot


# ── Rank helpers ──────────────────────────────────────────────────────────


def ordinal_ranks(values: np.ndarray) -> np.ndarray:
    """0-based ranks, ties broken by position."""
    return stats.rankdata(values, method="ordinal").astype(np.int64) - 1


def average_ranks(values: np.ndarray) -> np.ndarray:
    """0-based ranks with ties sharing their average rank."""
    return stats.rankdata(values, method="average") - 1.0


def van_der_waerden_scores(values: np.ndarray) -> np.ndarray:
    """Normal scores Φ⁻¹(rank / (n + 1)) in the rank order of `values`."""
    n = len(values)
    return stats.norm.ppf((ordinal_ranks(values) + 1) / (n + 1))


def spearman_rho(a: np.ndarray, b: np.ndarray) -> float:
    """Spearman rank correlation. 0.0 when either vector is constant."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if len(a) != len(b) or len(a) < 2:
        return 0.0
    if np.ptp(a) == 0.0 or np.ptp(b) == 0.0:
        return 0.0
    return float(stats.spearmanr(a, b).statistic)


def spearman_matrix(columns: list[np.ndarray]) -> np.ndarray:
    k = len(columns)
    out = np.eye(k)
    for i in range(k):
        for j in range(i + 1, k):
            rho = spearman_rho(columns[i], columns[j])
            out[i, j] = out[j, i] = rho
    return out


def frobenius_error(target: np.ndarray, achieved: np.ndarray) -> float:
    return float(np.sqrt(np.sum((np.asarray(target) - np.asarray(achieved)) ** 2)))


def spearman_to_pearson(rho_s: np.ndarray | float) -> np.ndarray | float:
    return 2.0 * np.sin(np.pi * np.asarray(rho_s) / 6.0)


# ── Matrix checks ─────────────────────────────────────────────────────────


def validate_correlation_matrix(matrix: np.ndarray, k: int) -> None:
    """
    Raises:
        InvalidConfig: not k×k, not finite, asymmetric, non-unit diagonal,
            or entries outside [-1, 1].
    """
    if matrix.ndim != 2 or matrix.shape != (k, k):
        raise InvalidConfig(
            f"Copula matrix must be {k}x{k}", shape=list(matrix.shape), k=k,
        )
    if not np.all(np.isfinite(matrix)):
        raise InvalidConfig("Copula matrix contains non-finite entries")
    if not np.allclose(matrix, matrix.T, atol=MATRIX_TOLERANCE):
        raise InvalidConfig("Copula matrix must be symmetric")
    if not np.allclose(np.diag(matrix), 1.0, atol=MATRIX_TOLERANCE):
        raise InvalidConfig("Copula matrix must have a unit diagonal")
    if np.any(np.abs(matrix) > 1.0 + MATRIX_TOLERANCE):
        raise InvalidConfig("Copula matrix entries must lie in [-1, 1]")


def is_positive_definite(matrix: np.ndarray) -> bool:
    try:
        np.linalg.cholesky(matrix)
        return True
    except np.linalg.LinAlgError:
        return False


def nearest_positive_definite(matrix: np.ndarray) -> np.ndarray:
    """
    Shrink off-diagonals toward zero until the Cholesky factorisation succeeds.

    The identity is always PD, so the loop terminates; the cap only bounds
    pathological input.
    """
    working = np.array(matrix, dtype=float)
    for _ in range(PD_MAX_ITERATIONS):
        if is_positive_definite(working):
            return working
        working = working * PD_SHRINK_FACTOR
        np.fill_diagonal(working, 1.0)
    return np.eye(len(working))


# ── Dependence Engine ─────────────────────────────────────────────────────


class DependenceEngine:
    """
    Impose rank correlation on already-sampled variables.

    All randomness comes from the caller's Generator so a seeded simulation
    stays reproducible.
    """

    def __init__(self, min_runs: Optional[int] = None):
        self.min_runs = min_runs if min_runs is not None else settings.min_dependence_runs

    def _require_runs(self, runs: int) -> None:
        if runs < self.min_runs:
            raise InsufficientSamples(
                f"Dependence needs at least {self.min_runs} runs, got {runs}",
                runs=runs, required=self.min_runs,
            )

    @staticmethod
    def rank_correlate(
        a: np.ndarray,
        b: np.ndarray,
        target_rho: float,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """Return a permutation of `b` whose ranks follow `a` at ~`target_rho`."""
        n = len(a)
        r = float(spearman_to_pearson(target_rho))
        anchor = van_der_waerden_scores(a)
        anchor /= anchor.std()
        noise = rng.standard_normal(n)
        score = r * anchor + math.sqrt(max(0.0, 1.0 - r * r)) * noise
        return np.sort(b)[ordinal_ranks(score)]

    def apply_pairwise(
        self,
        samples: dict[str, np.ndarray],
        config: DependenceConfig,
        rng: np.random.Generator,
    ) -> PairwiseResult:
        """
        Reorder `config.var_b` against `config.var_a`.

        Raises:
            InvalidConfig: same variable on both sides, or unknown keys.
            InsufficientSamples: fewer than `min_runs` samples.
        """
        if config.var_a == config.var_b:
            raise InvalidConfig(
                "Dependence requires two distinct variables", var_a=config.var_a, var_b=config.var_b,
            )
        missing = [key for key in (config.var_a, config.var_b) if key not in samples]
        if missing:
            raise InvalidConfig("Dependence references unknown variables", missing=missing)

        a = samples[config.var_a]
        self._require_runs(len(a))

        b_corr = self.rank_correlate(a, samples[config.var_b], config.target_rho, rng)
        achieved = spearman_rho(a, b_corr)

        out = dict(samples)
        out[config.var_b] = b_corr

        logger.debug(
            "pairwise_dependence_applied",
            var_a=config.var_a,
            var_b=config.var_b,
            target=config.target_rho,
            achieved=round(achieved, 4),
        )
        return PairwiseResult(samples=out, achieved_rho=achieved)

    def apply_copula(
        self,
        samples: dict[str, np.ndarray],
        config: CopulaConfig,
        rng: np.random.Generator,
    ) -> CopulaResult:
        """
        Reorder k variables jointly toward a Spearman target matrix.

        Positive-definite targets use Iman-Conover: independent Gaussian scores
        are decorrelated, coloured with the target's Cholesky factor, and each
        variable is reordered by the ranks of its score column. A non-PD target
        is shrunk first when `use_nearest_pd` is set; otherwise it is used as-is
        by chaining pairwise reorders along each variable's strongest link to
        an earlier variable.

        Raises:
            InvalidConfig: malformed matrix, unknown or duplicate variables.
            InsufficientSamples: fewer than `min_runs` samples.
        """
        keys = list(config.variables)
        k = len(keys)
        if k < 2:
            raise InvalidConfig("Copula needs at least two variables", k=k)
        if len(set(keys)) != k:
            raise InvalidConfig("Copula variables must be distinct", variables=keys)
        missing = [key for key in keys if key not in samples]
        if missing:
            raise InvalidConfig("Copula references unknown variables", missing=missing)

        target = np.asarray(config.matrix, dtype=float)
        validate_correlation_matrix(target, k)

        n = len(samples[keys[0]])
        self._require_runs(n)

        gaussian = np.asarray(spearman_to_pearson(target), dtype=float)
        np.fill_diagonal(gaussian, 1.0)

        projected = False
        if not is_positive_definite(gaussian) and config.use_nearest_pd:
            gaussian = nearest_positive_definite(gaussian)
            projected = True
            logger.info("copula_matrix_projected", k=k)

        out = dict(samples)
        if is_positive_definite(gaussian):
            scores = self._correlated_scores(gaussian, n, rng)
            for j, key in enumerate(keys):
                out[key] = np.sort(samples[key])[ordinal_ranks(scores[:, j])]
        else:
            logger.warning("copula_matrix_not_positive_definite", k=k, fallback="sequential_pairwise")
            for j in range(1, k):
                strengths = np.abs(target[j, :j])
                i = int(np.argmax(strengths))
                if strengths[i] > MIN_LINK_RHO:
                    out[keys[j]] = self.rank_correlate(
                        out[keys[i]], out[keys[j]], float(target[i, j]), rng,
                    )

        achieved = spearman_matrix([out[key] for key in keys])
        error = frobenius_error(target, achieved)

        logger.debug("copula_applied", k=k, frobenius_error=round(error, 4), projected=projected)

        return CopulaResult(
            samples=out,
            snapshot=CopulaSnapshot(
                k=k,
                target=target.tolist(),
                achieved=np.round(achieved, 6).tolist(),
                frobenius_error=round(error, 6),
                projected=projected,
            ),
        )

    @staticmethod
    def _correlated_scores(gaussian: np.ndarray, n: int, rng: np.random.Generator) -> np.ndarray:
        k = len(gaussian)
        scores = rng.standard_normal((n, k))
        scores = (scores - scores.mean(axis=0)) / scores.std(axis=0)
        # Remove the sample correlation the draw happens to have
        try:
            q = np.linalg.cholesky(np.corrcoef(scores, rowvar=False))
            scores = scores @ np.linalg.inv(q).T
        except np.linalg.LinAlgError:
            logger.debug("copula_score_whitening_skipped", n=n, k=k)
        return scores @ np.linalg.cholesky(gaussian).T
