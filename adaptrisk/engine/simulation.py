"""
Scenario Simulation Engine.

Monte Carlo over decision options:

1. Validate the whole request once (runs, keys, dependence, copula, overrides)
2. Per option, spawn an independent child stream from SeedSequence(seed)
3. Sample each relevant variable in declaration order (Bayesian-adjusted
   where an override exists)
4. Reorder for dependence (copula takes precedence over pairwise)
5. Combine into return / cost per run, apply competitor moves, scale by
   horizon, and take outcome = return - cost
6. Tail metrics (EV, VaR95, CVaR95), economic capital, RAROC, optional
   total cost of risk, and utility metrics per requested mode

Same seed + same inputs → identical outcome arrays.
"""

import hashlib
import json
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import structlog

from adaptrisk.config import settings
from adaptrisk.engine.bayesian import PriorBlender
from adaptrisk.engine.dependence import DependenceEngine, validate_correlation_matrix
from adaptrisk.engine.distributions import Distribution
from adaptrisk.engine.game import GameInteractionModifier
from adaptrisk.engine.schemas import (
    GLOBAL_SCOPE,
    BayesianOverride,
    Channel,
    CopulaConfig,
    CopulaSnapshot,
    DecisionOption,
    DependenceConfig,
    GameInteractionConfig,
    ScenarioVariable,
    SimulationResult,
    TCORComponents,
    TCORParams,
    UtilityParams,
)
from adaptrisk.engine.utility import UtilityFunction
from adaptrisk.errors import InsufficientSamples, InvalidConfig

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

TAIL_QUANTILE: float = 0.05
BASE_HORIZON_MONTHS: float = 12.0
MIN_ECONOMIC_CAPITAL: float = 1.0
FINGERPRINT_LENGTH: int = 12


@dataclass(frozen=True)
class TailMetrics:
    ev: float
    var95: float
    cvar95: float


def tail_metrics(outcomes: np.ndarray) -> TailMetrics:
    """
    EV, VaR95 and CVaR95 from one sorted copy of `outcomes`.

    VaR95 is sorted[floor(0.05·n)]; CVaR95 is the mean of sorted[:idx+1], so
    CVaR95 ≤ VaR95 always. A single run is its own VaR and CVaR.
    """
    ordered = np.sort(np.asarray(outcomes, dtype=float))
    idx = int(math.floor(len(ordered) * TAIL_QUANTILE))
    var95 = float(ordered[idx])
    cvar95 = min(float(ordered[: idx + 1].mean()), var95)
    return TailMetrics(ev=float(ordered.mean()), var95=var95, cvar95=cvar95)


def economic_capital(cvar95: float, horizon_months: float) -> float:
    """max(1, |CVaR95|) scaled by sqrt(h), h = horizon in years."""
    return max(MIN_ECONOMIC_CAPITAL, abs(cvar95)) * math.sqrt(horizon_months / BASE_HORIZON_MONTHS)


def total_cost_of_risk(
    outcomes: np.ndarray,
    option: DecisionOption,
    capital: float,
    params: TCORParams,
) -> TCORComponents:
    """
    Expected loss + insurance + contingency + mitigation.

    Expected loss is P(outcome < 0) · mean |negative outcome|.
    """
    outcomes = np.asarray(outcomes, dtype=float)
    losses = outcomes[outcomes < 0]
    expected_loss = float(-losses.sum() / len(outcomes)) if len(losses) else 0.0
    return TCORComponents(
        expected_loss=expected_loss,
        insurance=params.insurance_rate * (option.cost or 0.0),
        contingency=params.contingency_on_cap * capital,
        mitigation=option.mitigation_cost or 0.0,
    )


def compute_run_fingerprint(
    seed: int,
    runs: int,
    options: Sequence[DecisionOption],
    variables: Sequence[ScenarioVariable],
) -> str:
    """SHA-256 over canonical JSON of the inputs; first 12 hex chars."""
    payload = {
        "seed": seed,
        "runs": runs,
        "options": sorted(
            (
                {
                    "id": o.id,
                    "label": o.label,
                    "expected_return": o.expected_return,
                    "cost": o.cost,
                    "horizon_months": o.horizon_months,
                }
                for o in options
            ),
            key=lambda o: o["id"],
        ),
        "scenario_vars": sorted(
            (v.model_dump(mode="json") for v in variables),
            key=lambda v: v["key"],
        ),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


class ScenarioSimulationEngine:
    """
    Production Monte Carlo engine.

    Pure computation: no I/O, no shared state between calls.
    """

    def __init__(
        self,
        dependence: Optional[DependenceEngine] = None,
        blender: Optional[PriorBlender] = None,
        max_runs: Optional[int] = None,
    ):
        self.dependence = dependence or DependenceEngine()
        self.blender = blender or PriorBlender()
        self.max_runs = max_runs if max_runs is not None else settings.max_runs

    def simulate(
        self,
        options: Sequence[DecisionOption],
        scenario_vars: Sequence[ScenarioVariable],
        seed: Optional[int] = None,
        runs: Optional[int] = None,
        utility_params: UtilityParams | Sequence[UtilityParams] | None = None,
        game_config: Optional[GameInteractionConfig] = None,
        dependence_config: Optional[DependenceConfig] = None,
        bayesian_overrides: Optional[Sequence[BayesianOverride]] = None,
        copula_config: Optional[CopulaConfig] = None,
        horizon_months: Optional[float] = None,
        tcor_params: Optional[TCORParams] = None,
    ) -> list[SimulationResult]:
        """
        Simulate every option.

        Raises:
            InvalidConfig: malformed request (see _validate).
            InsufficientSamples: dependence or copula with too few runs.
        """
        seed = settings.default_seed if seed is None else seed
        runs = settings.default_runs if runs is None else runs
        if isinstance(utility_params, UtilityParams):
            utility_params = [utility_params]
        utilities = [UtilityFunction(p) for p in (utility_params or [])]

        self._validate(options, scenario_vars, runs, dependence_config, copula_config)
        distributions = self._effective_distributions(scenario_vars, bayesian_overrides or [])
        fingerprint = compute_run_fingerprint(seed, runs, options, scenario_vars)

        modifier = GameInteractionModifier(game_config) if game_config else None
        streams = np.random.SeedSequence(seed).spawn(len(options))

        results: list[SimulationResult] = []
        for option, stream in zip(options, streams):
            results.append(self._simulate_option(
                option=option,
                variables=[v for v in scenario_vars if v.applies_to_option(option.id)],
                distributions=distributions,
                runs=runs,
                rng=np.random.default_rng(stream),
                utilities=utilities,
                modifier=modifier,
                dependence_config=dependence_config,
                copula_config=copula_config,
                horizon_months=horizon_months,
                tcor_params=tcor_params,
                fingerprint=fingerprint,
            ))

        logger.info(
            "simulation_completed",
            options=len(options),
            variables=len(scenario_vars),
            runs=runs,
            seed=seed,
            run_fingerprint=fingerprint,
        )
        return results

    # ── Validation ────────────────────────────────────────────────────

    def _validate(
        self,
        options: Sequence[DecisionOption],
        variables: Sequence[ScenarioVariable],
        runs: int,
        dependence_config: Optional[DependenceConfig],
        copula_config: Optional[CopulaConfig],
    ) -> None:
        if runs < 1:
            raise InvalidConfig("runs must be at least 1", runs=runs)
        if runs > self.max_runs:
            raise InvalidConfig(f"runs must not exceed {self.max_runs}", runs=runs, max_runs=self.max_runs)

        option_ids = [o.id for o in options]
        if len(set(option_ids)) != len(option_ids):
            raise InvalidConfig("Option ids must be unique", option_ids=option_ids)

        keys = [v.key for v in variables]
        if len(set(keys)) != len(keys):
            raise InvalidConfig("Scenario variable keys must be unique", keys=keys)

        known_scopes = set(option_ids) | {GLOBAL_SCOPE}
        for v in variables:
            if v.applies_to not in known_scopes:
                raise InvalidConfig(
                    f"Variable '{v.key}' applies to unknown option '{v.applies_to}'",
                    key=v.key, applies_to=v.applies_to,
                )

        min_runs = self.dependence.min_runs
        if copula_config is not None:
            unknown = [k for k in copula_config.variables if k not in keys]
            if unknown:
                raise InvalidConfig("Copula references unknown variables", missing=unknown)
            if len(set(copula_config.variables)) != len(copula_config.variables):
                raise InvalidConfig("Copula variables must be distinct", variables=copula_config.variables)
            validate_correlation_matrix(
                np.asarray(copula_config.matrix, dtype=float), len(copula_config.variables),
            )
            if runs < min_runs:
                raise InsufficientSamples(
                    f"Copula needs at least {min_runs} runs, got {runs}", runs=runs, required=min_runs,
                )

        if dependence_config is not None:
            if dependence_config.var_a == dependence_config.var_b:
                raise InvalidConfig(
                    "Dependence requires two distinct variables",
                    var_a=dependence_config.var_a, var_b=dependence_config.var_b,
                )
            unknown = [k for k in (dependence_config.var_a, dependence_config.var_b) if k not in keys]
            if unknown:
                raise InvalidConfig("Dependence references unknown variables", missing=unknown)
            if runs < min_runs:
                raise InsufficientSamples(
                    f"Dependence needs at least {min_runs} runs, got {runs}", runs=runs, required=min_runs,
                )

    def _effective_distributions(
        self,
        variables: Sequence[ScenarioVariable],
        overrides: Sequence[BayesianOverride],
    ) -> dict[str, Distribution]:
        distributions = {v.key: v.distribution for v in variables}
        for override in overrides:
            if override.variable_key not in distributions:
                raise InvalidConfig(
                    "Bayesian override references unknown variable",
                    variable_key=override.variable_key,
                )
            adjusted, _ = self.blender.apply_override(distributions[override.variable_key], override)
            distributions[override.variable_key] = adjusted
        return distributions

    # ── Per-option simulation ─────────────────────────────────────────

    def _simulate_option(
        self,
        option: DecisionOption,
        variables: list[ScenarioVariable],
        distributions: dict[str, Distribution],
        runs: int,
        rng: np.random.Generator,
        utilities: list[UtilityFunction],
        modifier: Optional[GameInteractionModifier],
        dependence_config: Optional[DependenceConfig],
        copula_config: Optional[CopulaConfig],
        horizon_months: Optional[float],
        tcor_params: Optional[TCORParams],
        fingerprint: str,
    ) -> SimulationResult:
        samples = {v.key: distributions[v.key].sample(rng, runs) for v in variables}

        achieved_spearman: Optional[float] = None
        snapshot: Optional[CopulaSnapshot] = None
        if copula_config is not None and all(k in samples for k in copula_config.variables):
            copula = self.dependence.apply_copula(samples, copula_config, rng)
            samples = copula.samples
            snapshot = copula.snapshot
        elif dependence_config is not None and (
            dependence_config.var_a in samples and dependence_config.var_b in samples
        ):
            pairwise = self.dependence.apply_pairwise(samples, dependence_config, rng)
            samples = pairwise.samples
            achieved_spearman = round(pairwise.achieved_rho, 6)

        returns, costs = self._combine(option, variables, samples, runs)

        if modifier is not None:
            game = modifier.apply(returns, costs, option.strategy, rng)
            returns, costs = game.returns, game.costs

        months = option.horizon_months or horizon_months or BASE_HORIZON_MONTHS
        outcomes = (returns - costs) * (months / BASE_HORIZON_MONTHS)

        metrics = tail_metrics(outcomes)
        capital = economic_capital(metrics.cvar95, months)
        tcor = total_cost_of_risk(outcomes, option, capital, tcor_params) if tcor_params else None
        utility_outcomes = [u.evaluate(outcomes, metrics.ev) for u in utilities]
        primary = utility_outcomes[0] if utility_outcomes else None

        return SimulationResult(
            option_id=option.id,
            option_label=option.label,
            runs=runs,
            outcomes=outcomes.tolist(),
            ev=metrics.ev,
            var95=metrics.var95,
            cvar95=metrics.cvar95,
            economic_capital=capital,
            raroc=metrics.ev / capital,
            tcor=tcor.total if tcor else None,
            tcor_components=tcor,
            horizon_months=months,
            utilities=utility_outcomes,
            expected_utility=primary.expected_utility if primary else None,
            certainty_equivalent=primary.certainty_equivalent if primary else None,
            risk_premium=primary.risk_premium if primary else None,
            achieved_spearman=achieved_spearman,
            copula=snapshot,
            run_fingerprint=fingerprint,
        )

    @staticmethod
    def _combine(
        option: DecisionOption,
        variables: list[ScenarioVariable],
        samples: dict[str, np.ndarray],
        runs: int,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Return / cost per run.

        Channel with a baseline: value *= (1 + w·x), floored at 0.
        Channel without a baseline: value += w·x.
        """
        returns = np.full(runs, option.expected_return or 0.0, dtype=float)
        costs = np.full(runs, option.cost or 0.0, dtype=float)

        for v in variables:
            contribution = v.weight * samples[v.key]
            if v.channel == Channel.RETURN:
                if option.expected_return is not None:
                    returns = np.maximum(0.0, returns * (1.0 + contribution))
                else:
                    returns = returns + contribution
            else:
                if option.cost is not None:
                    costs = np.maximum(0.0, costs * (1.0 + contribution))
                else:
                    costs = costs + contribution

        return returns, costs
