"""
Simulation Engine Schemas.

Validated configuration types for one simulation call (options, scenario
variables, utility, dependence, copula, Bayesian overrides, game) and the
per-option result.
"""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from adaptrisk.engine.distributions import Distribution

GLOBAL_SCOPE = "global"


# ── Enums ──────────────────────────────────────────────────────────────


class Channel(StrEnum):
    RETURN = "return"
    COST = "cost"


class UtilityMode(StrEnum):
    CARA = "CARA"
    CRRA = "CRRA"
    EXPONENTIAL = "Exponential"
    QUADRATIC = "Quadratic"
    POWER = "Power"


class OurStrategy(StrEnum):
    CONSERVATIVE = "Conservative"
    AGGRESSIVE = "Aggressive"


class CompetitorMove(StrEnum):
    MATCH = "Match"
    UNDERCUT = "Undercut"


# ── Inputs ─────────────────────────────────────────────────────────────


class DecisionOption(BaseModel):
    """
    One alternative of a decision.

    `expected_return` / `cost` are optional annual baselines. A channel with a
    baseline is scaled multiplicatively by its variables; a channel without
    one accumulates them additively.
    """
    id: str = Field(min_length=1)
    label: str = ""
    expected_return: Optional[float] = None
    cost: Optional[float] = None
    horizon_months: Optional[float] = Field(default=None, gt=0)
    strategy: OurStrategy = OurStrategy.CONSERVATIVE
    mitigation_cost: Optional[float] = Field(default=None, ge=0)


class ScenarioVariable(BaseModel):
    """An uncertain input driving one option (or all options when global)."""
    key: str = Field(min_length=1)
    applies_to: str = GLOBAL_SCOPE      # option id or "global"
    channel: Channel = Channel.RETURN
    distribution: Distribution
    weight: float = Field(default=1.0, gt=0)

    def applies_to_option(self, option_id: str) -> bool:
        return self.applies_to == GLOBAL_SCOPE or self.applies_to == option_id


class UtilityParams(BaseModel):
    mode: UtilityMode = UtilityMode.CARA
    a: float = Field(default=1.0, ge=0.0, description="Risk aversion coefficient")
    scale: float = Field(default=1.0, gt=0.0, description="Outcome scale divider")


class DependenceConfig(BaseModel):
    """Pairwise Spearman target between two variables."""
    var_a: str
    var_b: str
    target_rho: float = Field(ge=-0.9, le=0.9)


class CopulaConfig(BaseModel):
    """k-variable Spearman target matrix (row/column order = `variables`)."""
    variables: list[str]
    matrix: list[list[float]]
    use_nearest_pd: bool = True


class BayesianOverride(BaseModel):
    """Prior + likelihood evidence for one variable's location/scale."""
    variable_key: str
    prior_mean: float
    prior_var: float
    likelihood_mean: float
    likelihood_var: float


class TCORParams(BaseModel):
    """Total-cost-of-risk rates."""
    insurance_rate: float = Field(default=0.0, ge=0.0, description="Fraction of option cost")
    contingency_on_cap: float = Field(default=0.0, ge=0.0, description="Fraction of economic capital")


class MoveMultipliers(BaseModel):
    ret_mult: dict[OurStrategy, float]
    cost_mult: dict[OurStrategy, float]


def _default_multipliers() -> dict[CompetitorMove, MoveMultipliers]:
    return {
        CompetitorMove.MATCH: MoveMultipliers(
            ret_mult={OurStrategy.CONSERVATIVE: 1.0, OurStrategy.AGGRESSIVE: 1.05},
            cost_mult={OurStrategy.CONSERVATIVE: 1.0, OurStrategy.AGGRESSIVE: 1.0},
        ),
        CompetitorMove.UNDERCUT: MoveMultipliers(
            ret_mult={OurStrategy.CONSERVATIVE: 0.95, OurStrategy.AGGRESSIVE: 0.85},
            cost_mult={OurStrategy.CONSERVATIVE: 1.0, OurStrategy.AGGRESSIVE: 1.02},
        ),
    }


class GameInteractionConfig(BaseModel):
    """2×2 game: competitor plays Undercut with probability `p_undercut`."""
    p_undercut: float = Field(default=0.4, ge=0.0, le=1.0)
    multipliers: dict[CompetitorMove, MoveMultipliers] = Field(default_factory=_default_multipliers)


# ── Outputs ────────────────────────────────────────────────────────────


class CopulaSnapshot(BaseModel):
    k: int
    target: list[list[float]]
    achieved: list[list[float]]
    frobenius_error: float
    projected: bool = False     # target was shrunk to the nearest PD matrix


class UtilityOutcome(BaseModel):
    mode: UtilityMode
    expected_utility: float
    certainty_equivalent: float
    risk_premium: float
    fallback: bool = False      # CE was non-finite and fell back to ev


class TCORComponents(BaseModel):
    expected_loss: float
    insurance: float
    contingency: float
    mitigation: float

    @property
    def total(self) -> float:
        return self.expected_loss + self.insurance + self.contingency + self.mitigation


class SimulationResult(BaseModel):
    option_id: str
    option_label: str
    runs: int
    outcomes: list[float]
    ev: float
    var95: float
    cvar95: float
    economic_capital: float = 1.0
    raroc: float = 0.0
    tcor: Optional[float] = None
    tcor_components: Optional[TCORComponents] = None
    horizon_months: float = 12.0
    utilities: list[UtilityOutcome] = Field(default_factory=list)
    expected_utility: Optional[float] = None
    certainty_equivalent: Optional[float] = None
    risk_premium: Optional[float] = None
    achieved_spearman: Optional[float] = None
    copula: Optional[CopulaSnapshot] = None
    run_fingerprint: str = ""
