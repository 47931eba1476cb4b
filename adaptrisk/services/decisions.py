"""
Decision Repository.

A decision bundles its options, scenario variables, simulation settings,
linked live signals and the metrics of its last simulation run.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from adaptrisk.engine.schemas import (
    BayesianOverride,
    CopulaConfig,
    DecisionOption,
    DependenceConfig,
    GameInteractionConfig,
    ScenarioVariable,
    SimulationResult,
    TCORParams,
    UtilityParams,
)
from adaptrisk.errors import NotFound
from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

DECISION_SCOPE = "decisions"


class SignalDirection(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class LinkedSignal(BaseModel):
    """A live signal driving one scenario variable of a decision."""
    signal_id: str
    variable_key: str
    direction: SignalDirection = SignalDirection.POSITIVE
    sensitivity: float = Field(default=1.0, ge=0.0, le=1.0)
    signal_label: str = ""
    last_value: Optional[float] = None
    last_updated: Optional[datetime] = None


class OptionMetrics(BaseModel):
    """Per-option metrics kept from the last simulation (outcome arrays dropped)."""
    option_id: str
    option_label: str = ""
    ev: float
    var95: float
    cvar95: float
    raroc: Optional[float] = None
    tcor: Optional[float] = None
    expected_utility: Optional[float] = None
    certainty_equivalent: Optional[float] = None

    @classmethod
    def from_result(cls, result: SimulationResult) -> "OptionMetrics":
        return cls(
            option_id=result.option_id,
            option_label=result.option_label,
            ev=result.ev,
            var95=result.var95,
            cvar95=result.cvar95,
            raroc=result.raroc,
            tcor=result.tcor,
            expected_utility=result.expected_utility,
            certainty_equivalent=result.certainty_equivalent,
        )


class Decision(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = "Untitled Decision"
    options: list[DecisionOption] = Field(default_factory=list)
    scenario_vars: list[ScenarioVariable] = Field(default_factory=list)
    seed: int = 42
    runs: int = 1000
    utility_params: list[UtilityParams] = Field(default_factory=list)
    game_config: Optional[GameInteractionConfig] = None
    dependence_config: Optional[DependenceConfig] = None
    bayesian_overrides: list[BayesianOverride] = Field(default_factory=list)
    copula_config: Optional[CopulaConfig] = None
    horizon_months: Optional[float] = None
    tcor_params: Optional[TCORParams] = None
    linked_signals: list[LinkedSignal] = Field(default_factory=list)
    chosen_option_id: Optional[str] = None
    last_results: list[OptionMetrics] = Field(default_factory=list)
    last_refreshed_at: Optional[datetime] = None
    portfolio_id: Optional[str] = None

    def simulation_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ScenarioSimulationEngine.simulate."""
        return {
            "options": self.options,
            "scenario_vars": self.scenario_vars,
            "seed": self.seed,
            "runs": self.runs,
            "utility_params": self.utility_params,
            "game_config": self.game_config,
            "dependence_config": self.dependence_config,
            "bayesian_overrides": self.bayesian_overrides,
            "copula_config": self.copula_config,
            "horizon_months": self.horizon_months,
            "tcor_params": self.tcor_params,
        }

    def linked_signal_ids(self) -> set[str]:
        return {ls.signal_id for ls in self.linked_signals}

    def chosen_metrics(self) -> Optional[OptionMetrics]:
        """Metrics of the chosen option, else the option with the highest EV."""
        if not self.last_results:
            return None
        for metrics in self.last_results:
            if metrics.option_id == self.chosen_option_id:
                return metrics
        return max(self.last_results, key=lambda m: m.ev)


class DecisionRepository:
    """Decisions persisted in the document store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, tenant_id: str, decision_id: str) -> Optional[Decision]:
        doc = await self.store.get(tenant_id, DECISION_SCOPE, decision_id)
        return Decision.model_validate(doc) if doc is not None else None

    async def require(self, tenant_id: str, decision_id: str) -> Decision:
        decision = await self.get(tenant_id, decision_id)
        if decision is None:
            raise NotFound(
                f"Decision '{decision_id}' not found",
                resource_type="decision", resource_id=decision_id, tenant_id=tenant_id,
            )
        return decision

    async def save(self, tenant_id: str, decision: Decision) -> Decision:
        await self.store.set(tenant_id, DECISION_SCOPE, decision.id, decision.model_dump(mode="json"))
        logger.debug("decision_saved", tenant_id=tenant_id, decision_id=decision.id)
        return decision

    async def delete(self, tenant_id: str, decision_id: str) -> bool:
        return await self.store.delete(tenant_id, DECISION_SCOPE, decision_id)

    async def list_all(self, tenant_id: str) -> list[Decision]:
        docs = await self.store.list_documents(tenant_id, DECISION_SCOPE)
        return [Decision.model_validate(d) for d in docs.values()]

    async def with_linked_signals(self, tenant_id: str) -> list[Decision]:
        return [d for d in await self.list_all(tenant_id) if d.linked_signals]
