"""
Simulation API Endpoints.

POST /api/v1/simulations                        — run a scenario simulation (stateless)
"""

import asyncio
from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from adaptrisk.api.deps import get_registry, get_tenant_id
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
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/simulations", tags=["simulations"])


class SimulationRequest(BaseModel):
    options: list[DecisionOption] = Field(min_length=1)
    scenario_vars: list[ScenarioVariable] = Field(default_factory=list)
    seed: Optional[int] = None
    runs: Optional[int] = None
    utility_params: Optional[Union[UtilityParams, list[UtilityParams]]] = None
    game_config: Optional[GameInteractionConfig] = None
    dependence_config: Optional[DependenceConfig] = None
    bayesian_overrides: list[BayesianOverride] = Field(default_factory=list)
    copula_config: Optional[CopulaConfig] = None
    horizon_months: Optional[float] = Field(default=None, gt=0)
    tcor_params: Optional[TCORParams] = None
    include_outcomes: bool = False

    def simulation_kwargs(self) -> dict:
        """Keyword arguments for ScenarioSimulationEngine.simulate (models kept as models)."""
        return {name: getattr(self, name) for name in type(self).model_fields if name != "include_outcomes"}


class SimulationResponse(BaseModel):
    results: list[SimulationResult]
    run_fingerprint: str


async def run_simulation(registry: ServiceRegistry, kwargs: dict, include_outcomes: bool) -> SimulationResponse:
    results = await asyncio.to_thread(registry.simulation_engine.simulate, **kwargs)
    if not include_outcomes:
        results = [r.model_copy(update={"outcomes": []}) for r in results]
    return SimulationResponse(
        results=results,
        run_fingerprint=results[0].run_fingerprint if results else "",
    )


@router.post("", response_model=SimulationResponse)
async def simulate(
    body: SimulationRequest,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """
    Run the Monte Carlo simulation for every option.

    Same seed + same inputs → identical results. Outcome arrays are omitted
    unless include_outcomes is set.
    """
    return await run_simulation(registry, body.simulation_kwargs(), body.include_outcomes)
