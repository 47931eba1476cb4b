"""
Decision API Endpoints.

GET    /api/v1/decisions                        — list decisions
POST   /api/v1/decisions                        — create a decision
GET    /api/v1/decisions/{decision_id}          — get a decision
PUT    /api/v1/decisions/{decision_id}          — replace a decision
DELETE /api/v1/decisions/{decision_id}          — delete a decision
POST   /api/v1/decisions/{decision_id}/simulate — simulate and store the metrics
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Query

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.api.routers.simulations import SimulationResponse, run_simulation
from adaptrisk.errors import NotFound
from adaptrisk.services.decisions import Decision, OptionMetrics
from adaptrisk.services.registry import ServiceRegistry

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/decisions", tags=["decisions"])


@router.get("", response_model=list[Decision])
async def list_decisions(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.decisions.list_all(tenant_id)


@router.post("", response_model=Decision, status_code=201)
async def create_decision(
    body: Decision,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.decisions.save(tenant_id, body)


@router.get("/{decision_id}", response_model=Decision)
async def get_decision(
    decision_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.decisions.require(tenant_id, decision_id)


@router.put("/{decision_id}", response_model=Decision)
async def replace_decision(
    decision_id: str,
    body: Decision,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    await registry.decisions.require(tenant_id, decision_id)
    return await registry.decisions.save(tenant_id, body.model_copy(update={"id": decision_id}))


@router.delete("/{decision_id}", status_code=204)
async def delete_decision(
    decision_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    if not await registry.decisions.delete(tenant_id, decision_id):
        raise NotFound(
            f"Decision '{decision_id}' not found",
            resource_type="decision", resource_id=decision_id,
        )


@router.post("/{decision_id}/simulate", response_model=SimulationResponse)
async def simulate_decision(
    decision_id: str,
    include_outcomes: bool = Query(default=False),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """
    Simulate a stored decision and keep its per-option metrics.

    Portfolios containing the decision are recomputed afterwards.
    """
    decision = await registry.decisions.require(tenant_id, decision_id)
    response = await run_simulation(registry, decision.simulation_kwargs(), include_outcomes)

    decision.last_results = [OptionMetrics.from_result(r) for r in response.results]
    decision.last_refreshed_at = datetime.now(timezone.utc)
    await registry.decisions.save(tenant_id, decision)

    for portfolio in await registry.portfolios.for_decision(tenant_id, decision_id):
        try:
            await registry.portfolio_aggregator.update_portfolio_metrics(tenant_id, portfolio.id)
        except Exception as e:
            # Simulation result stands even if a portfolio recompute fails
            logger.error("portfolio_recompute_failed", portfolio_id=portfolio.id, error=str(e))

    return response
