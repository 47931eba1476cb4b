"""
Portfolio API Endpoints.

GET    /api/v1/portfolios                                   — list portfolios
POST   /api/v1/portfolios                                   — create a portfolio
GET    /api/v1/portfolios/stats                             — portfolio statistics
POST   /api/v1/portfolios/metrics/compute                   — metrics for ad-hoc decision risks
GET    /api/v1/portfolios/{portfolio_id}                    — get a portfolio
PATCH  /api/v1/portfolios/{portfolio_id}                    — update name/description/…
DELETE /api/v1/portfolios/{portfolio_id}                    — delete a portfolio
POST   /api/v1/portfolios/{portfolio_id}/decisions          — add a decision
DELETE /api/v1/portfolios/{portfolio_id}/decisions/{id}     — remove a decision
POST   /api/v1/portfolios/{portfolio_id}/metrics            — recompute metrics
GET    /api/v1/portfolios/{portfolio_id}/history            — metrics history
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.errors import NotFound
from adaptrisk.portfolio.schemas import DecisionRisk, Portfolio, PortfolioMetrics, PortfolioStats
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/portfolios", tags=["portfolios"])


class PortfolioCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    owner: str = ""
    time_horizon_months: int = Field(default=12, gt=0)
    goal_alignment: str = ""
    decision_ids: list[str] = Field(default_factory=list)
    weights: dict[str, float] = Field(default_factory=dict)


class PortfolioUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    time_horizon_months: Optional[int] = Field(default=None, gt=0)
    goal_alignment: Optional[str] = None


class AddDecisionBody(BaseModel):
    decision_id: str
    weight: Optional[float] = Field(default=None, gt=0)


@router.get("", response_model=list[Portfolio])
async def list_portfolios(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.portfolios.list_all(tenant_id)


@router.post("", response_model=Portfolio, status_code=201)
async def create_portfolio(
    body: PortfolioCreate,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    data = body.model_dump()
    return await registry.portfolios.create(tenant_id, data.pop("name"), **data)


@router.get("/stats", response_model=PortfolioStats)
async def portfolio_stats(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.portfolios.stats(tenant_id)


@router.post("/metrics/compute", response_model=PortfolioMetrics)
async def compute_metrics(
    decisions: list[DecisionRisk],
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """Aggregate EV / VaR / CVaR / diversification for the given decisions. Nothing is stored."""
    return registry.portfolio_aggregator.compute_portfolio_metrics(decisions)


@router.get("/{portfolio_id}", response_model=Portfolio)
async def get_portfolio(
    portfolio_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.portfolios.require(tenant_id, portfolio_id)


@router.patch("/{portfolio_id}", response_model=Portfolio)
async def update_portfolio(
    portfolio_id: str,
    body: PortfolioUpdate,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.portfolios.update(tenant_id, portfolio_id, **body.model_dump(exclude_none=True))


@router.delete("/{portfolio_id}", status_code=204)
async def delete_portfolio(
    portfolio_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    if not await registry.portfolios.delete(tenant_id, portfolio_id):
        raise NotFound(
            f"Portfolio '{portfolio_id}' not found",
            resource_type="portfolio", resource_id=portfolio_id,
        )


@router.post("/{portfolio_id}/decisions", response_model=Portfolio)
async def add_decision(
    portfolio_id: str,
    body: AddDecisionBody,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    await registry.decisions.require(tenant_id, body.decision_id)
    await registry.portfolios.add_decision(tenant_id, portfolio_id, body.decision_id, body.weight)
    return await registry.portfolio_aggregator.update_portfolio_metrics(tenant_id, portfolio_id)


@router.delete("/{portfolio_id}/decisions/{decision_id}", response_model=Portfolio)
async def remove_decision(
    portfolio_id: str,
    decision_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    await registry.portfolios.remove_decision(tenant_id, portfolio_id, decision_id)
    return await registry.portfolio_aggregator.update_portfolio_metrics(tenant_id, portfolio_id)


@router.post("/{portfolio_id}/metrics", response_model=Portfolio)
async def recompute_metrics(
    portfolio_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.portfolio_aggregator.update_portfolio_metrics(tenant_id, portfolio_id)


@router.get("/{portfolio_id}/history", response_model=list[PortfolioMetrics])
async def metrics_history(
    portfolio_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """Previous metrics, oldest first (current metrics excluded)."""
    portfolio = await registry.portfolios.require(tenant_id, portfolio_id)
    return portfolio.metrics_history
