"""
Portfolio Repository — CRUD over the document store.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from adaptrisk.errors import NotFound
from adaptrisk.portfolio.schemas import Portfolio, PortfolioStats
from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

PORTFOLIO_SCOPE = "portfolios"


class PortfolioRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, tenant_id: str, portfolio_id: str) -> Optional[Portfolio]:
        doc = await self.store.get(tenant_id, PORTFOLIO_SCOPE, portfolio_id)
        return Portfolio.model_validate(doc) if doc is not None else None

    async def require(self, tenant_id: str, portfolio_id: str) -> Portfolio:
        portfolio = await self.get(tenant_id, portfolio_id)
        if portfolio is None:
            raise NotFound(
                f"Portfolio '{portfolio_id}' not found",
                resource_type="portfolio", resource_id=portfolio_id, tenant_id=tenant_id,
            )
        return portfolio

    async def save(self, tenant_id: str, portfolio: Portfolio) -> Portfolio:
        portfolio.updated_at = datetime.now(timezone.utc)
        await self.store.set(tenant_id, PORTFOLIO_SCOPE, portfolio.id, portfolio.model_dump(mode="json"))
        return portfolio

    async def create(self, tenant_id: str, name: str, **fields: Any) -> Portfolio:
        portfolio = Portfolio(name=name, **fields)
        await self.save(tenant_id, portfolio)
        logger.info("portfolio_created", tenant_id=tenant_id, portfolio_id=portfolio.id)
        return portfolio

    async def update(self, tenant_id: str, portfolio_id: str, **fields: Any) -> Portfolio:
        portfolio = await self.require(tenant_id, portfolio_id)
        updated = portfolio.model_copy(update=fields)
        return await self.save(tenant_id, Portfolio.model_validate(updated.model_dump()))

    async def delete(self, tenant_id: str, portfolio_id: str) -> bool:
        removed = await self.store.delete(tenant_id, PORTFOLIO_SCOPE, portfolio_id)
        if removed:
            logger.info("portfolio_deleted", tenant_id=tenant_id, portfolio_id=portfolio_id)
        return removed

    async def list_all(self, tenant_id: str) -> list[Portfolio]:
        docs = await self.store.list_documents(tenant_id, PORTFOLIO_SCOPE)
        return sorted(
            (Portfolio.model_validate(d) for d in docs.values()),
            key=lambda p: p.created_at,
        )

    async def add_decision(
        self, tenant_id: str, portfolio_id: str, decision_id: str, weight: Optional[float] = None
    ) -> Portfolio:
        portfolio = await self.require(tenant_id, portfolio_id)
        if decision_id not in portfolio.decision_ids:
            portfolio.decision_ids.append(decision_id)
        if weight is not None:
            portfolio.weights[decision_id] = weight
        return await self.save(tenant_id, portfolio)

    async def remove_decision(self, tenant_id: str, portfolio_id: str, decision_id: str) -> Portfolio:
        portfolio = await self.require(tenant_id, portfolio_id)
        portfolio.decision_ids = [d for d in portfolio.decision_ids if d != decision_id]
        portfolio.weights.pop(decision_id, None)
        return await self.save(tenant_id, portfolio)

    async def for_decision(self, tenant_id: str, decision_id: str) -> list[Portfolio]:
        return [p for p in await self.list_all(tenant_id) if decision_id in p.decision_ids]

    async def stats(self, tenant_id: str) -> PortfolioStats:
        portfolios = await self.list_all(tenant_id)
        total = sum(len(p.decision_ids) for p in portfolios)
        largest = max(portfolios, key=lambda p: len(p.decision_ids), default=None)
        return PortfolioStats(
            total_portfolios=len(portfolios),
            total_decisions=total,
            average_decisions_per_portfolio=total / len(portfolios) if portfolios else 0.0,
            largest_portfolio_id=largest.id if largest else None,
            largest_portfolio_size=len(largest.decision_ids) if largest else 0,
        )
