"""
Portfolio Repository Tests.
"""

import pytest

from adaptrisk.errors import NotFound
from adaptrisk.portfolio.repository import PortfolioRepository

from tests.conftest import OTHER_TENANT, TENANT


class TestPortfolioCrud:

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        repo = PortfolioRepository(store)
        created = await repo.create(TENANT, "Expansion", owner="cfo", time_horizon_months=24)
        fetched = await repo.require(TENANT, created.id)
        assert fetched.name == "Expansion"
        assert fetched.time_horizon_months == 24

    @pytest.mark.asyncio
    async def test_tenant_isolation(self, store):
        repo = PortfolioRepository(store)
        created = await repo.create(TENANT, "Private")
        assert await repo.get(OTHER_TENANT, created.id) is None
        assert await repo.list_all(OTHER_TENANT) == []

    @pytest.mark.asyncio
    async def test_add_and_remove_decision(self, store):
        repo = PortfolioRepository(store)
        portfolio = await repo.create(TENANT, "P")
        await repo.add_decision(TENANT, portfolio.id, "d1", weight=2.0)
        await repo.add_decision(TENANT, portfolio.id, "d1")
        updated = await repo.add_decision(TENANT, portfolio.id, "d2")
        assert updated.decision_ids == ["d1", "d2"]
        assert updated.weights == {"d1": 2.0}

        removed = await repo.remove_decision(TENANT, portfolio.id, "d1")
        assert removed.decision_ids == ["d2"]
        assert removed.weights == {}

    @pytest.mark.asyncio
    async def test_for_decision(self, store):
        repo = PortfolioRepository(store)
        a = await repo.create(TENANT, "A", decision_ids=["d1"])
        await repo.create(TENANT, "B", decision_ids=["d2"])
        assert [p.id for p in await repo.for_decision(TENANT, "d1")] == [a.id]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, store):
        repo = PortfolioRepository(store)
        portfolio = await repo.create(TENANT, "Old")
        updated = await repo.update(TENANT, portfolio.id, name="New")
        assert updated.name == "New"
        assert await repo.delete(TENANT, portfolio.id)
        assert not await repo.delete(TENANT, portfolio.id)
        with pytest.raises(NotFound):
            await repo.require(TENANT, portfolio.id)

    @pytest.mark.asyncio
    async def test_stats(self, store):
        repo = PortfolioRepository(store)
        await repo.create(TENANT, "A", decision_ids=["d1", "d2", "d3"])
        big = await repo.create(TENANT, "B", decision_ids=["d4"])
        stats = await repo.stats(TENANT)
        assert stats.total_portfolios == 2
        assert stats.total_decisions == 4
        assert stats.average_decisions_per_portfolio == 2.0
        assert stats.largest_portfolio_size == 3
        assert stats.largest_portfolio_id != big.id
