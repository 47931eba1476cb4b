"""
Antifragility History Tests.

Tests:
- Trend direction, change and percentage
- Statistics over snapshots
- Snapshot persistence, bounding, tenant isolation and deletion
"""

from datetime import timedelta

import pytest

from adaptrisk.refresh.history import (
    STABLE_BANDS,
    AntifragilityHistoryService,
    calculate_trend,
    history_statistics,
)
from adaptrisk.refresh.schemas import AntifragilitySnapshot, HistorySubject, TrendDirection

from tests.conftest import NOW, OTHER_TENANT, TENANT


def _snapshots(*values: float) -> list[AntifragilitySnapshot]:
    return [AntifragilitySnapshot(value=v) for v in values]


class TestTrend:

    def test_fewer_than_two_snapshots_is_stable(self):
        assert calculate_trend([], 2.0).direction == TrendDirection.STABLE
        trend = calculate_trend(_snapshots(50.0), 2.0)
        assert (trend.direction, trend.change, trend.percentage) == (TrendDirection.STABLE, 0.0, 0.0)

    @pytest.mark.parametrize("values,direction", [
        ((50.0, 60.0), TrendDirection.UP),
        ((60.0, 50.0), TrendDirection.DOWN),
        ((50.0, 52.0), TrendDirection.STABLE),
        ((50.0, 10.0, 51.0), TrendDirection.STABLE),
    ])
    def test_direction_uses_first_and_last(self, values, direction):
        assert calculate_trend(_snapshots(*values), 2.0).direction == direction

    def test_change_and_percentage(self):
        trend = calculate_trend(_snapshots(40.0, 50.0), 2.0)
        assert trend.change == pytest.approx(10.0)
        assert trend.percentage == pytest.approx(25.0)

    def test_zero_first_value(self):
        trend = calculate_trend(_snapshots(0.0, 0.3), STABLE_BANDS[HistorySubject.DECISION])
        assert trend.direction == TrendDirection.UP
        assert trend.percentage == 0.0

    def test_negative_first_value_percentage(self):
        trend = calculate_trend(_snapshots(-0.2, -0.1), STABLE_BANDS[HistorySubject.DECISION])
        assert trend.direction == TrendDirection.UP
        assert trend.percentage == pytest.approx(50.0)


class TestStatistics:

    def test_empty(self):
        stats = history_statistics([])
        assert stats.current == stats.average == stats.volatility == 0.0

    def test_values(self):
        stats = history_statistics(_snapshots(2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0))
        assert stats.current == 9.0
        assert stats.average == pytest.approx(5.0)
        assert stats.peak == 9.0
        assert stats.lowest == 2.0
        assert stats.volatility == pytest.approx(2.0)


class TestHistoryService:

    @pytest.mark.asyncio
    async def test_first_snapshot_creates_history(self, antifragility_history):
        history = await antifragility_history.add_snapshot(
            TENANT, HistorySubject.DECISION, "dec-1", 0.2, title="Expand", event="manual",
        )
        assert history.subject == HistorySubject.DECISION
        assert history.created_at == history.updated_at == NOW
        assert history.snapshots[0].timestamp == NOW
        assert history.title == "Expand"

    @pytest.mark.asyncio
    async def test_appends_and_renames(self, antifragility_history, clock):
        await antifragility_history.add_snapshot(TENANT, HistorySubject.PORTFOLIO, "p-1", 40.0, title="Old")
        clock.now = NOW + timedelta(days=1)
        history = await antifragility_history.add_snapshot(
            TENANT, HistorySubject.PORTFOLIO, "p-1", 55.0, title="New",
        )
        assert [s.value for s in history.snapshots] == [40.0, 55.0]
        assert history.title == "New"
        assert history.created_at == NOW
        assert history.updated_at == NOW + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_trend_and_statistics_from_store(self, antifragility_history):
        for value in (40.0, 30.0, 50.0):
            await antifragility_history.add_snapshot(TENANT, HistorySubject.PORTFOLIO, "p-1", value)

        trend = await antifragility_history.trend(TENANT, HistorySubject.PORTFOLIO, "p-1")
        stats = await antifragility_history.statistics(TENANT, HistorySubject.PORTFOLIO, "p-1")

        assert trend.direction == TrendDirection.UP
        assert trend.change == pytest.approx(10.0)
        assert stats.peak == 50.0 and stats.lowest == 30.0
        assert stats.average == pytest.approx(40.0)

    @pytest.mark.asyncio
    async def test_unknown_subject_has_empty_views(self, antifragility_history):
        assert await antifragility_history.get_history(TENANT, HistorySubject.DECISION, "nope") is None
        trend = await antifragility_history.trend(TENANT, HistorySubject.DECISION, "nope")
        assert trend.direction == TrendDirection.STABLE
        assert (await antifragility_history.statistics(TENANT, HistorySubject.DECISION, "nope")).current == 0.0

    @pytest.mark.asyncio
    async def test_keeps_last_snapshots_only(self, store):
        service = AntifragilityHistoryService(store, max_snapshots=2)
        for value in (1.0, 2.0, 3.0):
            await service.add_snapshot(TENANT, HistorySubject.DECISION, "dec-1", value)
        history = await service.get_history(TENANT, HistorySubject.DECISION, "dec-1")
        assert [s.value for s in history.snapshots] == [2.0, 3.0]

    @pytest.mark.asyncio
    async def test_subjects_and_tenants_are_separate(self, antifragility_history):
        await antifragility_history.add_snapshot(TENANT, HistorySubject.DECISION, "x", 0.1)
        await antifragility_history.add_snapshot(TENANT, HistorySubject.PORTFOLIO, "x", 50.0)
        await antifragility_history.add_snapshot(OTHER_TENANT, HistorySubject.DECISION, "x", 0.9)

        decisions = await antifragility_history.list_histories(TENANT, HistorySubject.DECISION)
        assert [h.snapshots[0].value for h in decisions] == [0.1]
        assert len(await antifragility_history.list_histories(TENANT, HistorySubject.PORTFOLIO)) == 1

    @pytest.mark.asyncio
    async def test_delete(self, antifragility_history):
        await antifragility_history.add_snapshot(TENANT, HistorySubject.DECISION, "dec-1", 0.1)
        assert await antifragility_history.delete_history(TENANT, HistorySubject.DECISION, "dec-1")
        assert not await antifragility_history.delete_history(TENANT, HistorySubject.DECISION, "dec-1")
        assert await antifragility_history.get_history(TENANT, HistorySubject.DECISION, "dec-1") is None
