"""
Antifragility History — antifragility values of decisions and portfolios
over time.

A snapshot is recorded whenever a decision's learning trace is rescored or a
portfolio's metrics are recomputed. Trend and statistics are derived from
the stored snapshots:

    trend       first → last change; "stable" inside the subject's band
    statistics  current, average, peak, lowest, volatility (population stdev)

Decision values are learning-trace scores (mean recovery ratio); portfolio
values are 0-100 antifragility points, so each subject kind has its own
stable band.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import numpy as np
import structlog

from adaptrisk.config import settings
from adaptrisk.refresh.schemas import (
    AntifragilityHistory,
    AntifragilitySnapshot,
    HistoryStatistics,
    HistorySubject,
    HistoryTrend,
    TrendDirection,
)
from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

HISTORY_SCOPES: dict[HistorySubject, str] = {
    HistorySubject.DECISION: "antifragility_history_decisions",
    HistorySubject.PORTFOLIO: "antifragility_history_portfolios",
}

STABLE_BANDS: dict[HistorySubject, float] = {
    HistorySubject.DECISION: 0.02,
    HistorySubject.PORTFOLIO: 2.0,
}


def calculate_trend(snapshots: Sequence[AntifragilitySnapshot], stable_band: float) -> HistoryTrend:
    if len(snapshots) < 2:
        return HistoryTrend()

    first, last = snapshots[0].value, snapshots[-1].value
    change = last - first
    direction = TrendDirection.STABLE
    if abs(change) > stable_band:
        direction = TrendDirection.UP if change > 0 else TrendDirection.DOWN
    return HistoryTrend(
        direction=direction,
        change=change,
        percentage=(change / abs(first)) * 100 if first != 0 else 0.0,
    )


def history_statistics(snapshots: Sequence[AntifragilitySnapshot]) -> HistoryStatistics:
    if not snapshots:
        return HistoryStatistics()
    values = np.array([s.value for s in snapshots], dtype=float)
    return HistoryStatistics(
        current=float(values[-1]),
        average=float(values.mean()),
        peak=float(values.max()),
        lowest=float(values.min()),
        volatility=float(values.std()),
    )


class AntifragilityHistoryService:
    """Per-subject snapshot histories persisted in the document store."""

    def __init__(
        self,
        store: DocumentStore,
        max_snapshots: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.max_snapshots = (
            max_snapshots if max_snapshots is not None else settings.antifragility_history_max_snapshots
        )
        self.clock = clock

    async def get_history(
        self, tenant_id: str, subject: HistorySubject, subject_id: str
    ) -> Optional[AntifragilityHistory]:
        doc = await self.store.get(tenant_id, HISTORY_SCOPES[subject], subject_id)
        return AntifragilityHistory.model_validate(doc) if doc is not None else None

    async def list_histories(self, tenant_id: str, subject: HistorySubject) -> list[AntifragilityHistory]:
        docs = await self.store.list_documents(tenant_id, HISTORY_SCOPES[subject])
        return [AntifragilityHistory.model_validate(d) for d in docs.values()]

    async def delete_history(self, tenant_id: str, subject: HistorySubject, subject_id: str) -> bool:
        return await self.store.delete(tenant_id, HISTORY_SCOPES[subject], subject_id)

    async def add_snapshot(
        self,
        tenant_id: str,
        subject: HistorySubject,
        subject_id: str,
        value: float,
        title: str = "",
        label: Optional[str] = None,
        event: Optional[str] = None,
        metadata: Optional[dict[str, float]] = None,
    ) -> AntifragilityHistory:
        """Append a snapshot, creating the history on first use. The title follows the latest one given."""
        now = self.clock()
        history = await self.get_history(tenant_id, subject, subject_id) or AntifragilityHistory(
            subject=subject, subject_id=subject_id, created_at=now,
        )
        history.snapshots = (history.snapshots + [AntifragilitySnapshot(
            timestamp=now, value=value, label=label, event=event, metadata=metadata or {},
        )])[-self.max_snapshots:]
        if title:
            history.title = title
        history.updated_at = now

        await self.store.set(tenant_id, HISTORY_SCOPES[subject], subject_id, history.model_dump(mode="json"))
        logger.debug(
            "antifragility_snapshot_added",
            tenant_id=tenant_id,
            subject=subject.value,
            subject_id=subject_id,
            value=value,
            snapshots=len(history.snapshots),
        )
        return history

    async def trend(self, tenant_id: str, subject: HistorySubject, subject_id: str) -> HistoryTrend:
        history = await self.get_history(tenant_id, subject, subject_id)
        return calculate_trend(history.snapshots if history else [], STABLE_BANDS[subject])

    async def statistics(self, tenant_id: str, subject: HistorySubject, subject_id: str) -> HistoryStatistics:
        history = await self.get_history(tenant_id, subject, subject_id)
        return history_statistics(history.snapshots if history else [])
