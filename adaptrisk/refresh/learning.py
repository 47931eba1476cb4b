"""
Learning Trace — how decisions respond to shocks.

Each signal-triggered refresh that changes an option's expected utility adds
an entry:

    shock_magnitude = max |change_percent| × 100 over the triggering updates
    recovery_ratio  = Δutility / shock_magnitude   (0 when there is no shock)

The trace keeps the last 100 entries per decision and its antifragility
score is the mean recovery ratio: positive means the decision improves
under stress, negative means it degrades. Each rescore is also recorded in
the decision's antifragility history when one is attached.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import structlog

from adaptrisk.config import settings
from adaptrisk.refresh.history import AntifragilityHistoryService
from adaptrisk.refresh.schemas import (
    AntifragilityClass,
    HistorySubject,
    LearningTrace,
    LearningTraceEntry,
    MetricComparison,
    SignalUpdate,
)
from adaptrisk.services.audit import AuditEventType, AuditSink
from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

LEARNING_TRACE_SCOPE = "learning_traces"

# (lower bound, label, description), checked top-down
ANTIFRAGILITY_BANDS: list[tuple[float, str, str]] = [
    (0.5, "Highly Antifragile", "Consistently improves under stress"),
    (0.1, "Antifragile", "Generally benefits from volatility"),
    (-0.1, "Robust", "Maintains performance under stress"),
    (-0.5, "Fragile", "Degrades under stress"),
]
FLOOR_BAND = ("Highly Fragile", "Severely impacted by volatility")


def classify_antifragility(score: float) -> AntifragilityClass:
    for lower, label, description in ANTIFRAGILITY_BANDS:
        if score >= lower:
            return AntifragilityClass(label=label, description=description)
    return AntifragilityClass(label=FLOOR_BAND[0], description=FLOOR_BAND[1])


def shock_magnitude(updates: Sequence[SignalUpdate]) -> float:
    return max((abs(u.change_percent * 100) for u in updates), default=0.0)


class LearningTraceService:
    """Per-decision learning traces persisted in the document store."""

    def __init__(
        self,
        store: DocumentStore,
        audit: Optional[AuditSink] = None,
        max_entries: Optional[int] = None,
        history: Optional[AntifragilityHistoryService] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.audit = audit
        self.max_entries = max_entries if max_entries is not None else settings.learning_trace_max_entries
        self.history = history
        self.clock = clock

    async def get_trace(self, tenant_id: str, decision_id: str) -> Optional[LearningTrace]:
        doc = await self.store.get(tenant_id, LEARNING_TRACE_SCOPE, decision_id)
        return LearningTrace.model_validate(doc) if doc is not None else None

    async def list_traces(self, tenant_id: str) -> list[LearningTrace]:
        docs = await self.store.list_documents(tenant_id, LEARNING_TRACE_SCOPE)
        return [LearningTrace.model_validate(d) for d in docs.values()]

    async def clear_trace(self, tenant_id: str, decision_id: str) -> bool:
        return await self.store.delete(tenant_id, LEARNING_TRACE_SCOPE, decision_id)

    async def antifragility_score(self, tenant_id: str, decision_id: str) -> Optional[float]:
        trace = await self.get_trace(tenant_id, decision_id)
        return trace.antifragility_score if trace else None

    async def update_trace(
        self,
        tenant_id: str,
        decision_id: str,
        comparisons: Sequence[MetricComparison],
        updates: Sequence[SignalUpdate],
        decision_title: str = "",
    ) -> LearningTrace:
        """Append one entry per option with a utility comparison and rescore."""
        trace = await self.get_trace(tenant_id, decision_id) or LearningTrace(decision_id=decision_id)
        shock = shock_magnitude(updates)
        now = self.clock()

        new_entries = [
            LearningTraceEntry(
                timestamp=now,
                decision_id=decision_id,
                option_id=c.option_id,
                option_label=c.option_label,
                previous_utility=c.utility.old,
                new_utility=c.utility.new,
                delta_utility=c.utility.delta,
                delta_percent=c.utility.delta_percent,
                shock_magnitude=shock,
                recovery_ratio=c.utility.delta / shock if shock != 0 else 0.0,
                triggered_by=[u.signal_id for u in updates],
            )
            for c in comparisons
            if c.utility is not None
        ]

        trace.entries = (trace.entries + new_entries)[-self.max_entries:]
        if trace.entries:
            trace.antifragility_score = sum(e.recovery_ratio for e in trace.entries) / len(trace.entries)
        trace.last_updated = now

        await self.store.set(tenant_id, LEARNING_TRACE_SCOPE, decision_id, trace.model_dump(mode="json"))

        if self.audit is not None:
            await self.audit.emit(tenant_id, AuditEventType.DECISION_LEARNING_TRACE_UPDATED, {
                "decision_id": decision_id,
                "decision_title": decision_title,
                "utility_changes": [
                    {
                        "option_id": e.option_id,
                        "option_label": e.option_label,
                        "delta_utility": e.delta_utility,
                        "delta_percent": e.delta_percent,
                    }
                    for e in new_entries
                ],
                "antifragility_score": trace.antifragility_score,
                "message": "Learning trace updated.",
            })

        if self.history is not None and trace.antifragility_score is not None:
            await self.history.add_snapshot(
                tenant_id,
                HistorySubject.DECISION,
                decision_id,
                trace.antifragility_score,
                title=decision_title,
                label=classify_antifragility(trace.antifragility_score).label,
                event="learning_trace_updated",
                metadata={"shock_magnitude": shock},
            )

        logger.info(
            "learning_trace_updated",
            tenant_id=tenant_id,
            decision_id=decision_id,
            new_entries=len(new_entries),
            total_entries=len(trace.entries),
            antifragility_score=trace.antifragility_score,
        )
        return trace
