"""
Signal Refresh Schemas.

Signal updates, refresh results, metric comparisons, the learning trace and
antifragility history.
`change_percent` is a fraction: 0.08 means an 8% move.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from adaptrisk.config import settings
from adaptrisk.services.decisions import OptionMetrics


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Signals ────────────────────────────────────────────────────────────


def change_fraction(old_value: float, new_value: float) -> float:
    """(new - old) / |old|; a move away from zero counts as a full (100%) change."""
    if old_value == 0:
        return 0.0 if new_value == 0 else 1.0
    return (new_value - old_value) / abs(old_value)


class SignalUpdate(BaseModel):
    signal_id: str
    signal_label: str = ""
    old_value: float
    new_value: float
    change_percent: float
    timestamp: datetime = Field(default_factory=_now)

    @classmethod
    def from_values(
        cls, signal_id: str, old_value: float, new_value: float, signal_label: str = ""
    ) -> "SignalUpdate":
        return cls(
            signal_id=signal_id,
            signal_label=signal_label,
            old_value=old_value,
            new_value=new_value,
            change_percent=change_fraction(old_value, new_value),
        )


def merge_updates(updates: list[SignalUpdate]) -> list[SignalUpdate]:
    """
    Union of updates keyed by signal id, in first-seen order.

    Repeated updates of one signal collapse into a single move from the
    earliest old value to the latest new value.
    """
    merged: dict[str, SignalUpdate] = {}
    for update in updates:
        first = merged.get(update.signal_id)
        if first is None:
            merged[update.signal_id] = update
            continue
        merged[update.signal_id] = SignalUpdate(
            signal_id=update.signal_id,
            signal_label=update.signal_label or first.signal_label,
            old_value=first.old_value,
            new_value=update.new_value,
            change_percent=change_fraction(first.old_value, update.new_value),
            timestamp=update.timestamp,
        )
    return list(merged.values())


class RefreshConfig(BaseModel):
    """Per-tenant auto-refresh settings."""
    enabled: bool = Field(default_factory=lambda: settings.auto_refresh_enabled)
    change_threshold: float = Field(default_factory=lambda: settings.refresh_change_threshold, ge=0.0)
    batch_size: int = Field(default_factory=lambda: settings.refresh_batch_size, ge=1)
    debounce_seconds: float = Field(default_factory=lambda: settings.refresh_debounce_seconds, ge=0.0)


# ── Comparison / results ───────────────────────────────────────────────


class MetricDelta(BaseModel):
    old: float
    new: float
    delta: float
    delta_percent: float            # 0 when old is 0

    @classmethod
    def between(cls, old: float, new: float) -> "MetricDelta":
        delta = new - old
        return cls(
            old=old,
            new=new,
            delta=delta,
            delta_percent=(delta / abs(old)) * 100 if old != 0 else 0.0,
        )


class MetricComparison(BaseModel):
    option_id: str
    option_label: str = ""
    ev: MetricDelta
    var95: MetricDelta
    cvar95: MetricDelta
    utility: Optional[MetricDelta] = None

    def is_significant(self, percent: float) -> bool:
        return any(abs(m.delta_percent) > percent for m in (self.ev, self.var95, self.cvar95))


class RefreshResult(BaseModel):
    decision_id: str
    decision_title: str = ""
    success: bool
    previous_results: list[OptionMetrics] = Field(default_factory=list)
    new_results: list[OptionMetrics] = Field(default_factory=list)
    comparisons: list[MetricComparison] = Field(default_factory=list)
    error: Optional[str] = None
    refreshed_at: datetime = Field(default_factory=_now)
    triggered_by: list[SignalUpdate] = Field(default_factory=list)


# ── Learning trace ─────────────────────────────────────────────────────


class LearningTraceEntry(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    decision_id: str
    option_id: str
    option_label: str = ""
    previous_utility: float
    new_utility: float
    delta_utility: float
    delta_percent: float
    shock_magnitude: float          # max |change_percent| × 100 of the triggering updates
    recovery_ratio: float           # delta_utility / shock_magnitude, 0 when no shock
    triggered_by: list[str] = Field(default_factory=list)


class LearningTrace(BaseModel):
    decision_id: str
    entries: list[LearningTraceEntry] = Field(default_factory=list)
    antifragility_score: Optional[float] = None
    last_updated: datetime = Field(default_factory=_now)


class AntifragilityClass(BaseModel):
    label: str
    description: str


# ── Antifragility history ──────────────────────────────────────────────


class HistorySubject(StrEnum):
    DECISION = "decision"
    PORTFOLIO = "portfolio"


class TrendDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class AntifragilitySnapshot(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    value: float
    label: Optional[str] = None
    event: Optional[str] = None
    metadata: dict[str, float] = Field(default_factory=dict)


class AntifragilityHistory(BaseModel):
    subject: HistorySubject
    subject_id: str
    title: str = ""
    snapshots: list[AntifragilitySnapshot] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class HistoryTrend(BaseModel):
    direction: TrendDirection = TrendDirection.STABLE
    change: float = 0.0
    percentage: float = 0.0         # 0 when the first value is 0


class HistoryStatistics(BaseModel):
    current: float = 0.0
    average: float = 0.0
    peak: float = 0.0
    lowest: float = 0.0
    volatility: float = 0.0         # population standard deviation
