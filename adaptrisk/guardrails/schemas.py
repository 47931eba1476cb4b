"""
Guardrail Schemas.

Guardrails are per-option metric thresholds. Real outcomes are appended as
ActualOutcome records; a breach produces an immutable GuardrailViolation and
repeated breaches produce an immutable AutoAdjustmentRecord.
"""

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from adaptrisk.config import settings


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


# ── Enums ──────────────────────────────────────────────────────────────


class Direction(StrEnum):
    ABOVE = "above"     # breached when actual > threshold
    BELOW = "below"     # breached when actual < threshold


class AlertLevel(StrEnum):
    INFO = "info"
    CAUTION = "caution"
    CRITICAL = "critical"


class OutcomeSource(StrEnum):
    SIGNAL = "signal"
    INCIDENT = "incident"
    MANUAL = "manual"


class BreachSeverity(StrEnum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    CRITICAL = "critical"


# ── Guardrail ──────────────────────────────────────────────────────────


class GuardrailInput(BaseModel):
    metric_name: str = Field(min_length=1)
    threshold_value: float
    direction: Direction
    alert_level: AlertLevel = AlertLevel.CAUTION


class Guardrail(BaseModel):
    id: str = Field(default_factory=_uuid)
    decision_id: str
    option_id: str
    metric_name: str
    threshold_value: float
    direction: Direction
    alert_level: AlertLevel = AlertLevel.CAUTION
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def is_breached(self, actual_value: float) -> bool:
        if self.direction == Direction.ABOVE:
            return actual_value > self.threshold_value
        return actual_value < self.threshold_value


# ── Append-only records ────────────────────────────────────────────────


class ActualOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_uuid)
    decision_id: str
    option_id: str
    option_label: str = ""
    metric_name: str
    actual_value: float
    recorded_at: datetime = Field(default_factory=_now)
    source: OutcomeSource = OutcomeSource.MANUAL
    source_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("recorded_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class GuardrailViolation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_uuid)
    guardrail_id: str
    outcome_id: str
    decision_id: str
    option_id: str
    option_label: str = ""
    metric_name: str
    threshold_value: float
    actual_value: float
    direction: Direction
    alert_level: AlertLevel
    severity: BreachSeverity
    breach_percent: float               # |actual - threshold| / |threshold| × 100
    violated_at: datetime               # the outcome's recorded_at


class AutoAdjustmentRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_uuid)
    guardrail_id: str
    decision_id: str
    option_id: str
    metric_name: str
    old_threshold: float
    new_threshold: float
    adjustment_percent: float           # e.g. 10.0 for 10%
    reason: str
    triggered_by: list[str]             # violation ids consumed by this adjustment
    severity: Optional[BreachSeverity] = None
    breach_severity_percent: Optional[float] = None
    adjusted_at: datetime = Field(default_factory=_now)


# ── Config / results ───────────────────────────────────────────────────


class AutoAdjustConfig(BaseModel):
    """Per-tenant auto-adjustment settings."""
    breach_window_days: int = Field(default_factory=lambda: settings.guardrail_breach_window_days, gt=0)
    breach_threshold_count: int = Field(default_factory=lambda: settings.guardrail_breach_threshold_count, ge=1)
    tightening_percent: float = Field(
        default_factory=lambda: settings.guardrail_tightening_percent, ge=0.0, lt=1.0,
    )
    severity_based_adjustment: bool = Field(
        default_factory=lambda: settings.guardrail_severity_based_adjustment,
    )


class OutcomeProcessingResult(BaseModel):
    outcome: Optional[ActualOutcome] = None
    violation: Optional[GuardrailViolation] = None
    adjustment: Optional[AutoAdjustmentRecord] = None
    breach_count: int = 0


class AdjustmentTrend(BaseModel):
    date: str                           # YYYY-MM-DD
    count: int
    avg_severity: float                 # mean breach severity percent
    metrics: dict[str, int]


class AdjustmentStats(BaseModel):
    total_adjustments: int
    average_adjustment_percent: float
    by_severity: dict[str, int]
    top_metrics: list[tuple[str, int]]  # (metric, count), most adjusted first
