"""
Guardrail Auto-Adjustment Controller.

Closed loop from real outcomes to guardrail thresholds:

    normal ──breach──▶ breached(n) ──n ≥ threshold count──▶ auto_adjusted ──▶ normal

1. Append the ActualOutcome
2. Find the guardrail for (decision, option, metric); none → done
3. Not breached → done
4. Record a GuardrailViolation, emit `guardrail.outcome_breach`
5. Count open violations in the window [newest - window_days, newest]
   (violations consumed by an earlier adjustment are not counted again)
6. Enough breaches → tighten (above ×(1 - p), below ×(1 + p)), record an
   AutoAdjustmentRecord, emit `guardrail.auto_adjusted`

Windows are measured on the outcome's `recorded_at`, not on wall-clock time.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from adaptrisk.errors import NotFound
from adaptrisk.guardrails.repository import GuardrailRepository
from adaptrisk.guardrails.schemas import (
    ActualOutcome,
    AdjustmentStats,
    AdjustmentTrend,
    AutoAdjustConfig,
    AutoAdjustmentRecord,
    BreachSeverity,
    Direction,
    Guardrail,
    GuardrailInput,
    GuardrailViolation,
    OutcomeProcessingResult,
    OutcomeSource,
)
from adaptrisk.services.audit import AuditEventType, AuditSink
from adaptrisk.services.decisions import DecisionRepository

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

# Breach size as a fraction of the threshold
SEVERITY_THRESHOLDS: dict[BreachSeverity, float] = {
    BreachSeverity.CRITICAL: 0.30,
    BreachSeverity.SEVERE: 0.15,
    BreachSeverity.MODERATE: 0.05,
}

# Tightening per severity (only when severity-based adjustment is enabled)
SEVERITY_TIGHTENING: dict[BreachSeverity, float] = {
    BreachSeverity.MINOR: 0.05,
    BreachSeverity.MODERATE: 0.10,
    BreachSeverity.SEVERE: 0.15,
    BreachSeverity.CRITICAL: 0.20,
}

TOP_METRICS_LIMIT: int = 5
ZERO_THRESHOLD_EPS: float = 1e-9


def classify_breach(actual_value: float, threshold_value: float) -> tuple[BreachSeverity, float]:
    """Severity + breach percent (|actual - threshold| / |threshold| × 100)."""
    fraction = abs(actual_value - threshold_value) / max(abs(threshold_value), ZERO_THRESHOLD_EPS)
    for severity, cutoff in SEVERITY_THRESHOLDS.items():
        if fraction >= cutoff:
            return severity, round(fraction * 100, 4)
    return BreachSeverity.MINOR, round(fraction * 100, 4)


def tightened_threshold(
    threshold: float,
    direction: Direction,
    config: AutoAdjustConfig,
    severity: Optional[BreachSeverity] = None,
) -> tuple[float, float]:
    """New threshold and the adjustment percent applied."""
    pct = config.tightening_percent
    if config.severity_based_adjustment and severity is not None:
        pct = SEVERITY_TIGHTENING[severity]
    if direction == Direction.ABOVE:
        return threshold * (1.0 - pct), round(pct * 100, 4)
    return threshold * (1.0 + pct), round(pct * 100, 4)


class GuardrailAutoAdjuster:
    """
    Outcome-driven guardrail tightening, plus guardrail CRUD and
    adjustment history / trend queries.
    """

    def __init__(
        self,
        repository: GuardrailRepository,
        audit: AuditSink,
        decisions: Optional[DecisionRepository] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.audit = audit
        self.decisions = decisions
        self.clock = clock

    # ── Outcome processing ────────────────────────────────────────────

    async def process_outcome(
        self,
        tenant_id: str,
        decision_id: str,
        option_id: str,
        metric_name: str,
        actual_value: float,
        source: OutcomeSource = OutcomeSource.MANUAL,
        recorded_at: Optional[datetime] = None,
        option_label: str = "",
        source_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OutcomeProcessingResult:
        """
        Record an outcome and run the breach → adjust loop.

        Unknown decisions are a no-op (nothing recorded).
        """
        if self.decisions is not None and await self.decisions.get(tenant_id, decision_id) is None:
            logger.warning("outcome_for_unknown_decision", tenant_id=tenant_id, decision_id=decision_id)
            return OutcomeProcessingResult()

        config = await self.repository.get_config(tenant_id)

        outcome = ActualOutcome(
            decision_id=decision_id,
            option_id=option_id,
            option_label=option_label,
            metric_name=metric_name,
            actual_value=actual_value,
            recorded_at=recorded_at or self.clock(),
            source=source,
            source_id=source_id,
            notes=notes,
        )
        await self.repository.add_outcome(tenant_id, outcome)

        guardrail = await self._matching_guardrail(tenant_id, decision_id, option_id, metric_name)
        if guardrail is None or not guardrail.is_breached(actual_value):
            return OutcomeProcessingResult(outcome=outcome)

        severity, breach_percent = classify_breach(actual_value, guardrail.threshold_value)
        violation = GuardrailViolation(
            guardrail_id=guardrail.id,
            outcome_id=outcome.id,
            decision_id=decision_id,
            option_id=option_id,
            option_label=option_label,
            metric_name=metric_name,
            threshold_value=guardrail.threshold_value,
            actual_value=actual_value,
            direction=guardrail.direction,
            alert_level=guardrail.alert_level,
            severity=severity,
            breach_percent=breach_percent,
            violated_at=outcome.recorded_at,
        )
        await self.repository.add_violation(tenant_id, violation)

        await self.audit.emit(tenant_id, AuditEventType.GUARDRAIL_OUTCOME_BREACH, {
            "guardrail_id": guardrail.id,
            "violation_id": violation.id,
            "decision_id": decision_id,
            "option_id": option_id,
            "metric_name": metric_name,
            "actual_value": actual_value,
            "threshold_value": guardrail.threshold_value,
            "source": source.value,
            "source_id": source_id,
            "severity": severity.value,
            "breach_severity_percent": breach_percent,
        })

        recent = await self._open_violations_in_window(tenant_id, guardrail.id, config.breach_window_days)
        logger.info(
            "guardrail_breached",
            tenant_id=tenant_id,
            guardrail_id=guardrail.id,
            breach_count=len(recent),
            required=config.breach_threshold_count,
            severity=severity.value,
        )

        if len(recent) < config.breach_threshold_count:
            return OutcomeProcessingResult(outcome=outcome, violation=violation, breach_count=len(recent))

        adjustment = await self._auto_adjust(
            tenant_id, guardrail, [v.id for v in recent], config, severity, breach_percent,
        )
        return OutcomeProcessingResult(
            outcome=outcome, violation=violation, adjustment=adjustment, breach_count=len(recent),
        )

    async def _matching_guardrail(
        self, tenant_id: str, decision_id: str, option_id: str, metric_name: str
    ) -> Optional[Guardrail]:
        for guardrail in await self.repository.guardrails_for_decision(tenant_id, decision_id):
            if guardrail.option_id == option_id and guardrail.metric_name == metric_name:
                return guardrail
        return None

    async def _open_violations_in_window(
        self, tenant_id: str, guardrail_id: str, window_days: int
    ) -> list[GuardrailViolation]:
        consumed = {
            vid
            for record in await self.repository.adjustments(tenant_id)
            if record.guardrail_id == guardrail_id
            for vid in record.triggered_by
        }
        open_violations = [
            v for v in await self.repository.violations_for_guardrail(tenant_id, guardrail_id)
            if v.id not in consumed
        ]
        if not open_violations:
            return []
        newest = max(v.violated_at for v in open_violations)
        cutoff = newest - timedelta(days=window_days)
        return [v for v in open_violations if v.violated_at >= cutoff]

    async def _auto_adjust(
        self,
        tenant_id: str,
        guardrail: Guardrail,
        violation_ids: list[str],
        config: AutoAdjustConfig,
        severity: Optional[BreachSeverity],
        breach_percent: float,
    ) -> AutoAdjustmentRecord:
        old_threshold = guardrail.threshold_value
        new_threshold, adjustment_percent = tightened_threshold(
            old_threshold, guardrail.direction, config, severity,
        )

        guardrail.threshold_value = new_threshold
        await self.repository.save_guardrail(tenant_id, guardrail)

        reason = (
            f"Guardrail auto-adjusted due to {severity.value} repeated breach."
            if severity is not None
            else "Guardrail auto-adjusted due to repeated breach."
        )
        record = AutoAdjustmentRecord(
            guardrail_id=guardrail.id,
            decision_id=guardrail.decision_id,
            option_id=guardrail.option_id,
            metric_name=guardrail.metric_name,
            old_threshold=old_threshold,
            new_threshold=new_threshold,
            adjustment_percent=adjustment_percent,
            reason=reason,
            triggered_by=violation_ids,
            severity=severity,
            breach_severity_percent=breach_percent,
            adjusted_at=self.clock(),
        )
        await self.repository.add_adjustment(tenant_id, record)

        await self.audit.emit(tenant_id, AuditEventType.GUARDRAIL_AUTO_ADJUSTED, {
            "guardrail_id": guardrail.id,
            "adjustment_id": record.id,
            "decision_id": guardrail.decision_id,
            "option_id": guardrail.option_id,
            "metric_name": guardrail.metric_name,
            "old_threshold": old_threshold,
            "new_threshold": new_threshold,
            "adjustment_percent": adjustment_percent,
            "breach_count": len(violation_ids),
            "window_days": config.breach_window_days,
            "severity": severity.value if severity else None,
            "breach_severity_percent": breach_percent,
        })

        logger.info(
            "guardrail_auto_adjusted",
            tenant_id=tenant_id,
            guardrail_id=guardrail.id,
            old_threshold=old_threshold,
            new_threshold=round(new_threshold, 6),
            direction=guardrail.direction.value,
        )
        return record

    # ── Guardrail CRUD ────────────────────────────────────────────────

    async def add_guardrail(
        self, tenant_id: str, decision_id: str, option_id: str, data: GuardrailInput
    ) -> Guardrail:
        guardrail = Guardrail(decision_id=decision_id, option_id=option_id, **data.model_dump())
        await self.repository.save_guardrail(tenant_id, guardrail)
        logger.info("guardrail_created", tenant_id=tenant_id, guardrail_id=guardrail.id)
        return guardrail

    async def update_guardrail(self, tenant_id: str, guardrail_id: str, data: GuardrailInput) -> Guardrail:
        guardrail = await self.require_guardrail(tenant_id, guardrail_id)
        updated = guardrail.model_copy(update=data.model_dump())
        return await self.repository.save_guardrail(tenant_id, updated)

    async def delete_guardrail(self, tenant_id: str, guardrail_id: str) -> bool:
        return await self.repository.delete_guardrail(tenant_id, guardrail_id)

    async def require_guardrail(self, tenant_id: str, guardrail_id: str) -> Guardrail:
        guardrail = await self.repository.get_guardrail(tenant_id, guardrail_id)
        if guardrail is None:
            raise NotFound(
                f"Guardrail '{guardrail_id}' not found",
                resource_type="guardrail", resource_id=guardrail_id, tenant_id=tenant_id,
            )
        return guardrail

    async def list_guardrails(self, tenant_id: str, decision_id: str) -> list[Guardrail]:
        return await self.repository.guardrails_for_decision(tenant_id, decision_id)

    # ── Config ────────────────────────────────────────────────────────

    async def get_config(self, tenant_id: str) -> AutoAdjustConfig:
        return await self.repository.get_config(tenant_id)

    async def set_config(self, tenant_id: str, config: AutoAdjustConfig) -> AutoAdjustConfig:
        logger.info("auto_adjust_config_updated", tenant_id=tenant_id, **config.model_dump())
        return await self.repository.set_config(tenant_id, config)

    # ── Queries ───────────────────────────────────────────────────────

    async def outcomes(
        self,
        tenant_id: str,
        decision_id: str,
        option_id: Optional[str] = None,
        metric_name: Optional[str] = None,
        days: Optional[int] = None,
    ) -> list[ActualOutcome]:
        outcomes = await self.repository.outcomes_for_decision(tenant_id, decision_id)
        if option_id is not None:
            outcomes = [o for o in outcomes if o.option_id == option_id]
        if metric_name is not None:
            outcomes = [o for o in outcomes if o.metric_name == metric_name]
        if days is not None:
            cutoff = self.clock() - timedelta(days=days)
            outcomes = [o for o in outcomes if o.recorded_at >= cutoff]
        return outcomes

    async def adjustment_history(
        self, tenant_id: str, decision_id: Optional[str] = None, guardrail_id: Optional[str] = None
    ) -> list[AutoAdjustmentRecord]:
        """Adjustments, newest first."""
        records = await self.repository.adjustments(tenant_id)
        if decision_id is not None:
            records = [r for r in records if r.decision_id == decision_id]
        if guardrail_id is not None:
            records = [r for r in records if r.guardrail_id == guardrail_id]
        return records

    async def adjustment_trends(self, tenant_id: str, days: int = 30) -> list[AdjustmentTrend]:
        """Adjustments of the last `days` days grouped by day, oldest day first."""
        cutoff = self.clock() - timedelta(days=days)
        by_day: dict[str, list[AutoAdjustmentRecord]] = defaultdict(list)
        for record in await self.repository.adjustments(tenant_id):
            if record.adjusted_at >= cutoff:
                by_day[record.adjusted_at.date().isoformat()].append(record)

        trends = []
        for day in sorted(by_day):
            records = by_day[day]
            severities = [r.breach_severity_percent or 0.0 for r in records]
            trends.append(AdjustmentTrend(
                date=day,
                count=len(records),
                avg_severity=round(sum(severities) / len(severities), 4),
                metrics=dict(Counter(r.metric_name for r in records)),
            ))
        return trends

    async def adjustment_stats(self, tenant_id: str, days: int = 30) -> AdjustmentStats:
        cutoff = self.clock() - timedelta(days=days)
        records = [r for r in await self.repository.adjustments(tenant_id) if r.adjusted_at >= cutoff]
        return AdjustmentStats(
            total_adjustments=len(records),
            average_adjustment_percent=(
                round(sum(r.adjustment_percent for r in records) / len(records), 4) if records else 0.0
            ),
            by_severity=dict(Counter(r.severity.value for r in records if r.severity is not None)),
            top_metrics=Counter(r.metric_name for r in records).most_common(TOP_METRICS_LIMIT),
        )
