"""
Guardrail Repository.

Scopes in the document store (per tenant):
    guardrails              guardrail id → Guardrail
    outcomes                outcome id → ActualOutcome (append-only)
    guardrail_violations    violation id → GuardrailViolation (append-only)
    guardrail_adjustments   adjustment id → AutoAdjustmentRecord (append-only)
    auto_adjust_config      "default" → AutoAdjustConfig
"""

from datetime import datetime, timezone
from typing import Optional

from adaptrisk.guardrails.schemas import (
    ActualOutcome,
    AutoAdjustConfig,
    AutoAdjustmentRecord,
    Guardrail,
    GuardrailViolation,
)
from adaptrisk.services.store import DocumentStore

GUARDRAIL_SCOPE = "guardrails"
OUTCOME_SCOPE = "outcomes"
VIOLATION_SCOPE = "guardrail_violations"
ADJUSTMENT_SCOPE = "guardrail_adjustments"
CONFIG_SCOPE = "auto_adjust_config"
CONFIG_KEY = "default"


class GuardrailRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ── Guardrails ────────────────────────────────────────────────────

    async def get_guardrail(self, tenant_id: str, guardrail_id: str) -> Optional[Guardrail]:
        doc = await self.store.get(tenant_id, GUARDRAIL_SCOPE, guardrail_id)
        return Guardrail.model_validate(doc) if doc is not None else None

    async def save_guardrail(self, tenant_id: str, guardrail: Guardrail) -> Guardrail:
        guardrail.updated_at = datetime.now(timezone.utc)
        await self.store.set(tenant_id, GUARDRAIL_SCOPE, guardrail.id, guardrail.model_dump(mode="json"))
        return guardrail

    async def delete_guardrail(self, tenant_id: str, guardrail_id: str) -> bool:
        return await self.store.delete(tenant_id, GUARDRAIL_SCOPE, guardrail_id)

    async def guardrails_for_decision(self, tenant_id: str, decision_id: str) -> list[Guardrail]:
        docs = await self.store.list_documents(tenant_id, GUARDRAIL_SCOPE)
        guardrails = [Guardrail.model_validate(d) for d in docs.values()]
        return sorted(
            (g for g in guardrails if g.decision_id == decision_id),
            key=lambda g: g.created_at,
        )

    # ── Append-only records ───────────────────────────────────────────

    async def add_outcome(self, tenant_id: str, outcome: ActualOutcome) -> None:
        await self.store.set(tenant_id, OUTCOME_SCOPE, outcome.id, outcome.model_dump(mode="json"))

    async def outcomes_for_decision(self, tenant_id: str, decision_id: str) -> list[ActualOutcome]:
        docs = await self.store.list_documents(tenant_id, OUTCOME_SCOPE)
        outcomes = [ActualOutcome.model_validate(d) for d in docs.values()]
        return sorted(
            (o for o in outcomes if o.decision_id == decision_id),
            key=lambda o: o.recorded_at,
        )

    async def add_violation(self, tenant_id: str, violation: GuardrailViolation) -> None:
        await self.store.set(tenant_id, VIOLATION_SCOPE, violation.id, violation.model_dump(mode="json"))

    async def violations_for_guardrail(self, tenant_id: str, guardrail_id: str) -> list[GuardrailViolation]:
        docs = await self.store.list_documents(tenant_id, VIOLATION_SCOPE)
        violations = [GuardrailViolation.model_validate(d) for d in docs.values()]
        return sorted(
            (v for v in violations if v.guardrail_id == guardrail_id),
            key=lambda v: v.violated_at,
        )

    async def add_adjustment(self, tenant_id: str, record: AutoAdjustmentRecord) -> None:
        await self.store.set(tenant_id, ADJUSTMENT_SCOPE, record.id, record.model_dump(mode="json"))

    async def adjustments(self, tenant_id: str) -> list[AutoAdjustmentRecord]:
        """All adjustments of the tenant, newest first."""
        docs = await self.store.list_documents(tenant_id, ADJUSTMENT_SCOPE)
        records = [AutoAdjustmentRecord.model_validate(d) for d in docs.values()]
        return sorted(records, key=lambda a: a.adjusted_at, reverse=True)

    # ── Config ────────────────────────────────────────────────────────

    async def get_config(self, tenant_id: str) -> AutoAdjustConfig:
        doc = await self.store.get(tenant_id, CONFIG_SCOPE, CONFIG_KEY)
        return AutoAdjustConfig.model_validate(doc) if doc is not None else AutoAdjustConfig()

    async def set_config(self, tenant_id: str, config: AutoAdjustConfig) -> AutoAdjustConfig:
        await self.store.set(tenant_id, CONFIG_SCOPE, CONFIG_KEY, config.model_dump(mode="json"))
        return config
