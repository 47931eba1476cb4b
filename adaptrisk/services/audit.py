"""
Audit Sink.

Every adaptive state transition (guardrail breach, auto-adjustment,
signal-triggered refresh, learning-trace update) emits one audit event.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

AUDIT_SCOPE = "audit_events"


class AuditEventType(StrEnum):
    GUARDRAIL_OUTCOME_BREACH = "guardrail.outcome_breach"
    GUARDRAIL_AUTO_ADJUSTED = "guardrail.auto_adjusted"
    DECISION_AUTO_REFRESHED = "decision.auto_refreshed"
    DECISION_LEARNING_TRACE_UPDATED = "decision.learning_trace_updated"


class AuditEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    event_type: AuditEventType
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(ABC):
    @abstractmethod
    async def emit(
        self, tenant_id: str, event_type: AuditEventType, payload: dict[str, Any]
    ) -> AuditEvent:
        ...


class InMemoryAuditSink(AuditSink):
    """Keeps events in memory (tests, single-process deployments)."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def emit(
        self, tenant_id: str, event_type: AuditEventType, payload: dict[str, Any]
    ) -> AuditEvent:
        event = AuditEvent(tenant_id=tenant_id, event_type=event_type, payload=payload)
        self.events.append(event)
        logger.info("audit_event", event_type=event_type.value, tenant_id=tenant_id)
        return event

    def of_type(self, event_type: AuditEventType, tenant_id: Optional[str] = None) -> list[AuditEvent]:
        return [
            e for e in self.events
            if e.event_type == event_type and (tenant_id is None or e.tenant_id == tenant_id)
        ]


class StoreAuditSink(AuditSink):
    """Persists events into the document store under the `audit_events` scope."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def emit(
        self, tenant_id: str, event_type: AuditEventType, payload: dict[str, Any]
    ) -> AuditEvent:
        event = AuditEvent(tenant_id=tenant_id, event_type=event_type, payload=payload)
        await self.store.set(tenant_id, AUDIT_SCOPE, event.id, event.model_dump(mode="json"))
        logger.info("audit_event", event_type=event_type.value, tenant_id=tenant_id, event_id=event.id)
        return event

    async def list_events(self, tenant_id: str) -> list[AuditEvent]:
        docs = await self.store.list_documents(tenant_id, AUDIT_SCOPE)
        events = [AuditEvent.model_validate(d) for d in docs.values()]
        return sorted(events, key=lambda e: e.created_at)
