"""
Outcome API Endpoints.

POST /api/v1/outcomes                     — record an actual outcome (breach → adjust loop)
GET  /api/v1/outcomes?decision_id=        — recorded outcomes of a decision
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.guardrails.schemas import ActualOutcome, OutcomeProcessingResult, OutcomeSource
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/outcomes", tags=["outcomes"])


class RecordOutcomeBody(BaseModel):
    decision_id: str
    option_id: str
    option_label: str = ""
    metric_name: str = Field(min_length=1)
    actual_value: float
    source: OutcomeSource = OutcomeSource.MANUAL
    source_id: Optional[str] = None
    recorded_at: Optional[datetime] = None
    notes: Optional[str] = None


@router.post("", response_model=OutcomeProcessingResult)
async def record_outcome(
    body: RecordOutcomeBody,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """
    Record an actual outcome.

    A breach of the matching guardrail is recorded as a violation; enough
    violations inside the breach window tighten the guardrail. Outcomes for
    unknown decisions are ignored (empty result).
    """
    return await registry.guardrail_adjuster.process_outcome(tenant_id, **body.model_dump())


@router.get("", response_model=list[ActualOutcome])
async def list_outcomes(
    decision_id: str = Query(...),
    option_id: Optional[str] = Query(default=None),
    metric_name: Optional[str] = Query(default=None),
    days: Optional[int] = Query(default=None, ge=1),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.outcomes(tenant_id, decision_id, option_id, metric_name, days)
