"""
Learning Trace API Endpoints.

GET    /api/v1/learning                     — all traces of the tenant
GET    /api/v1/learning/{decision_id}       — trace + antifragility class
DELETE /api/v1/learning/{decision_id}       — clear a trace
GET    /api/v1/learning/history/{subject}                — antifragility histories (decision | portfolio)
GET    /api/v1/learning/history/{subject}/{subject_id}   — history + trend + statistics
DELETE /api/v1/learning/history/{subject}/{subject_id}   — delete a history
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.errors import NotFound
from adaptrisk.refresh.history import STABLE_BANDS, calculate_trend, history_statistics
from adaptrisk.refresh.learning import classify_antifragility
from adaptrisk.refresh.schemas import (
    AntifragilityClass,
    AntifragilityHistory,
    HistoryStatistics,
    HistorySubject,
    HistoryTrend,
    LearningTrace,
)
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/learning", tags=["learning"])


class LearningTraceResponse(BaseModel):
    trace: LearningTrace
    classification: Optional[AntifragilityClass] = None


class AntifragilityHistoryResponse(BaseModel):
    history: AntifragilityHistory
    trend: HistoryTrend
    statistics: HistoryStatistics


@router.get("", response_model=list[LearningTrace])
async def list_traces(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.learning.list_traces(tenant_id)


@router.get("/{decision_id}", response_model=LearningTraceResponse)
async def get_trace(
    decision_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    trace = await registry.learning.get_trace(tenant_id, decision_id)
    if trace is None:
        raise NotFound(
            f"No learning trace for decision '{decision_id}'",
            resource_type="learning_trace", resource_id=decision_id,
        )
    classification = (
        classify_antifragility(trace.antifragility_score)
        if trace.antifragility_score is not None else None
    )
    return LearningTraceResponse(trace=trace, classification=classification)


@router.delete("/{decision_id}", status_code=204)
async def clear_trace(
    decision_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    if not await registry.learning.clear_trace(tenant_id, decision_id):
        raise NotFound(
            f"No learning trace for decision '{decision_id}'",
            resource_type="learning_trace", resource_id=decision_id,
        )


# ── Antifragility history ─────────────────────────────────────────────


def _history_not_found(subject: HistorySubject, subject_id: str) -> NotFound:
    return NotFound(
        f"No antifragility history for {subject.value} '{subject_id}'",
        resource_type="antifragility_history", resource_id=subject_id,
    )


@router.get("/history/{subject}", response_model=list[AntifragilityHistory])
async def list_histories(
    subject: HistorySubject,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.antifragility_history.list_histories(tenant_id, subject)


@router.get("/history/{subject}/{subject_id}", response_model=AntifragilityHistoryResponse)
async def get_history(
    subject: HistorySubject,
    subject_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    history = await registry.antifragility_history.get_history(tenant_id, subject, subject_id)
    if history is None:
        raise _history_not_found(subject, subject_id)
    return AntifragilityHistoryResponse(
        history=history,
        trend=calculate_trend(history.snapshots, STABLE_BANDS[subject]),
        statistics=history_statistics(history.snapshots),
    )


@router.delete("/history/{subject}/{subject_id}", status_code=204)
async def delete_history(
    subject: HistorySubject,
    subject_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    if not await registry.antifragility_history.delete_history(tenant_id, subject, subject_id):
        raise _history_not_found(subject, subject_id)
