"""
Guardrail API Endpoints.

GET    /api/v1/guardrails?decision_id=               — guardrails of a decision
POST   /api/v1/guardrails                            — add a guardrail
GET    /api/v1/guardrails/config                     — tenant auto-adjust config
PUT    /api/v1/guardrails/config                     — replace tenant auto-adjust config
GET    /api/v1/guardrails/adjustments                — adjustment history (newest first)
GET    /api/v1/guardrails/adjustments/trends         — adjustments per day
GET    /api/v1/guardrails/adjustments/stats          — adjustment statistics
GET    /api/v1/guardrails/{guardrail_id}             — get a guardrail
PUT    /api/v1/guardrails/{guardrail_id}             — update a guardrail
DELETE /api/v1/guardrails/{guardrail_id}             — delete a guardrail
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.errors import NotFound
from adaptrisk.guardrails.schemas import (
    AdjustmentStats,
    AdjustmentTrend,
    AutoAdjustConfig,
    AutoAdjustmentRecord,
    Guardrail,
    GuardrailInput,
)
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/guardrails", tags=["guardrails"])


class GuardrailCreate(GuardrailInput):
    decision_id: str
    option_id: str


@router.get("", response_model=list[Guardrail])
async def list_guardrails(
    decision_id: str = Query(...),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.list_guardrails(tenant_id, decision_id)


@router.post("", response_model=Guardrail, status_code=201)
async def create_guardrail(
    body: GuardrailCreate,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    await registry.decisions.require(tenant_id, body.decision_id)
    data = GuardrailInput.model_validate(body.model_dump(exclude={"decision_id", "option_id"}))
    return await registry.guardrail_adjuster.add_guardrail(tenant_id, body.decision_id, body.option_id, data)


@router.get("/config", response_model=AutoAdjustConfig)
async def get_config(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.get_config(tenant_id)


@router.put("/config", response_model=AutoAdjustConfig)
async def set_config(
    body: AutoAdjustConfig,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.set_config(tenant_id, body)


@router.get("/adjustments", response_model=list[AutoAdjustmentRecord])
async def adjustment_history(
    decision_id: Optional[str] = Query(default=None),
    guardrail_id: Optional[str] = Query(default=None),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.adjustment_history(tenant_id, decision_id, guardrail_id)


@router.get("/adjustments/trends", response_model=list[AdjustmentTrend])
async def adjustment_trends(
    days: int = Query(default=30, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.adjustment_trends(tenant_id, days)


@router.get("/adjustments/stats", response_model=AdjustmentStats)
async def adjustment_stats(
    days: int = Query(default=30, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.adjustment_stats(tenant_id, days)


@router.get("/{guardrail_id}", response_model=Guardrail)
async def get_guardrail(
    guardrail_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.require_guardrail(tenant_id, guardrail_id)


@router.put("/{guardrail_id}", response_model=Guardrail)
async def update_guardrail(
    guardrail_id: str,
    body: GuardrailInput,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.guardrail_adjuster.update_guardrail(tenant_id, guardrail_id, body)


@router.delete("/{guardrail_id}", status_code=204)
async def delete_guardrail(
    guardrail_id: str,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    if not await registry.guardrail_adjuster.delete_guardrail(tenant_id, guardrail_id):
        raise NotFound(
            f"Guardrail '{guardrail_id}' not found",
            resource_type="guardrail", resource_id=guardrail_id,
        )
