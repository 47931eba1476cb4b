"""
Signal API Endpoints.

POST /api/v1/signals/updates            — push signal updates (debounced auto-refresh)
POST /api/v1/signals/refresh            — manual refresh of given decisions
GET  /api/v1/signals/config             — tenant refresh config
PUT  /api/v1/signals/config             — replace tenant refresh config
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from adaptrisk.api.deps import get_registry, get_tenant_id
from adaptrisk.refresh.schemas import RefreshConfig, RefreshResult, SignalUpdate
from adaptrisk.services.registry import ServiceRegistry

router = APIRouter(prefix="/api/v1/signals", tags=["signals"])


class SignalValueChange(BaseModel):
    signal_id: str
    signal_label: str = ""
    old_value: float
    new_value: float


class SignalUpdatesBody(BaseModel):
    updates: list[SignalValueChange] = Field(min_length=1)


class SignalUpdatesResponse(BaseModel):
    queued: bool
    pending: int = 0
    results: list[RefreshResult] = Field(default_factory=list)


class ManualRefreshBody(BaseModel):
    decision_ids: list[str] = Field(min_length=1)


@router.post("/updates", response_model=SignalUpdatesResponse, status_code=202)
async def push_updates(
    body: SignalUpdatesBody,
    immediate: bool = Query(default=False, description="Skip the debounce window"),
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """
    Accept signal moves. Affected decisions are re-simulated once the burst
    settles (debounce), or right away with immediate=true.
    """
    controller = registry.refresh_controller
    updates = [
        SignalUpdate.from_values(u.signal_id, u.old_value, u.new_value, u.signal_label)
        for u in body.updates
    ]
    if immediate:
        results = await controller.refresh_now(tenant_id, updates)
        return SignalUpdatesResponse(queued=False, results=results)

    queued = await controller.on_signal_update(tenant_id, updates)
    pending = len(controller.scheduler_for(tenant_id).pending) if queued else 0
    return SignalUpdatesResponse(queued=queued, pending=pending)


@router.post("/refresh", response_model=list[RefreshResult])
async def manual_refresh(
    body: ManualRefreshBody,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    """Recompute decisions now from current signal values."""
    return await registry.refresh_controller.manual_refresh(tenant_id, body.decision_ids)


@router.get("/config", response_model=RefreshConfig)
async def get_config(
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.refresh_controller.get_config(tenant_id)


@router.put("/config", response_model=RefreshConfig)
async def set_config(
    body: RefreshConfig,
    tenant_id: str = Depends(get_tenant_id),
    registry: ServiceRegistry = Depends(get_registry),
):
    return await registry.refresh_controller.set_config(tenant_id, body)
