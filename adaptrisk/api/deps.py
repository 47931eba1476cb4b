"""
FastAPI dependencies for API routes.

Tenancy is a plain header (X-Tenant-ID by default); authentication is out
of scope and expected in front of the service.
"""

from fastapi import HTTPException, Request

from adaptrisk.config import settings
from adaptrisk.services.registry import ServiceRegistry, get_services


def get_tenant_id(request: Request) -> str:
    """Extract the tenant id from the tenant header."""
    tenant_id = request.headers.get(settings.tenant_header, "").strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail=f"Missing {settings.tenant_header} header")
    return tenant_id


def get_registry() -> ServiceRegistry:
    return get_services()


__all__ = ["get_tenant_id", "get_registry"]
