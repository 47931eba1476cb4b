"""
AdaptRisk — FastAPI Application.

Run: uvicorn adaptrisk.main:app --host 0.0.0.0 --port 8002 --reload

Routes:
  - POST /api/v1/simulations              ← stateless Monte Carlo simulation
  - /api/v1/decisions/*                   ← decisions + simulate-and-store
  - /api/v1/portfolios/*                  ← portfolio CRUD + aggregate metrics
  - /api/v1/guardrails/*                  ← guardrail CRUD + adjustment history
  - /api/v1/outcomes                      ← outcome recording (breach → adjust)
  - /api/v1/signals/*                     ← signal updates, manual refresh
  - /api/v1/learning/*                    ← learning traces
  - GET  /health                          ← health check
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from adaptrisk.config import settings
from adaptrisk.db.engine import close_db, init_db
from adaptrisk.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from adaptrisk.middleware.request_context import RequestContextMiddleware
from adaptrisk.observability import configure_logging
from adaptrisk.services.registry import get_services
from adaptrisk.services.store import SqlDocumentStore

from adaptrisk.api.routers.decisions import router as decisions_router
from adaptrisk.api.routers.guardrails import router as guardrails_router
from adaptrisk.api.routers.learning import router as learning_router
from adaptrisk.api.routers.outcomes import router as outcomes_router
from adaptrisk.api.routers.portfolios import router as portfolios_router
from adaptrisk.api.routers.signals import router as signals_router
from adaptrisk.api.routers.simulations import router as simulations_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    configure_logging()
    logger.info("adaptrisk_starting", version=settings.app_version, environment=settings.environment)

    services = get_services()
    if isinstance(services.store, SqlDocumentStore):
        await init_db()

    monitor = services.signal_monitor if settings.signal_monitor_enabled else None
    if monitor is not None:
        monitor.start()
    elif settings.signal_monitor_enabled:
        logger.warning("signal_monitor_disabled", reason="SIGNAL_FEED_URL not set")

    yield

    if monitor is not None:
        monitor.stop()
    await services.refresh_controller.shutdown()
    await close_db()
    logger.info("adaptrisk_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=(
            "# AdaptRisk — Adaptive Decision Risk Engine\n\n"
            "Monte Carlo scenario simulation with dependence, Bayesian priors, "
            "competitor moves and utility analysis; portfolio aggregation; "
            "outcome-driven guardrails; signal-triggered refresh.\n\n"
            "All `/api/v1` endpoints require the `X-Tenant-ID` header.\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "simulations", "description": "Scenario simulation engine"},
            {"name": "decisions", "description": "Decisions, linked signals, stored metrics"},
            {"name": "portfolios", "description": "Portfolio risk aggregation"},
            {"name": "guardrails", "description": "Guardrails and auto-adjustment history"},
            {"name": "outcomes", "description": "Actual outcome recording"},
            {"name": "signals", "description": "Signal updates and refresh"},
            {"name": "learning", "description": "Learning traces and antifragility"},
        ],
    )

    # ── Middleware (order matters: last added = outermost = first to process) ──
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(simulations_router)
    app.include_router(decisions_router)
    app.include_router(portfolios_router)
    app.include_router(guardrails_router)
    app.include_router(outcomes_router)
    app.include_router(signals_router)
    app.include_router(learning_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe — is the process alive? Does NOT check dependencies."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "adaptrisk",
        }

    return app


app = create_app()
