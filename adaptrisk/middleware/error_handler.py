"""
Global Error Handling.

Two layers:
1. Domain errors (AdaptRiskError) are mapped to HTTP status codes by an
   exception handler; their message and context are safe to return.
2. Everything else is caught by ErrorHandlerMiddleware and answered with a
   generic message. Stack traces and internal details never reach clients.

Every error gets a unique error_id for correlation with server logs.
"""

import traceback
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from adaptrisk.config import settings
from adaptrisk.errors import AdaptRiskError, ErrorKind

logger = structlog.get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_CONFIG: 422,
    ErrorKind.INSUFFICIENT_SAMPLES: 422,
    ErrorKind.COMPUTATION_FAILURE: 500,
}


async def adaptrisk_error_handler(request: Request, exc: AdaptRiskError) -> JSONResponse:
    """
    Render a domain error:
    {
      "error": "message",
      "error_id": "uuid",
      "status": 422,
      "kind": "invalid_config",
      "context": {...}
    }
    """
    error_id = str(uuid.uuid4())
    status_code = STATUS_BY_KIND.get(exc.kind, 400)

    logger.warning(
        "domain_error",
        error_id=error_id,
        path=request.url.path,
        method=request.method,
        **exc.to_dict(),
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.message,
            "error_id": error_id,
            "status": status_code,
            "kind": exc.kind.value,
            "context": {k: v for k, v in exc.context.items() if isinstance(v, (str, int, float, bool, type(None)))},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AdaptRiskError, adaptrisk_error_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware — catches everything the exception handlers did not.

    Returns structured error responses:
    {
      "error": "human-readable message",
      "error_id": "uuid for log correlation",
      "status": 500
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            status_code = getattr(exc, "status_code", 500)

            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": status_code,
            }

            # In debug mode, add type hint ONLY (not full traceback)
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=status_code, content=body)
