"""FastAPI application factory for the technical-analysis JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cryptodash.api import routes
from cryptodash.exceptions import (
    CryptoDashError,
    InsufficientDataError,
    MalformedPayloadError,
    ThrottleError,
    ThrottleQueueFullError,
    UnknownSymbolError,
    UnsupportedTimeframeError,
    UpstreamError,
    UpstreamTimeoutError,
)
from cryptodash.logging import get_logger

logger = get_logger(__name__)

# Most specific first
_STATUS_BY_ERROR: list[tuple[type[CryptoDashError], int]] = [
    (InsufficientDataError, 422),
    (UnsupportedTimeframeError, 400),
    (UnknownSymbolError, 404),
    (UpstreamTimeoutError, 504),
    (UpstreamError, 502),
    (MalformedPayloadError, 502),
    (ThrottleQueueFullError, 503),
    (ThrottleError, 503),
]


def status_for_error(error: CryptoDashError) -> int:
    """Map a domain exception to an HTTP status code."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


async def _handle_domain_error(request: Request, exc: CryptoDashError) -> JSONResponse:
    status = status_for_error(exc)
    logger.warning(
        "api_request_failed",
        path=request.url.path,
        status=status,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=status, content={"success": False, "error": str(exc)})


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan
                  events. Used by main.py to start and stop the throttle.

    Returns:
        Configured FastAPI application. Route handlers read
        ``analysis_service``, ``market_data_client`` and ``throttle`` from
        ``app.state``; the caller wires them.
    """
    app = FastAPI(
        title="Crypto Dashboard Technical Analysis API",
        lifespan=lifespan,
    )

    app.state.analysis_service = None
    app.state.market_data_client = None
    app.state.throttle = None

    app.add_exception_handler(CryptoDashError, _handle_domain_error)
    app.include_router(routes.router, prefix="/api")

    return app
