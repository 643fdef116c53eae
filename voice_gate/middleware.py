"""
Request logging middleware for the voice-gate service.
"""

import time
import uuid
from datetime import datetime
from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

CORRELATION_HEADER = "X-Request-ID"


def get_correlation_id(request: Request) -> str:
    """Correlation id assigned by RequestLoggingMiddleware, falling back to the raw header."""
    return getattr(request.state, "correlation_id", None) or request.headers.get(CORRELATION_HEADER, "unknown")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with a correlation id.

    The id comes from ``X-Request-ID`` when the caller sends one and is minted
    otherwise. It is bound into the structlog context, stored on
    ``request.state`` for error bodies, and echoed on the response.
    """

    def __init__(self, app, exclude_paths: set = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or {"/healthz", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        correlation_id = request.headers.get(CORRELATION_HEADER) or f"req_{uuid.uuid4().hex[:12]}"
        request.state.correlation_id = correlation_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id, path=request.url.path)

        start_time = time.perf_counter()
        logger.info("Request started", method=request.method, client=request.client.host if request.client else None)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed",
                error_type=type(e).__name__,
                process_time_ms=round((time.perf_counter() - start_time) * 1000, 2)
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "correlation_id": correlation_id,
                    "timestamp": datetime.utcnow().isoformat()
                },
                headers={CORRELATION_HEADER: correlation_id}
            )

        logger.info(
            "Request completed",
            status_code=response.status_code,
            process_time_ms=round((time.perf_counter() - start_time) * 1000, 2)
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
