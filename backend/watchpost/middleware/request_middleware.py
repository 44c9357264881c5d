"""
Request Middleware Module
=========================

Starlette middleware for request processing.

Features:
- Request ID generation for log tracing
- Request timing fed to the security monitor's performance figures
- Security headers on every response
"""

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from watchpost.core.logging import LogContext, get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id and records how long it took.

    Responses with a 5xx status, and requests that raise, count as errors
    in the monitor's error rate.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        monitor = getattr(request.app.state, "container", None)
        monitor = monitor.monitor if monitor is not None else None

        with LogContext(request_id=request_id):
            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                if monitor is not None:
                    monitor.record_request(elapsed_ms, error=True)
                logger.error(
                    "request_failed",
                    path=request.url.path,
                    method=request.method,
                    error=str(e),
                )
                raise

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if monitor is not None:
                monitor.record_request(elapsed_ms, error=response.status_code >= 500)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{elapsed_ms / 1000:.4f}"
            logger.info(
                "request_completed",
                path=request.url.path,
                method=request.method,
                status_code=response.status_code,
                duration_ms=round(elapsed_ms, 2),
            )
            return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Referrer-Policy
    - Strict-Transport-Security (in production)
    """

    def __init__(self, app, production: bool = False):
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if self.production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
