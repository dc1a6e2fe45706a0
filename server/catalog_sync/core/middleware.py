"""Custom middleware for request correlation and access logging."""

import logging
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import metrics_collector


logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The request ID is taken from the X-Request-ID header or generated, stored
    on ``request.state``, bound into structlog's context variables for the
    duration of the request and echoed back in the response headers.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs each request and records HTTP Prometheus metrics.

    Requests on ``skip_paths`` (probes and scrapes) are neither logged nor
    counted.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/ready", "/metrics", "/favicon.ico"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start_time
            metrics_collector.record_request(request.method, endpoint, 500, duration)
            logger.error(
                "HTTP request failed with unhandled exception",
                exc_info=True,
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                },
            )
            raise

        duration = time.perf_counter() - start_time
        # The route is resolved once the router has run
        route = request.scope.get("route")
        endpoint = getattr(route, "path", endpoint)
        metrics_collector.record_request(request.method, endpoint, response.status_code, duration)

        log_data = {
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
        if response.status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Setup all middleware on the FastAPI app.

    Args:
        app: FastAPI application instance
        enable_logging: Whether to enable access logging middleware
    """
    # Last added runs first, so the request ID is bound before access logging
    if enable_logging:
        app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
