"""FastAPI middleware stack — request ID, logging, metrics.

Routes that resolve a provider report it in the ``X-AI-Provider`` response
header; the logging middleware reads it back from there.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ai_gateway.shared.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROVIDER_HEADER = "X-AI-Provider"
BUDGET_PERIOD_HEADER = "X-Budget-Period"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and the active billing period.

    Both are bound into the structlog context for the duration of the
    request and echoed back as response headers.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        context: dict[str, str] = {"request_id": request_id}
        gateway = getattr(request.app.state, "gateway", None)
        if gateway is not None:
            context["budget_period"] = gateway.ledger.period

        with structlog.contextvars.bound_contextvars(**context):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        if "budget_period" in context:
            response.headers[BUDGET_PERIOD_HEADER] = context["budget_period"]
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One ``http_request`` event per request, with the serving provider if any."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        fields: dict[str, object] = {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "client": request.client.host if request.client else "unknown",
        }
        provider = response.headers.get(PROVIDER_HEADER)
        if provider:
            fields["provider"] = provider
        logger.info("http_request", **fields)
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collects Prometheus HTTP metrics."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start

        # Route template keeps label cardinality bounded (/budget/{service}/reset)
        route = request.scope.get("route")
        path = getattr(route, "path", None) or request.url.path

        HTTP_REQUESTS_TOTAL.labels(
            method=request.method,
            endpoint=path,
            status_code=response.status_code,
        ).inc()
        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=path,
        ).observe(duration)
        return response
