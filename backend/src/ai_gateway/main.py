"""FastAPI application entry-point.

Assembles routers, middleware, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from ai_gateway import __version__
from ai_gateway.adapters.inbound.rest.routers import (
    budget_router,
    generate_router,
    health_router,
    providers_router,
)
from ai_gateway.application.services import AIGatewayService
from ai_gateway.config import Settings, get_settings
from ai_gateway.dependencies import build_gateway_service
from ai_gateway.shared.errors import register_exception_handlers
from ai_gateway.shared.middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RequestIdMiddleware,
)
from ai_gateway.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.is_production,
    )
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        state_backend=settings.state_backend.value,
    )

    gateway: AIGatewayService = app.state.gateway
    await gateway.start()
    yield
    await gateway.shutdown()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    *,
    gateway: AIGatewayService | None = None,
) -> FastAPI:
    """Application factory — creates a fully configured FastAPI instance."""
    settings = settings or get_settings()

    app = FastAPI(
        title="AI Gateway",
        description=(
            "Multi-provider text generation with automatic failover, "
            "per-service monthly budgets and provider circuit breaking."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.gateway = gateway or build_gateway_service(settings)

    # ── Middleware (order matters: first added = outermost) ───
    cors_origins = settings.cors_origins
    allow_all_origins = "*" in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all_origins else cors_origins,
        allow_origin_regex=".*" if allow_all_origins else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.prometheus_enabled:
        app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers (versioned) ─────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(generate_router, prefix=api_v1)
    app.include_router(budget_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)

    return app


# Uvicorn entry-point
app = create_app()
