"""Global exception handlers — map gateway errors to HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from ai_gateway.domain.exceptions import (
    AllProvidersFailedError,
    ConfigurationError,
    GatewayError,
    PersistenceError,
    ProviderError,
    UnknownServiceError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all gateway→HTTP exception mappings."""

    @app.exception_handler(UnknownServiceError)
    async def handle_unknown_service(request: Request, exc: UnknownServiceError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(AllProvidersFailedError)
    async def handle_all_failed(request: Request, exc: AllProvidersFailedError) -> ORJSONResponse:
        logger.error("all_providers_failed_http", attempted=exc.attempted)
        return ORJSONResponse(
            status_code=503,
            content={
                "code": exc.code,
                "message": exc.message,
                "diagnostics": exc.diagnostics,
            },
        )

    @app.exception_handler(ProviderError)
    async def handle_provider(request: Request, exc: ProviderError) -> ORJSONResponse:
        logger.error("provider_error_http", provider=exc.provider, message=exc.message)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(PersistenceError)
    async def handle_persistence(request: Request, exc: PersistenceError) -> ORJSONResponse:
        logger.error("persistence_error_http", message=exc.message)
        return ORJSONResponse(
            status_code=503,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration(request: Request, exc: ConfigurationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=500,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(GatewayError)
    async def handle_gateway(request: Request, exc: GatewayError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
