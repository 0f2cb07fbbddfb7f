"""Health, Budget, Providers, Generation — REST routers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import ORJSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from ai_gateway import __version__
from ai_gateway.application.dtos import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    OverrideRequest,
    RecommendationResponse,
    UsageRequest,
)
from ai_gateway.application.services import AIGatewayService
from ai_gateway.dependencies import get_gateway
from ai_gateway.domain.enums import ServiceKind
from ai_gateway.domain.exceptions import UnknownServiceError
from ai_gateway.shared.middleware import PROVIDER_HEADER


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    gateway: AIGatewayService = Depends(get_gateway),
) -> Response:
    settings = request.app.state.settings
    providers: dict[str, str] = {}
    for pid, info in gateway.orchestrator.availability().items():
        if not info["enabled"]:
            providers[pid] = "not_configured"
        elif info["budget_disabled"]:
            providers[pid] = "budget_disabled"
        else:
            providers[pid] = "available" if info["available"] else "circuit_open"

    overall = "ok" if "available" in providers.values() else "degraded"
    body = HealthResponse(
        status=overall,
        version=__version__,
        environment=settings.app_env.value,
        period=gateway.ledger.period,
        providers=providers,
    )
    status_code = 200 if overall == "ok" else 503
    return ORJSONResponse(content=body.model_dump(), status_code=status_code)


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Generation
# ═══════════════════════════════════════════════════════════════
generate_router = APIRouter(tags=["Generation"])


@generate_router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    response: Response,
    gateway: AIGatewayService = Depends(get_gateway),
) -> GenerateResponse:
    """Generate a completion with automatic provider failover.

    Total failure is reported in the body (``success=false`` with
    per-provider diagnostics), not as an HTTP error.
    """
    result = await gateway.generate(
        [m.model_dump() for m in body.messages],
        temperature=body.temperature,
        max_tokens=body.max_tokens,
        preferred_provider=body.preferred_provider,
        task_type=body.task_type,
    )
    if result.success:
        response.headers[PROVIDER_HEADER] = result.provider
    return GenerateResponse(**result.to_dict())


# ═══════════════════════════════════════════════════════════════
#  Budget
# ═══════════════════════════════════════════════════════════════
budget_router = APIRouter(prefix="/budget", tags=["Budget"])


@budget_router.get("")
async def budget_stats(gateway: AIGatewayService = Depends(get_gateway)) -> dict[str, Any]:
    return gateway.get_stats()


@budget_router.get("/report", response_class=PlainTextResponse)
async def budget_report(gateway: AIGatewayService = Depends(get_gateway)) -> str:
    return gateway.get_report()


@budget_router.get("/history")
async def budget_history(gateway: AIGatewayService = Depends(get_gateway)) -> list[dict[str, Any]]:
    """Archived usage of previous billing periods, oldest first."""
    return await gateway.get_usage_history()


@budget_router.get("/recommended/{kind}", response_model=RecommendationResponse)
async def recommended_service(
    kind: str,
    gateway: AIGatewayService = Depends(get_gateway),
) -> RecommendationResponse:
    parsed = ServiceKind.parse(kind)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown service kind: {kind}",
        )
    return RecommendationResponse(kind=parsed.value, service=gateway.get_recommended_service(parsed))


@budget_router.post(
    "/{service}/usage", status_code=202, responses={404: {"model": ErrorResponse}}
)
async def record_usage(
    service: str,
    body: UsageRequest,
    gateway: AIGatewayService = Depends(get_gateway),
) -> dict[str, Any]:
    """Record externally metered usage (voice synthesis, transcription)."""
    if service not in gateway.ledger.services:
        raise UnknownServiceError(service)
    await gateway.track_usage(service, body.usage_amount, body.cost, body.success)
    return {"service": service, "disabled": gateway.ledger.is_disabled(service)}


@budget_router.post("/{service}/reset", responses={404: {"model": ErrorResponse}})
async def reset_service(
    service: str,
    gateway: AIGatewayService = Depends(get_gateway),
) -> dict[str, str]:
    await gateway.reset_service(service)
    return {"status": "reset", "service": service}


# ═══════════════════════════════════════════════════════════════
#  Provider Availability (Admin)
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(prefix="/providers", tags=["Providers"])


@providers_router.get("")
async def provider_availability(
    gateway: AIGatewayService = Depends(get_gateway),
) -> dict[str, dict[str, Any]]:
    return gateway.orchestrator.availability()


@providers_router.post("/{provider_id}/override", responses={404: {"model": ErrorResponse}})
async def override_provider(
    provider_id: str,
    body: OverrideRequest,
    gateway: AIGatewayService = Depends(get_gateway),
) -> dict[str, Any]:
    """Admin: force a provider's circuit breaker open or closed."""
    try:
        await gateway.manual_override(provider_id, body.enabled)
    except ValueError as exc:
        raise UnknownServiceError(provider_id) from exc
    return {"provider_id": provider_id, "enabled": body.enabled}
