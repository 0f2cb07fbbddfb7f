"""Dependency injection container — wires adapters to ports.

FastAPI's ``Depends()`` system uses these factories to inject the gateway
facade into route handlers.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from ai_gateway.adapters.outbound.event_bus import InProcessNotificationBus
from ai_gateway.adapters.outbound.llm import LLMProviderClient, build_provider_profiles
from ai_gateway.adapters.outbound.persistence import (
    JsonFileSnapshotStore,
    JsonlHistorySink,
    RedisHistorySink,
    RedisSnapshotStore,
)
from ai_gateway.application.persistence import StatePersistence
from ai_gateway.application.scheduler import BudgetScheduler
from ai_gateway.application.services import AIGatewayService
from ai_gateway.config import Settings, StateBackend, get_settings
from ai_gateway.ports.outbound import HistorySinkPort, ProviderPort, SnapshotStorePort
from ai_gateway.shared.budget import BudgetLedger, BudgetPolicy
from ai_gateway.shared.providers import FailoverOrchestrator


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


# ── Builders ─────────────────────────────────────────────────
def build_state_backend(settings: Settings) -> tuple[SnapshotStorePort, HistorySinkPort]:
    if settings.state_backend == StateBackend.REDIS:
        return (
            RedisSnapshotStore(settings.redis_url),
            RedisHistorySink(settings.redis_url),
        )
    return JsonFileSnapshotStore(settings.data_dir), JsonlHistorySink(settings.data_dir)


def build_gateway_service(
    settings: Settings | None = None,
    *,
    provider: ProviderPort | None = None,
    store: SnapshotStorePort | None = None,
    history: HistorySinkPort | None = None,
) -> AIGatewayService:
    """Assemble the gateway from settings; any adapter may be swapped in."""
    s = settings or get_cached_settings()

    profiles = build_provider_profiles(
        openai_api_key=s.openai_api_key,
        anthropic_api_key=s.anthropic_api_key,
        gemini_api_key=s.gemini_api_key,
        openai_model=s.openai_model,
        anthropic_model=s.anthropic_model,
        gemini_model=s.gemini_model,
        openai_base_url=s.openai_base_url,
        openai_cost_per_1k=s.openai_cost_per_1k,
        anthropic_cost_per_1k=s.anthropic_cost_per_1k,
        gemini_cost_per_1k=s.gemini_cost_per_1k,
        timeout_s=s.provider_timeout_seconds,
        priority_order=s.provider_priority,
    )
    if provider is None:
        provider = LLMProviderClient(profiles, timeout=s.provider_timeout_seconds)
    if store is None or history is None:
        default_store, default_history = build_state_backend(s)
        store = store or default_store
        history = history or default_history

    bus = InProcessNotificationBus()
    ledger = BudgetLedger(
        BudgetPolicy(
            limits=s.monthly_limits,
            total_limit=s.total_monthly_limit,
            warning_ratio=s.budget_warning_ratio,
        ),
        bus=bus,
    )
    orchestrator = FailoverOrchestrator(
        profiles,
        provider,
        ledger,
        priority_table=s.task_priorities or None,
        error_threshold=s.circuit_breaker_error_threshold,
        cooldown_seconds=s.circuit_breaker_cooldown_seconds,
    )
    persistence = StatePersistence(store, ledger, orchestrator)
    scheduler = BudgetScheduler(
        ledger,
        persistence,
        bus=bus,
        history=history,
        flush_interval_seconds=s.flush_interval_seconds,
    )
    return AIGatewayService(
        orchestrator,
        ledger,
        bus,
        persistence,
        scheduler,
        provider,
        history=history,
    )


# ── Request-scoped access ────────────────────────────────────
def get_gateway(request: Request) -> AIGatewayService:
    """The gateway instance owned by the running application."""
    return request.app.state.gateway
