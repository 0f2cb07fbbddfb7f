"""Failover orchestrator — the main entry-point for generation calls.

Composes ProviderRouter, CircuitBreakerRegistry and BudgetLedger around a
ProviderPort.  Candidates are tried strictly one after another; the first
success is returned and no further provider is called.  Provider failures
never escape: a fully failed request yields a ``GenerationFailure`` carrying
a diagnostic snapshot of every provider.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, Mapping, Sequence

import structlog

from ai_gateway.domain.enums import TaskType
from ai_gateway.domain.exceptions import ProviderError
from ai_gateway.ports.outbound import ProviderPort
from ai_gateway.shared.budget.ledger import BudgetLedger
from ai_gateway.shared.observability.metrics import (
    FAILOVERS_TOTAL,
    PROVIDER_LATENCY,
    PROVIDER_REQUESTS,
)
from ai_gateway.shared.providers.circuit_breaker import Clock, CircuitBreakerRegistry
from ai_gateway.shared.providers.router import PriorityTable, ProviderRouter
from ai_gateway.shared.providers.types import (
    CallOptions,
    ChatMessage,
    GenerationFailure,
    GenerationResult,
    ProviderProfile,
    ProviderResponse,
    normalise_messages,
)

logger = structlog.get_logger(__name__)


class FailoverOrchestrator:
    """Sequential multi-provider failover with budget and breaker gating.

    Usage::

        orchestrator = FailoverOrchestrator(profiles, client, ledger)
        result = await orchestrator.generate(
            [{"role": "user", "content": "Hello"}],
            task_type="conversation",
        )
        if result.success:
            print(result.provider, result.content)
    """

    def __init__(
        self,
        profiles: Sequence[ProviderProfile],
        provider: ProviderPort,
        ledger: BudgetLedger,
        *,
        priority_table: Mapping[TaskType | str, Sequence[str]] | None = None,
        error_threshold: int = 3,
        cooldown_seconds: float = 300.0,
        clock: Clock = time.time,
    ) -> None:
        self._profiles = {p.provider_id: p for p in profiles}
        self._provider = provider
        self._ledger = ledger
        self._breakers = CircuitBreakerRegistry(
            profiles,
            error_threshold=error_threshold,
            cooldown_seconds=cooldown_seconds,
            clock=clock,
        )
        self._router = ProviderRouter(profiles, PriorityTable(profiles, priority_table))

        for profile in profiles:
            if not profile.enabled:
                logger.warning("provider_disabled_no_credentials", provider=profile.provider_id)

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    @property
    def router(self) -> ProviderRouter:
        return self._router

    @property
    def profiles(self) -> list[ProviderProfile]:
        return list(self._profiles.values())

    # ── Main entry-point ─────────────────────────────────────
    async def generate(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        preferred_provider: str | None = None,
        task_type: TaskType | str | None = TaskType.GENERAL,
    ) -> GenerationResult | GenerationFailure:
        """Generate a completion with automatic failover.

        Args:
            messages: Ordered ``{role, content}`` messages.
            temperature: Sampling temperature forwarded to the provider.
            max_tokens: Completion token cap forwarded to the provider.
            preferred_provider: Soft preference; tried first if enabled.
            task_type: Selects the provider order when no preference applies.

        Returns:
            ``GenerationResult`` from the first provider that succeeded, or
            ``GenerationFailure`` with per-provider diagnostics.
        """
        chat = normalise_messages(messages)
        options = CallOptions(temperature=temperature, max_tokens=max_tokens)
        chain = self._router.candidates(
            task_type=task_type, preferred_provider=preferred_provider
        )
        attempted: list[str] = []

        for pid in chain:
            if pid in attempted:
                continue
            if not self.is_eligible(pid):
                logger.info("provider_skipped", provider=pid, reason=self._skip_reason(pid))
                continue

            attempted.append(pid)
            # Shielded: if the caller goes away mid-call, the provider call and
            # its accounting still run to completion.
            response = await asyncio.shield(self._attempt(pid, chat, options))
            if response is None:
                continue

            if len(attempted) > 1:
                FAILOVERS_TOTAL.labels(provider=pid).inc()
                logger.info(
                    "provider_failover_success",
                    provider=pid,
                    attempts=len(attempted),
                    failed_providers=attempted[:-1],
                )
            return GenerationResult(
                content=response.content,
                provider=pid,
                usage_amount=response.usage_amount,
                cost=response.cost,
                attempted=attempted,
            )

        diagnostics = self.availability()
        logger.error(
            "all_providers_failed",
            attempted=attempted,
            candidates=chain,
            task_type=str(task_type),
        )
        return GenerationFailure(
            error="All AI providers failed",
            diagnostics=diagnostics,
            attempted=attempted,
        )

    # ── Single attempt ───────────────────────────────────────
    async def _attempt(
        self,
        pid: str,
        messages: list[ChatMessage],
        options: CallOptions,
    ) -> ProviderResponse | None:
        profile = self._profiles[pid]
        breaker = self._breakers.get(pid)
        log = logger.bind(provider=pid)

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._provider.call(pid, messages, options),
                timeout=profile.timeout_s,
            )
        except asyncio.TimeoutError:
            error_msg = f"Timeout after {profile.timeout_s}s"
        except ProviderError as exc:
            error_msg = exc.message
        except Exception as exc:
            error_msg = f"{type(exc).__name__}: {exc}"
        else:
            latency = time.monotonic() - start
            breaker.record_success()
            await self._ledger.track_usage(pid, response.usage_amount, response.cost, True)
            PROVIDER_REQUESTS.labels(provider=pid, status="success").inc()
            PROVIDER_LATENCY.labels(provider=pid).observe(latency)
            log.info(
                "provider_request_success",
                usage_amount=response.usage_amount,
                cost=response.cost,
                latency_ms=round(latency * 1000, 1),
            )
            return response

        latency = time.monotonic() - start
        tripped = breaker.record_failure(error_msg)
        await self._ledger.track_usage(pid, 0, 0.0, False)
        PROVIDER_REQUESTS.labels(provider=pid, status="failure").inc()
        log.warning(
            "provider_request_failed",
            error=error_msg,
            tripped=tripped,
            latency_ms=round(latency * 1000, 1),
        )
        return None

    # ── Eligibility ──────────────────────────────────────────
    def is_available(self, provider_id: str) -> bool:
        """Credentials present and breaker closed."""
        return self._breakers.is_available(provider_id)

    def is_eligible(self, provider_id: str) -> bool:
        """Available AND not budget-disabled."""
        return self.is_available(provider_id) and not self._ledger.is_disabled(provider_id)

    def _skip_reason(self, pid: str) -> str:
        profile = self._profiles.get(pid)
        if profile is None or not profile.enabled:
            return "not_configured"
        if self._ledger.is_disabled(pid):
            return "budget_disabled"
        return "circuit_open"

    # ── Operator controls & diagnostics ──────────────────────
    def manual_override(self, provider_id: str, enabled: bool) -> None:
        if provider_id not in self._breakers:
            raise ValueError(f"Unknown provider: {provider_id}")
        self._breakers.get(provider_id).override(enabled)

    def availability(self) -> dict[str, dict[str, Any]]:
        error_counts = {
            pid: self._ledger.entry(pid).errors
            for pid in self._profiles
            if pid in self._ledger.services
        }
        diagnostics = self._breakers.diagnostics(error_counts)
        for pid, info in diagnostics.items():
            info["budget_disabled"] = self._ledger.is_disabled(pid)
        return diagnostics
