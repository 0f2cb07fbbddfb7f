"""AI Gateway Service — the single entry point for callers.

Wraps the failover orchestrator, the budget ledger, the notification bus and
the persistence scheduler behind one facade.  Every call that mutates usage
or availability is followed by a snapshot flush, so a crash loses at most
the in-flight request.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

import structlog

from ai_gateway.application.persistence import StatePersistence
from ai_gateway.application.scheduler import BudgetScheduler
from ai_gateway.domain.enums import NotificationKind, ServiceKind, TaskType
from ai_gateway.domain.notifications import Notification
from ai_gateway.ports.outbound import (
    HistorySinkPort,
    NotificationBusPort,
    NotificationCallback,
    ProviderPort,
)
from ai_gateway.shared.budget import BudgetLedger
from ai_gateway.shared.providers import (
    ChatMessage,
    FailoverOrchestrator,
    GenerationFailure,
    GenerationResult,
)

logger = structlog.get_logger(__name__)


class AIGatewayService:
    """Multi-provider generation with budget control and persistent state.

    Usage::

        service = AIGatewayService(orchestrator, ledger, bus, persistence, scheduler, client)
        await service.start()
        result = await service.generate([{"role": "user", "content": "Hi"}])
        await service.shutdown()
    """

    def __init__(
        self,
        orchestrator: FailoverOrchestrator,
        ledger: BudgetLedger,
        bus: NotificationBusPort,
        persistence: StatePersistence,
        scheduler: BudgetScheduler,
        provider: ProviderPort,
        *,
        history: HistorySinkPort | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._ledger = ledger
        self._bus = bus
        self._persistence = persistence
        self._scheduler = scheduler
        self._provider = provider
        self._history = history
        self._started = False

    @property
    def ledger(self) -> BudgetLedger:
        return self._ledger

    @property
    def orchestrator(self) -> FailoverOrchestrator:
        return self._orchestrator

    @property
    def scheduler(self) -> BudgetScheduler:
        return self._scheduler

    # ── Lifecycle ────────────────────────────────────────────
    async def start(self) -> None:
        if self._started:
            return
        await self._persistence.load()
        await self._scheduler.reset_if_stale()
        self._scheduler.start()
        self._started = True
        logger.info(
            "gateway_started",
            providers=[p.provider_id for p in self._orchestrator.profiles if p.enabled],
            period=self._ledger.period,
        )

    async def shutdown(self) -> None:
        await self._scheduler.stop()
        await self._provider.close()
        await self._persistence.store.close()
        if self._history is not None:
            await self._history.close()
        self._started = False
        logger.info("gateway_shutdown")

    # ── Generation ───────────────────────────────────────────
    async def generate(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        preferred_provider: str | None = None,
        task_type: TaskType | str | None = TaskType.GENERAL,
    ) -> GenerationResult | GenerationFailure:
        result = await self._orchestrator.generate(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            preferred_provider=preferred_provider,
            task_type=task_type,
        )
        await self._persistence.flush()
        return result

    # ── Budget ───────────────────────────────────────────────
    async def track_usage(
        self, service: str, usage_amount: int | float, cost: float, success: bool = True
    ) -> None:
        await self._ledger.track_usage(service, usage_amount, cost, success)
        await self._persistence.flush()

    async def track_auxiliary_usage(
        self, service: str, amount: int | float, cost: float, success: bool = True
    ) -> None:
        await self._ledger.track_auxiliary_usage(service, amount, cost, success)
        await self._persistence.flush()

    def get_recommended_service(self, kind: ServiceKind | str) -> str | None:
        return self._ledger.get_recommended_service(kind)

    async def reset_service(self, service: str) -> None:
        await self._ledger.reset_service(service)
        await self._persistence.flush()

    async def get_usage_history(self) -> list[dict[str, Any]]:
        if self._history is None:
            return []
        return await self._history.read_all()

    # ── Reporting ────────────────────────────────────────────
    def get_stats(self) -> dict[str, Any]:
        stats = self._ledger.get_stats()
        return {
            "period": stats["period"],
            "per_service": stats["services"],
            "aggregate": stats["aggregate"],
            "availability": self._orchestrator.availability(),
        }

    def get_report(self) -> str:
        lines = [self._ledger.render_report().rstrip("\n"), "PROVIDER AVAILABILITY:"]
        for pid, info in self._orchestrator.availability().items():
            if not info["enabled"]:
                status = "not configured"
            elif info["budget_disabled"]:
                status = "budget disabled"
            elif info["available"]:
                status = "available"
            else:
                status = "circuit open"
            lines.append(f"   {pid}: {status} (errors: {info['error_count']})")
        return "\n".join(lines) + "\n"

    # ── Notifications & operator controls ────────────────────
    def subscribe_notifications(self, callback: NotificationCallback) -> Callable[[], None]:
        return self._bus.subscribe(callback)

    async def manual_override(self, service_id: str, enabled: bool) -> None:
        """Force a provider's breaker open or closed.

        Raises:
            ValueError: ``service_id`` is not a configured provider.
        """
        self._orchestrator.manual_override(service_id, enabled)
        logger.info("provider_manual_override", provider=service_id, enabled=enabled)
        if enabled:
            await self._bus.publish(
                Notification(
                    kind=NotificationKind.SERVICE_RESTORED,
                    service=service_id,
                    message=f"{service_id} manually re-enabled",
                )
            )
        await self._persistence.flush()
