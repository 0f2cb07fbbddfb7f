"""Background timers: periodic state flush and the monthly budget reset."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

from ai_gateway.application.persistence import StatePersistence
from ai_gateway.domain.enums import NotificationKind
from ai_gateway.domain.exceptions import PersistenceError
from ai_gateway.domain.notifications import Notification
from ai_gateway.ports.outbound import HistorySinkPort, NotificationBusPort
from ai_gateway.shared.budget import BudgetLedger
from ai_gateway.shared.budget.ledger import period_of

logger = structlog.get_logger(__name__)

Sleeper = Callable[[float], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_next_month(now: datetime) -> float:
    """Seconds from ``now`` to 00:00 UTC on the first day of the next month.

    Naive datetimes are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    if now.month == 12:
        boundary = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        boundary = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return (boundary - now).total_seconds()


class BudgetScheduler:
    """Owns the flush and monthly-reset tasks.

    ``start`` is idempotent; ``stop`` cancels both tasks and performs one
    last flush so nothing recorded since the previous tick is lost.
    """

    def __init__(
        self,
        ledger: BudgetLedger,
        persistence: StatePersistence,
        *,
        bus: NotificationBusPort | None = None,
        history: HistorySinkPort | None = None,
        flush_interval_seconds: float = 300.0,
        now: Callable[[], datetime] = _utcnow,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._persistence = persistence
        self._bus = bus
        self._history = history
        self._flush_interval = flush_interval_seconds
        self._now = now
        self._sleep = sleep
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._flush_loop(), name="budget-flush"),
            asyncio.create_task(self._reset_loop(), name="budget-monthly-reset"),
        ]
        logger.info(
            "budget_scheduler_started",
            flush_interval_s=self._flush_interval,
            next_reset_in_s=round(seconds_until_next_month(self._now())),
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._persistence.flush()
        logger.info("budget_scheduler_stopped")

    # ── Monthly reset ────────────────────────────────────────
    async def run_monthly_reset(self) -> dict[str, Any]:
        """Archive the ended period, zero every tally and re-enable every service."""
        record = self._ledger.reset_all()
        if self._history is not None:
            try:
                await self._history.append(record)
            except PersistenceError as exc:
                logger.error("usage_history_append_failed", month=record["month"], error=exc.message)
        await self._persistence.flush()
        logger.info("monthly_reset_completed", month=record["month"], total_cost=record["total_cost"])
        if self._bus is not None:
            await self._bus.publish(
                Notification(
                    kind=NotificationKind.MONTHLY_RESET,
                    service=None,
                    message=f"Monthly usage reset; archived {record['month']}",
                    payload={"month": record["month"], "total_cost": record["total_cost"]},
                )
            )
        return record

    async def reset_if_stale(self) -> bool:
        """Run the monthly reset when the ledger still holds an earlier month."""
        current = period_of(self._now())
        if self._ledger.period == current:
            return False
        logger.info("budget_period_stale", ledger_period=self._ledger.period, current=current)
        await self.run_monthly_reset()
        return True

    # ── Loops ────────────────────────────────────────────────
    async def _flush_loop(self) -> None:
        while True:
            await self._sleep(self._flush_interval)
            await self._persistence.flush()

    async def _reset_loop(self) -> None:
        while True:
            delay = max(seconds_until_next_month(self._now()), 1.0)
            await self._sleep(delay)
            try:
                await self.reset_if_stale()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("monthly_reset_failed")
