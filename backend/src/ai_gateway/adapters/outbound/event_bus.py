"""In-process notification bus.

Publish/subscribe fan-out of gateway notifications (budget warnings, failovers,
restores, monthly resets) to any number of subscribers.  Delivery is
sequential in subscription order; each subscriber is isolated, so one that
raises is logged and skipped without affecting the others or the publisher.
"""

from __future__ import annotations

import inspect
from typing import Callable

import structlog

from ai_gateway.domain.enums import NotificationKind
from ai_gateway.domain.notifications import Notification
from ai_gateway.ports.outbound import NotificationBusPort, NotificationCallback
from ai_gateway.shared.observability.metrics import NOTIFICATIONS_TOTAL

logger = structlog.get_logger(__name__)

_LOG_LEVEL: dict[NotificationKind, str] = {
    NotificationKind.BUDGET_WARNING: "warning",
    NotificationKind.BUDGET_EXCEEDED: "error",
    NotificationKind.SERVICE_FAILOVER: "warning",
    NotificationKind.SERVICE_RESTORED: "info",
    NotificationKind.MONTHLY_RESET: "info",
}


class InProcessNotificationBus(NotificationBusPort):
    """Async in-memory bus; subscribers may be plain or async callables."""

    def __init__(self) -> None:
        self._subscribers: list[NotificationCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: NotificationCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        logger.debug("notification_subscriber_registered", count=len(self._subscribers))

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: NotificationCallback) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            return

    async def publish(self, notification: Notification) -> None:
        NOTIFICATIONS_TOTAL.labels(kind=notification.kind.value).inc()
        log = getattr(logger, _LOG_LEVEL.get(notification.kind, "info"))
        log(
            "notification_published",
            kind=notification.kind.value,
            service=notification.service,
            message=notification.message,
            subscribers=len(self._subscribers),
        )

        # Snapshot the list so a subscriber may unsubscribe during delivery
        for index, callback in enumerate(list(self._subscribers)):
            try:
                result = callback(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(
                    "notification_subscriber_failed",
                    kind=notification.kind.value,
                    subscriber_index=index,
                    error=f"{type(exc).__name__}: {exc}",
                )
