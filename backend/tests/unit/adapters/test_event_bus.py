"""Tests for the in-process notification bus."""

from __future__ import annotations

import pytest

from ai_gateway.adapters.outbound.event_bus import InProcessNotificationBus
from ai_gateway.domain.enums import NotificationKind
from ai_gateway.domain.notifications import Notification


def note(kind: NotificationKind = NotificationKind.BUDGET_WARNING) -> Notification:
    return Notification(kind=kind, service="openai", message="openai budget at 85.0%")


class TestInProcessNotificationBus:
    @pytest.mark.asyncio
    async def test_delivers_in_subscription_order(self) -> None:
        bus = InProcessNotificationBus()
        order: list[str] = []
        bus.subscribe(lambda n: order.append("first"))

        async def second(n: Notification) -> None:
            order.append("second")

        bus.subscribe(second)
        await bus.publish(note())
        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self) -> None:
        bus = InProcessNotificationBus()
        received: list[Notification] = []

        def broken(n: Notification) -> None:
            raise RuntimeError("webhook down")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        await bus.publish(note())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = InProcessNotificationBus()
        received: list[Notification] = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        await bus.publish(note())
        assert received == []
        assert bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_during_delivery(self) -> None:
        bus = InProcessNotificationBus()
        received: list[Notification] = []
        handle = {}

        def once(n: Notification) -> None:
            handle["unsub"]()

        handle["unsub"] = bus.subscribe(once)
        bus.subscribe(received.append)
        await bus.publish(note())
        await bus.publish(note())
        assert len(received) == 2
        assert bus.subscriber_count == 1

    def test_notification_to_dict(self) -> None:
        data = note(NotificationKind.SERVICE_FAILOVER).to_dict()
        assert data["kind"] == "service_failover"
        assert data["service"] == "openai"
        assert "timestamp" in data
