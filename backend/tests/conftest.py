"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timezone
from typing import Any, Sequence

import pytest

# Add src to path so imports work
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from ai_gateway.adapters.outbound.event_bus import InProcessNotificationBus
from ai_gateway.domain.enums import ProviderErrorKind
from ai_gateway.domain.exceptions import PersistenceError, ProviderError
from ai_gateway.domain.notifications import Notification
from ai_gateway.ports.outbound import HistorySinkPort, ProviderPort, SnapshotStorePort
from ai_gateway.shared.budget import BudgetLedger, BudgetPolicy
from ai_gateway.shared.providers import (
    CallOptions,
    ChatMessage,
    FailoverOrchestrator,
    ProviderProfile,
    ProviderResponse,
)


# ═══════════════════════════════════════════════════════════════
#  Test doubles
# ═══════════════════════════════════════════════════════════════
class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(ProviderPort):
    """Scriptable provider: succeeds unless the provider id is in ``failing``."""

    def __init__(self, *, usage: int = 100, cost: float = 0.01) -> None:
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.delays: dict[str, float] = {}
        self.usage = usage
        self.cost = cost
        self.closed = False

    async def call(
        self,
        provider_id: str,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> ProviderResponse:
        self.calls.append(provider_id)
        if provider_id in self.delays:
            await asyncio.sleep(self.delays[provider_id])
        if provider_id in self.failing:
            raise ProviderError(
                provider_id, "HTTP 500: upstream error", kind=ProviderErrorKind.HTTP, status_code=500
            )
        return ProviderResponse(
            content=f"reply from {provider_id}",
            usage_amount=self.usage,
            cost=self.cost,
        )

    async def close(self) -> None:
        self.closed = True


class MemorySnapshotStore(SnapshotStorePort):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.state = initial
        self.writes = 0
        self.fail_writes = False
        self.corrupt = False
        self.closed = False

    async def read_snapshot(self) -> dict[str, Any] | None:
        if self.corrupt:
            raise PersistenceError("Corrupt snapshot in memory")
        return self.state

    async def write_snapshot(self, state: dict[str, Any]) -> None:
        if self.fail_writes:
            raise PersistenceError("disk full")
        self.state = state
        self.writes += 1

    async def close(self) -> None:
        self.closed = True


# ═══════════════════════════════════════════════════════════════
#  Fixtures
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def profiles() -> list[ProviderProfile]:
    return [
        ProviderProfile("openai", api_key="sk-test", model="gpt-4", cost_per_1k_tokens=0.03, priority=1),
        ProviderProfile(
            "anthropic", api_key="ak-test", model="claude-3-5-sonnet-20241022",
            cost_per_1k_tokens=0.003, priority=2,
        ),
        ProviderProfile(
            "gemini", api_key="gk-test", model="gemini-1.5-pro",
            cost_per_1k_tokens=0.00125, priority=3,
        ),
    ]


@pytest.fixture
def bus() -> InProcessNotificationBus:
    return InProcessNotificationBus()


@pytest.fixture
def notifications(bus: InProcessNotificationBus) -> list[Notification]:
    received: list[Notification] = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def ledger(bus: InProcessNotificationBus, fixed_now: datetime) -> BudgetLedger:
    return BudgetLedger(BudgetPolicy(), bus=bus, now=lambda: fixed_now)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def orchestrator(
    profiles: list[ProviderProfile],
    provider: FakeProvider,
    ledger: BudgetLedger,
    clock: FakeClock,
) -> FailoverOrchestrator:
    return FailoverOrchestrator(
        profiles,
        provider,
        ledger,
        error_threshold=3,
        cooldown_seconds=300.0,
        clock=clock,
    )


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


class MemoryHistorySink(HistorySinkPort):
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.fail = False
        self.closed = False

    async def append(self, record: dict[str, Any]) -> None:
        if self.fail:
            raise PersistenceError("history unavailable")
        self.records.append(record)

    async def read_all(self) -> list[dict[str, Any]]:
        return list(self.records)

    async def close(self) -> None:
        self.closed = True


class MutableNow:
    """Wall-clock datetime source that tests move forward explicitly."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def history() -> MemoryHistorySink:
    return MemoryHistorySink()
