"""Outbound ports — interfaces that infrastructure adapters must implement.

The orchestration and budget layers depend only on these abstractions, never
on concrete implementations (HTTP clients, Redis, the filesystem).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Sequence, Union

from ai_gateway.domain.notifications import Notification
from ai_gateway.domain.value_objects import CallOptions, ChatMessage, ProviderResponse

NotificationCallback = Callable[[Notification], Union[None, Awaitable[None]]]


# ═══════════════════════════════════════════════════════════════
#  Provider port
# ═══════════════════════════════════════════════════════════════
class ProviderPort(ABC):
    """One outbound generation call to one provider."""

    @abstractmethod
    async def call(
        self,
        provider_id: str,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> ProviderResponse:
        """Return a normalised response or raise ``ProviderError``."""
        ...

    async def close(self) -> None:
        return None


# ═══════════════════════════════════════════════════════════════
#  Notification bus port
# ═══════════════════════════════════════════════════════════════
class NotificationBusPort(ABC):
    @abstractmethod
    async def publish(self, notification: Notification) -> None: ...

    @abstractmethod
    def subscribe(self, callback: NotificationCallback) -> Callable[[], None]: ...


# ═══════════════════════════════════════════════════════════════
#  Persistence ports
# ═══════════════════════════════════════════════════════════════
class SnapshotStorePort(ABC):
    """Durable document store for ledger and availability state."""

    @abstractmethod
    async def read_snapshot(self) -> dict[str, Any] | None:
        """Return the stored snapshot, ``None`` if absent; raise ``PersistenceError`` if unreadable."""
        ...

    @abstractmethod
    async def write_snapshot(self, state: dict[str, Any]) -> None: ...

    async def close(self) -> None:
        return None


class HistorySinkPort(ABC):
    """Append-only archive of monthly usage snapshots."""

    @abstractmethod
    async def append(self, record: dict[str, Any]) -> None: ...

    @abstractmethod
    async def read_all(self) -> list[dict[str, Any]]: ...

    async def close(self) -> None:
        return None
