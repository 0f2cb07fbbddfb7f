"""Notifications — typed records of gateway state changes.

Created and delivered within a single dispatch cycle; never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ai_gateway.domain.enums import NotificationKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Notification:
    """A single budget / failover / restore event."""

    kind: NotificationKind
    service: str | None
    message: str
    timestamp: datetime = field(default_factory=_utcnow)
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "service": self.service,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "payload": dict(self.payload),
        }
