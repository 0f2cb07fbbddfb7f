"""Core types for the multi-provider failover framework."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from ai_gateway.domain.exceptions import AllProvidersFailedError
from ai_gateway.domain.value_objects import (
    CallOptions,
    ChatMessage,
    ProviderResponse,
    normalise_messages,
)

__all__ = [
    "CallOptions",
    "ChatMessage",
    "CircuitSnapshot",
    "GenerationFailure",
    "GenerationResult",
    "ProviderProfile",
    "ProviderResponse",
    "normalise_messages",
]


@dataclass(frozen=True)
class ProviderProfile:
    """Static configuration for a single generation provider.

    Attributes:
        provider_id:        Unique identifier (e.g. "openai", "gemini").
        api_key:            Credential; an empty key leaves the provider disabled.
        model:              Model name sent with every request.
        base_url:           Override for the provider's API root (empty = default).
        cost_per_1k_tokens: Unit cost rate; cost = tokens * rate / 1000.
        priority:           Lower = higher priority in the default ranking.
        timeout_s:          Per-request timeout in seconds.
        metadata:           Arbitrary extra config (API version etc.).
    """

    provider_id: str
    api_key: str = ""
    model: str = ""
    base_url: str = ""
    cost_per_1k_tokens: float = 0.0
    priority: int = 10
    timeout_s: float = 60.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key.strip())

    def cost_for(self, usage_amount: int | float) -> float:
        return usage_amount * self.cost_per_1k_tokens / 1000


@dataclass
class CircuitSnapshot:
    """Serializable state of one provider's circuit breaker."""

    provider_id: str
    available: bool = True
    consecutive_errors: int = 0
    last_error: str | None = None
    cooldown_expires_at: float | None = None
    manual_override: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CircuitSnapshot:
        expires = data.get("cooldown_expires_at")
        return cls(
            provider_id=str(data["provider_id"]),
            available=bool(data.get("available", True)),
            consecutive_errors=max(0, int(data.get("consecutive_errors", 0))),
            last_error=data.get("last_error"),
            cooldown_expires_at=float(expires) if expires is not None else None,
            manual_override=bool(data.get("manual_override", False)),
        )


@dataclass
class GenerationResult:
    content: str
    provider: str
    usage_amount: int
    cost: float
    attempted: list[str] = field(default_factory=list)
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "content": self.content,
            "provider": self.provider,
            "usage_amount": self.usage_amount,
            "cost": self.cost,
            "attempted": list(self.attempted),
        }


@dataclass
class GenerationFailure:
    """Structured total-failure result; never raised across the API boundary."""

    error: str
    diagnostics: dict[str, dict[str, Any]]
    attempted: list[str] = field(default_factory=list)
    success: bool = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.error,
            "diagnostics": self.diagnostics,
            "attempted": list(self.attempted),
        }

    def raise_for_failure(self) -> None:
        raise AllProvidersFailedError(self.diagnostics, attempted=self.attempted)
