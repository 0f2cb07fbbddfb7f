"""Budget configuration types: tracked services, monthly caps, failover chains."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ai_gateway.domain.enums import DisableReason, ServiceKind, UsageUnit

TOTAL = "total"


@dataclass(frozen=True)
class ServiceDefinition:
    """A tracked service.

    ``budget_target`` names the service whose monthly cap this service's
    spend counts against; it defaults to the service itself.
    """

    name: str
    kind: ServiceKind
    unit: UsageUnit
    budget_target: str | None = None

    @property
    def target(self) -> str:
        return self.budget_target or self.name


DEFAULT_SERVICES: tuple[ServiceDefinition, ...] = (
    ServiceDefinition("openai", ServiceKind.AI, UsageUnit.TOKENS),
    ServiceDefinition("anthropic", ServiceKind.AI, UsageUnit.TOKENS),
    ServiceDefinition("gemini", ServiceKind.AI, UsageUnit.TOKENS),
    ServiceDefinition("elevenlabs", ServiceKind.AUXILIARY, UsageUnit.CHARACTERS),
    ServiceDefinition("free_tts", ServiceKind.AUXILIARY, UsageUnit.CHARACTERS),
    # Transcription is billed to the OpenAI account
    ServiceDefinition("whisper", ServiceKind.AUXILIARY, UsageUnit.MINUTES, budget_target="openai"),
)

DEFAULT_FAILOVER_CHAIN: dict[str, tuple[str, ...]] = {
    "openai": ("anthropic", "gemini"),
    "anthropic": ("gemini", "openai"),
    "gemini": ("openai", "anthropic"),
    "elevenlabs": ("free_tts",),
}

DEFAULT_AI_PREFERENCE: tuple[str, ...] = ("openai", "anthropic", "gemini")


@dataclass(frozen=True)
class BudgetPolicy:
    """Per-service monthly caps plus one aggregate cap.

    A service without a positive cap is uncapped and never budget-disabled.
    """

    limits: Mapping[str, float] = field(
        default_factory=lambda: {
            "openai": 100.0,
            "anthropic": 50.0,
            "gemini": 25.0,
            "elevenlabs": 50.0,
        }
    )
    total_limit: float = 200.0
    warning_ratio: float = 0.80

    def limit_for(self, service: str) -> float | None:
        limit = self.limits.get(service)
        return limit if limit and limit > 0 else None

    def as_dict(self) -> dict[str, float]:
        out = {k: float(v) for k, v in self.limits.items()}
        out[TOTAL] = float(self.total_limit)
        return out


@dataclass
class UsageEntry:
    """Running tally for one service in the current billing period."""

    requests: int = 0
    errors: int = 0
    usage_amount: int | float = 0
    cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "errors": self.errors,
            "usage_amount": self.usage_amount,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UsageEntry:
        _require_mapping(data, "usage entry")
        entry = cls(
            requests=int(data.get("requests", 0)),
            errors=int(data.get("errors", 0)),
            usage_amount=data.get("usage_amount", 0),
            cost=float(data.get("cost", 0.0)),
        )
        if not isinstance(entry.usage_amount, (int, float)):
            raise TypeError(f"usage_amount must be numeric, got {entry.usage_amount!r}")
        if entry.requests < 0 or entry.cost < 0 or not 0 <= entry.errors <= entry.requests:
            raise ValueError(f"Inconsistent usage entry: {dict(data)!r}")
        return entry


@dataclass
class BudgetFlag:
    """Budget-driven disable state, independent of circuit breaker state."""

    disabled: bool = False
    reason: DisableReason = DisableReason.NONE

    def clear(self) -> None:
        self.disabled = False
        self.reason = DisableReason.NONE

    def to_dict(self) -> dict[str, Any]:
        return {"disabled": self.disabled, "reason": self.reason.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BudgetFlag:
        _require_mapping(data, "budget flag")
        return cls(
            disabled=bool(data.get("disabled", False)),
            reason=DisableReason(data.get("reason") or DisableReason.NONE.value),
        )


def _require_mapping(data: Any, what: str) -> None:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, got {type(data).__name__}")
