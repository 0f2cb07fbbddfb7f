"""Immutable value objects passed between the orchestrator and provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ai_gateway.domain.enums import MessageRole


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """Provider-neutral chat message."""

    role: MessageRole
    content: str

    @classmethod
    def coerce(cls, value: ChatMessage | Mapping[str, Any]) -> ChatMessage:
        if isinstance(value, ChatMessage):
            return value
        return cls(role=MessageRole(value["role"]), content=str(value.get("content", "")))


def normalise_messages(messages: Iterable[ChatMessage | Mapping[str, Any]]) -> list[ChatMessage]:
    return [ChatMessage.coerce(m) for m in messages]


@dataclass(frozen=True, slots=True)
class CallOptions:
    temperature: float = 0.7
    max_tokens: int = 500


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Normalised result of one successful provider call."""

    content: str
    usage_amount: int
    cost: float
