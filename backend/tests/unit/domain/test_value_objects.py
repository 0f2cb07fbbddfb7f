"""Tests for domain value objects and result types."""

from __future__ import annotations

import pytest

from ai_gateway.domain.enums import MessageRole, ServiceKind, TaskType
from ai_gateway.shared.providers import ChatMessage, GenerationResult, ProviderProfile
from ai_gateway.shared.providers.types import CircuitSnapshot, normalise_messages


class TestChatMessage:
    def test_coerce_mapping(self) -> None:
        msg = ChatMessage.coerce({"role": "assistant", "content": "ok"})
        assert msg == ChatMessage(MessageRole.ASSISTANT, "ok")

    def test_invalid_role(self) -> None:
        with pytest.raises(ValueError):
            normalise_messages([{"role": "tool", "content": "x"}])


class TestProviderProfile:
    def test_blank_key_disables(self) -> None:
        assert not ProviderProfile("openai", api_key="   ").enabled

    def test_cost_for(self) -> None:
        profile = ProviderProfile("gemini", api_key="k", cost_per_1k_tokens=0.00125)
        assert profile.cost_for(2000) == pytest.approx(0.0025)


class TestParsing:
    def test_service_kind_alias(self) -> None:
        assert ServiceKind.parse("voice") is ServiceKind.AUXILIARY
        assert ServiceKind.parse("AI") is ServiceKind.AI
        assert ServiceKind.parse("video") is None

    def test_task_type(self) -> None:
        assert TaskType.parse("Conversation") is TaskType.CONVERSATION
        assert TaskType.parse("unknown") is None


class TestResults:
    def test_generation_result_to_dict(self) -> None:
        result = GenerationResult("hi", "openai", 12, 0.00036, attempted=["openai"])
        assert result.success is True
        assert result.to_dict() == {
            "success": True,
            "content": "hi",
            "provider": "openai",
            "usage_amount": 12,
            "cost": 0.00036,
            "attempted": ["openai"],
        }

    def test_circuit_snapshot_rejects_negative_errors(self) -> None:
        snap = CircuitSnapshot.from_dict({"provider_id": "x", "consecutive_errors": -4})
        assert snap.consecutive_errors == 0
