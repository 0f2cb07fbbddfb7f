"""Tests for the budget ledger: tallies, thresholds, cascades and resets."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from ai_gateway.adapters.outbound.event_bus import InProcessNotificationBus
from ai_gateway.domain.enums import DisableReason, NotificationKind, ServiceKind
from ai_gateway.domain.exceptions import UnknownServiceError
from ai_gateway.domain.notifications import Notification
from ai_gateway.shared.budget import BudgetLedger, BudgetPolicy


def kinds(notes: list[Notification]) -> list[NotificationKind]:
    return [n.kind for n in notes]


@pytest.fixture
def tight_ledger(bus: InProcessNotificationBus, fixed_now: datetime) -> BudgetLedger:
    policy = BudgetPolicy(
        limits={"openai": 50.0, "anthropic": 50.0, "gemini": 25.0, "elevenlabs": 50.0},
        total_limit=1000.0,
    )
    return BudgetLedger(policy, bus=bus, now=lambda: fixed_now)


# ═══════════════════════════════════════════════════════════════
#  Recording
# ═══════════════════════════════════════════════════════════════
class TestTrackUsage:
    @pytest.mark.asyncio
    async def test_cost_is_sum_of_recorded_costs(self, ledger: BudgetLedger) -> None:
        costs = [0.5, 1.25, 0.0, 3.0]
        previous = 0.0
        for cost in costs:
            await ledger.track_usage("anthropic", 100, cost, True)
            current = ledger.entry("anthropic").cost
            assert current >= previous
            previous = current
        entry = ledger.entry("anthropic")
        assert entry.cost == pytest.approx(sum(costs))
        assert entry.requests == 4
        assert entry.usage_amount == 400

    @pytest.mark.asyncio
    async def test_failure_counts_error(self, ledger: BudgetLedger) -> None:
        await ledger.track_usage("gemini", 0, 0.0, False)
        await ledger.track_usage("gemini", 10, 0.01, True)
        entry = ledger.entry("gemini")
        assert entry.requests == 2
        assert entry.errors == 1

    @pytest.mark.asyncio
    async def test_unknown_service_is_ignored(
        self, ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await ledger.track_usage("mistral", 100, 1.0, True)
        assert "mistral" not in ledger.services
        assert notifications == []

    @pytest.mark.asyncio
    async def test_negative_values_rejected(self, ledger: BudgetLedger) -> None:
        with pytest.raises(ValueError):
            await ledger.track_usage("openai", -1, 0.0, True)
        with pytest.raises(ValueError):
            await ledger.track_usage("openai", 1, -0.5, True)
        assert ledger.entry("openai").requests == 0


# ═══════════════════════════════════════════════════════════════
#  Thresholds
# ═══════════════════════════════════════════════════════════════
class TestThresholds:
    @pytest.mark.asyncio
    async def test_warning_then_exceeded_with_failover(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await tight_ledger.track_usage("openai", 1000, 45.0, True)
        assert kinds(notifications) == [NotificationKind.BUDGET_WARNING]
        assert notifications[0].service == "openai"
        assert not tight_ledger.is_disabled("openai")

        notifications.clear()
        await tight_ledger.track_usage("openai", 200, 10.0, True)
        assert kinds(notifications) == [
            NotificationKind.BUDGET_EXCEEDED,
            NotificationKind.SERVICE_FAILOVER,
        ]
        assert tight_ledger.is_disabled("openai")
        failover = notifications[1]
        assert failover.payload == {"from": "openai", "to": "anthropic"}
        assert failover.message == "Switched from openai to anthropic"

    @pytest.mark.asyncio
    async def test_no_warning_once_disabled(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await tight_ledger.track_usage("gemini", 10, 30.0, True)
        notifications.clear()
        await tight_ledger.track_usage("gemini", 10, 1.0, True)
        assert notifications == []

    @pytest.mark.asyncio
    async def test_exactly_one_exceeded_under_concurrency(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await asyncio.gather(*(tight_ledger.track_usage("openai", 10, 10.0, True) for _ in range(20)))
        exceeded = [n for n in notifications if n.kind is NotificationKind.BUDGET_EXCEEDED]
        assert len(exceeded) == 1
        assert tight_ledger.entry("openai").cost == pytest.approx(200.0)

    @pytest.mark.asyncio
    async def test_cascade_skips_disabled_fallbacks(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await tight_ledger.track_usage("anthropic", 1, 60.0, True)
        await tight_ledger.track_usage("gemini", 1, 30.0, True)
        notifications.clear()
        await tight_ledger.track_usage("openai", 1, 60.0, True)
        failover = notifications[-1]
        assert failover.kind is NotificationKind.SERVICE_FAILOVER
        assert failover.message == "All AI services exceeded budget!"
        assert failover.payload["to"] is None

    @pytest.mark.asyncio
    async def test_whisper_spend_counts_against_openai(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await tight_ledger.track_auxiliary_usage("whisper", 120, 55.0, True)
        assert tight_ledger.is_disabled("openai")
        assert not tight_ledger.is_disabled("whisper")
        assert tight_ledger.entry("whisper").usage_amount == 120
        assert tight_ledger.entry("openai").cost == 0.0

    @pytest.mark.asyncio
    async def test_voice_failover_to_free_tts(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        assert tight_ledger.get_recommended_service("voice") == "elevenlabs"
        await tight_ledger.track_auxiliary_usage("elevenlabs", 500_000, 51.0, True)
        assert notifications[-1].payload == {"from": "elevenlabs", "to": "free_tts"}
        assert tight_ledger.get_recommended_service(ServiceKind.AUXILIARY) == "free_tts"

    @pytest.mark.asyncio
    async def test_total_budget_warning(
        self, bus: InProcessNotificationBus, notifications: list[Notification], fixed_now: datetime
    ) -> None:
        ledger = BudgetLedger(
            BudgetPolicy(limits={}, total_limit=100.0), bus=bus, now=lambda: fixed_now
        )
        await ledger.track_usage("openai", 1, 85.0, True)
        assert kinds(notifications) == [NotificationKind.BUDGET_WARNING]
        assert notifications[0].service == "total"


# ═══════════════════════════════════════════════════════════════
#  Recommendation
# ═══════════════════════════════════════════════════════════════
class TestRecommendation:
    @pytest.mark.asyncio
    async def test_ai_none_iff_all_disabled(self, tight_ledger: BudgetLedger) -> None:
        assert tight_ledger.get_recommended_service("ai") == "openai"
        await tight_ledger.track_usage("openai", 1, 50.0, True)
        assert tight_ledger.get_recommended_service("ai") == "anthropic"
        await tight_ledger.track_usage("anthropic", 1, 50.0, True)
        assert tight_ledger.get_recommended_service("ai") == "gemini"
        await tight_ledger.track_usage("gemini", 1, 25.0, True)
        assert tight_ledger.get_recommended_service("ai") is None

    def test_unknown_kind(self, ledger: BudgetLedger) -> None:
        assert ledger.get_recommended_service("video") is None


# ═══════════════════════════════════════════════════════════════
#  Resets & state
# ═══════════════════════════════════════════════════════════════
class TestResets:
    @pytest.mark.asyncio
    async def test_reset_service_reenables_and_notifies(
        self, tight_ledger: BudgetLedger, notifications: list[Notification]
    ) -> None:
        await tight_ledger.track_usage("openai", 1, 60.0, True)
        notifications.clear()
        await tight_ledger.reset_service("openai")
        assert not tight_ledger.is_disabled("openai")
        assert tight_ledger.entry("openai").cost == 0.0
        assert kinds(notifications) == [NotificationKind.SERVICE_RESTORED]

    @pytest.mark.asyncio
    async def test_reset_unknown_service(self, ledger: BudgetLedger) -> None:
        with pytest.raises(UnknownServiceError):
            await ledger.reset_service("mistral")

    @pytest.mark.asyncio
    async def test_reset_all_archives_and_clears(self, bus: InProcessNotificationBus) -> None:
        moments = iter(
            [
                datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc),
                datetime(2024, 4, 1, 0, 0, tzinfo=timezone.utc),
            ]
        )
        current = {"now": next(moments)}
        ledger = BudgetLedger(bus=bus, now=lambda: current["now"])
        await ledger.track_usage("gemini", 1000, 30.0, True)
        assert ledger.is_disabled("gemini")

        current["now"] = next(moments)
        record = ledger.reset_all()
        assert record["month"] == "2024-03"
        assert record["usage"]["gemini"]["cost"] == 30.0
        assert record["total_cost"] == 30.0
        assert ledger.period == "2024-04"
        assert ledger.entry("gemini").cost == 0.0
        assert not ledger.is_disabled("gemini")

    @pytest.mark.asyncio
    async def test_export_load_round_trip(
        self, tight_ledger: BudgetLedger, bus: InProcessNotificationBus, fixed_now: datetime
    ) -> None:
        await tight_ledger.track_usage("openai", 1500, 60.0, True)
        await tight_ledger.track_usage("anthropic", 300, 1.5, False)
        state = tight_ledger.export_state()

        fresh = BudgetLedger(tight_ledger.policy, bus=bus, now=lambda: fixed_now)
        fresh.load_state(state)
        assert fresh.entry("openai").cost == 60.0
        assert fresh.entry("anthropic").errors == 1
        assert fresh.is_disabled("openai")
        assert fresh.period == tight_ledger.period
        assert fresh.export_state() == state

    def test_load_invalid_state_leaves_ledger_untouched(self, ledger: BudgetLedger) -> None:
        with pytest.raises(ValueError):
            ledger.load_state({"usage": {"openai": {"requests": 1, "errors": 5, "cost": 1.0}}})
        assert ledger.entry("openai").requests == 0

    @pytest.mark.asyncio
    async def test_disable_reason_recorded(self, tight_ledger: BudgetLedger) -> None:
        await tight_ledger.track_usage("gemini", 1, 26.0, True)
        stats = tight_ledger.get_stats()
        assert stats["services"]["gemini"]["reason"] == DisableReason.BUDGET_EXCEEDED.value


# ═══════════════════════════════════════════════════════════════
#  Reporting
# ═══════════════════════════════════════════════════════════════
class TestReporting:
    @pytest.mark.asyncio
    async def test_stats(self, ledger: BudgetLedger) -> None:
        await ledger.track_usage("openai", 1000, 30.0, True)
        await ledger.track_usage("openai", 0, 0.0, False)
        stats = ledger.get_stats()
        openai = stats["services"]["openai"]
        assert openai["requests"] == 2
        assert openai["success_rate"] == 50.0
        assert openai["percent_used"] == pytest.approx(30.0)
        assert openai["remaining"] == pytest.approx(70.0)
        assert stats["services"]["free_tts"]["limit"] is None
        assert stats["aggregate"]["cost"] == pytest.approx(30.0)
        assert stats["aggregate"]["limit"] == 200.0
        assert stats["period"] == "2024-03"

    @pytest.mark.asyncio
    async def test_report_mentions_disabled_service(self, tight_ledger: BudgetLedger) -> None:
        await tight_ledger.track_usage("gemini", 1, 26.0, True)
        report = tight_ledger.render_report()
        assert "BUDGET REPORT" in report
        assert "[DISABLED] GEMINI" in report
        assert "[ok] OPENAI" in report
