"""Budget ledger — per-service usage/cost tallies against monthly caps.

Admission control is *reactive*: thresholds are evaluated only after a call
has completed and its real cost is known.  Concurrent in-flight calls for
the same service can therefore all be admitted and overshoot the cap; the
ledger only guarantees that calls starting after the crossing see the
service as disabled.

Mutation and threshold evaluation for one ``track_usage`` happen inside a
single critical section, so two racing calls can never both observe
"not yet disabled" and emit ``budget_exceeded`` twice.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

import structlog

from ai_gateway.domain.enums import DisableReason, NotificationKind, ServiceKind
from ai_gateway.domain.exceptions import UnknownServiceError
from ai_gateway.domain.notifications import Notification
from ai_gateway.ports.outbound import NotificationBusPort
from ai_gateway.shared.budget.policy import (
    DEFAULT_AI_PREFERENCE,
    DEFAULT_FAILOVER_CHAIN,
    DEFAULT_SERVICES,
    TOTAL,
    BudgetFlag,
    BudgetPolicy,
    ServiceDefinition,
    UsageEntry,
)
from ai_gateway.shared.observability.metrics import BUDGET_SPEND

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_of(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


class BudgetLedger:
    """Tracks usage and cost for every configured service."""

    def __init__(
        self,
        policy: BudgetPolicy | None = None,
        *,
        services: Iterable[ServiceDefinition] = DEFAULT_SERVICES,
        failover_chain: Mapping[str, Iterable[str]] | None = None,
        ai_preference: Iterable[str] = DEFAULT_AI_PREFERENCE,
        voice_primary: str = "elevenlabs",
        voice_fallback: str = "free_tts",
        bus: NotificationBusPort | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._policy = policy or BudgetPolicy()
        self._services = {s.name: s for s in services}
        self._chain = {
            k: tuple(v) for k, v in (failover_chain or DEFAULT_FAILOVER_CHAIN).items()
        }
        self._ai_preference = tuple(ai_preference)
        self._voice_primary = voice_primary
        self._voice_fallback = voice_fallback
        self._bus = bus
        self._now = now

        self._usage: dict[str, UsageEntry] = {name: UsageEntry() for name in self._services}
        self._flags: dict[str, BudgetFlag] = {name: BudgetFlag() for name in self._services}
        self._period = period_of(now())
        self._lock = threading.Lock()

    # ── Introspection ────────────────────────────────────────
    @property
    def policy(self) -> BudgetPolicy:
        return self._policy

    @property
    def period(self) -> str:
        return self._period

    @property
    def services(self) -> list[str]:
        return list(self._services)

    def entry(self, service: str) -> UsageEntry:
        """Copy of a service's current tally."""
        with self._lock:
            current = self._usage[service]
            return UsageEntry(
                requests=current.requests,
                errors=current.errors,
                usage_amount=current.usage_amount,
                cost=current.cost,
            )

    def is_disabled(self, service: str) -> bool:
        flag = self._flags.get(service)
        return bool(flag and flag.disabled)

    def total_cost(self) -> float:
        with self._lock:
            return self._total_cost()

    # ── Recording ────────────────────────────────────────────
    async def track_usage(
        self,
        service: str,
        usage_amount: int | float,
        cost: float,
        success: bool = True,
    ) -> None:
        """Record one call's outcome and evaluate budget thresholds."""
        definition = self._services.get(service)
        if definition is None:
            logger.warning("usage_unknown_service", service=service)
            return
        if usage_amount < 0 or cost < 0:
            raise ValueError(
                f"usage_amount and cost must be non-negative (got {usage_amount}, {cost})"
            )

        with self._lock:
            entry = self._usage[service]
            entry.requests += 1
            entry.usage_amount += usage_amount
            entry.cost += cost
            if not success:
                entry.errors += 1
            current_cost = entry.cost
            pending = self._evaluate(definition)

        BUDGET_SPEND.labels(service=service).set(current_cost)
        logger.debug(
            "usage_tracked",
            service=service,
            usage_amount=usage_amount,
            cost=cost,
            success=success,
        )
        for notification in pending:
            await self._publish(notification)

    async def track_auxiliary_usage(
        self,
        service: str,
        amount: int | float,
        cost: float,
        success: bool = True,
    ) -> None:
        """Record usage for a non-token service (characters, minutes)."""
        await self.track_usage(service, amount, cost, success)

    def _evaluate(self, definition: ServiceDefinition) -> list[Notification]:
        """Threshold checks for the service's budget target.  Caller holds lock."""
        notes: list[Notification] = []
        target = definition.target
        limit = self._policy.limit_for(target)
        warn_pct = self._policy.warning_ratio * 100

        if limit is not None and target in self._flags:
            spend = self._spend_for(target)
            percent = spend / limit * 100
            flag = self._flags[target]

            if warn_pct <= percent < 100 and not flag.disabled:
                notes.append(
                    Notification(
                        kind=NotificationKind.BUDGET_WARNING,
                        service=target,
                        message=f"{target} budget at {percent:.1f}% ({spend:.2f}/{limit:g})",
                        payload={
                            "percent_used": percent,
                            "cost": spend,
                            "limit": limit,
                            "remaining": limit - spend,
                        },
                    )
                )

            if percent >= 100 and not flag.disabled:
                flag.disabled = True
                flag.reason = DisableReason.BUDGET_EXCEEDED
                notes.append(
                    Notification(
                        kind=NotificationKind.BUDGET_EXCEEDED,
                        service=target,
                        message=f"{target} budget exceeded! Switching to fallback...",
                        payload={"cost": spend, "limit": limit},
                    )
                )
                notes.append(self._cascade(target))

        total_limit = self._policy.total_limit
        if total_limit and total_limit > 0:
            total = self._total_cost()
            total_pct = total / total_limit * 100
            if warn_pct <= total_pct < 100:
                notes.append(
                    Notification(
                        kind=NotificationKind.BUDGET_WARNING,
                        service=TOTAL,
                        message=(
                            f"Total budget at {total_pct:.1f}% "
                            f"(${total:.2f}/${total_limit:g})"
                        ),
                        payload={
                            "percent_used": total_pct,
                            "cost": total,
                            "limit": total_limit,
                            "remaining": total_limit - total,
                        },
                    )
                )
        return notes

    def _cascade(self, service: str) -> Notification:
        """Walk the failover chain for a newly disabled service.  Caller holds lock."""
        chain = self._chain.get(service)
        fallback: str | None = None
        if not chain:
            message = f"No fallback available for: {service}"
        else:
            fallback = next(
                (s for s in chain if s in self._flags and not self._flags[s].disabled),
                None,
            )
            if fallback is not None:
                message = f"Switched from {service} to {fallback}"
            elif self._services[service].kind is ServiceKind.AI:
                message = "All AI services exceeded budget!"
            else:
                message = f"All fallbacks for {service} exceeded budget!"

        logger.warning("budget_failover", service=service, fallback=fallback)
        return Notification(
            kind=NotificationKind.SERVICE_FAILOVER,
            service=service,
            message=message,
            payload={"from": service, "to": fallback},
        )

    def _spend_for(self, target: str) -> float:
        return sum(
            self._usage[name].cost
            for name, definition in self._services.items()
            if definition.target == target
        )

    def _total_cost(self) -> float:
        return sum(entry.cost for entry in self._usage.values())

    async def _publish(self, notification: Notification) -> None:
        if self._bus is None:
            logger.info(
                "notification_unrouted",
                kind=notification.kind.value,
                message=notification.message,
            )
            return
        await self._bus.publish(notification)

    # ── Admission ────────────────────────────────────────────
    def get_recommended_service(self, kind: ServiceKind | str) -> str | None:
        """Preferred service right now, from budget state only (breakers ignored)."""
        parsed = ServiceKind.parse(kind)
        if parsed is ServiceKind.AI:
            for service in self._ai_preference:
                if service in self._flags and not self._flags[service].disabled:
                    return service
            return None
        if parsed is ServiceKind.AUXILIARY:
            if not self.is_disabled(self._voice_primary):
                return self._voice_primary
            return self._voice_fallback
        logger.debug("recommendation_unknown_kind", kind=str(kind))
        return None

    # ── Resets ───────────────────────────────────────────────
    async def reset_service(self, service: str) -> None:
        """Manual reset: zero one service's tally and re-enable it."""
        if service not in self._services:
            raise UnknownServiceError(service)
        with self._lock:
            self._usage[service] = UsageEntry()
            self._flags[service].clear()
        BUDGET_SPEND.labels(service=service).set(0)
        logger.info("budget_service_reset", service=service)
        await self._publish(
            Notification(
                kind=NotificationKind.SERVICE_RESTORED,
                service=service,
                message=f"{service} manually reset and re-enabled",
            )
        )

    def reset_all(self) -> dict[str, Any]:
        """Close the current billing period.

        Returns the archive record of the period just ended; all tallies are
        zeroed and every disable flag cleared.
        """
        now = self._now()
        with self._lock:
            record = {
                "month": self._period,
                "usage": {name: e.to_dict() for name, e in self._usage.items()},
                "total_cost": self._total_cost(),
                "limits": self._policy.as_dict(),
                "timestamp": now.isoformat(),
            }
            self._usage = {name: UsageEntry() for name in self._services}
            for flag in self._flags.values():
                flag.clear()
            self._period = period_of(now)
        for name in self._services:
            BUDGET_SPEND.labels(service=name).set(0)
        logger.info("budget_period_closed", month=record["month"], total_cost=record["total_cost"])
        return record

    # ── Reporting ────────────────────────────────────────────
    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            services: dict[str, dict[str, Any]] = {}
            for name, entry in self._usage.items():
                definition = self._services[name]
                limit = self._policy.limit_for(name)
                flag = self._flags[name]
                services[name] = {
                    "kind": definition.kind.value,
                    "unit": definition.unit.value,
                    **entry.to_dict(),
                    "success_rate": _success_rate(entry.requests, entry.errors),
                    "avg_cost_per_request": _avg(entry.cost, entry.requests),
                    "limit": limit,
                    "remaining": (limit - self._spend_for(name)) if limit else None,
                    "percent_used": (self._spend_for(name) / limit * 100) if limit else None,
                    "disabled": flag.disabled,
                    "reason": flag.reason.value,
                }

            total_cost = self._total_cost()
            total_requests = sum(e.requests for e in self._usage.values())
            total_errors = sum(e.errors for e in self._usage.values())
            total_limit = self._policy.total_limit

        return {
            "period": self._period,
            "services": services,
            "aggregate": {
                "requests": total_requests,
                "errors": total_errors,
                "cost": total_cost,
                "success_rate": _success_rate(total_requests, total_errors),
                "avg_cost_per_request": _avg(total_cost, total_requests),
                "limit": total_limit,
                "remaining": total_limit - total_cost,
                "percent_used": (total_cost / total_limit * 100) if total_limit else None,
            },
        }

    def render_report(self) -> str:
        stats = self.get_stats()
        agg = stats["aggregate"]
        rule = "═" * 55
        thin = "─" * 55
        lines = [
            "",
            rule,
            f"{'BUDGET REPORT':^55}",
            f"{'period ' + stats['period']:^55}",
            rule,
            "",
            f"Total Budget: ${agg['cost']:.2f} / ${agg['limit']:g} ({_pct(agg['percent_used'])})",
            f"Remaining: ${agg['remaining']:.2f}",
            f"Total Requests: {agg['requests']}",
            "",
            thin,
            "SERVICE BREAKDOWN:",
            thin,
            "",
        ]
        for name, svc in stats["services"].items():
            marker = "DISABLED" if svc["disabled"] else "ok"
            limit = f"${svc['limit']:g}" if svc["limit"] else "uncapped"
            lines.append(f"[{marker}] {name.upper()}")
            lines.append(f"   Cost: ${svc['cost']:.2f} / {limit} ({_pct(svc['percent_used'])})")
            lines.append(f"   Requests: {svc['requests']} | Errors: {svc['errors']}")
            if svc["usage_amount"]:
                lines.append(f"   {svc['unit'].capitalize()}: {svc['usage_amount']:,}")
            if svc["disabled"]:
                lines.append(f"   Disabled: {svc['reason']}")
            lines.append("")
        lines.append(rule)
        return "\n".join(lines) + "\n"

    # ── Persistence ──────────────────────────────────────────
    def export_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "period": self._period,
                "usage": {name: e.to_dict() for name, e in self._usage.items()},
                "flags": {name: f.to_dict() for name, f in self._flags.items()},
                "limits": self._policy.as_dict(),
            }

    def load_state(self, state: Mapping[str, Any]) -> None:
        """Replace in-memory state from a snapshot.

        Parsing happens before any mutation, so a malformed snapshot leaves
        the ledger untouched.  Services unknown to this configuration are
        ignored; configured caps always win over persisted ones.
        """
        if not isinstance(state, Mapping):
            raise ValueError(f"ledger state must be a mapping, got {type(state).__name__}")
        raw_usage = state.get("usage") or {}
        raw_flags = state.get("flags") or {}
        if not isinstance(raw_usage, Mapping) or not isinstance(raw_flags, Mapping):
            raise ValueError("ledger usage and flags must be mappings")

        usage = {name: UsageEntry() for name in self._services}
        flags = {name: BudgetFlag() for name in self._services}
        for name, data in raw_usage.items():
            if name in usage:
                usage[name] = UsageEntry.from_dict(data)
        for name, data in raw_flags.items():
            if name in flags:
                flags[name] = BudgetFlag.from_dict(data)
        period = state.get("period")

        with self._lock:
            self._usage = usage
            self._flags = flags
            if isinstance(period, str) and period:
                self._period = period
        for name, entry in usage.items():
            BUDGET_SPEND.labels(service=name).set(entry.cost)


def _success_rate(requests: int, errors: int) -> float:
    if requests <= 0:
        return 0.0
    return round((requests - errors) / requests * 100, 1)


def _avg(cost: float, requests: int) -> float:
    return round(cost / requests, 4) if requests > 0 else 0.0


def _pct(value: float | None) -> str:
    return f"{value:.1f}%" if value is not None else "N/A"
