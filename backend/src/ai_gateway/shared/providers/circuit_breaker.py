"""Circuit breaker — stops routing traffic to a provider after repeated failures.

State machine:
    CLOSED → (N consecutive failures)          → OPEN (cooldown armed)
    OPEN   → (cooldown expires)                → CLOSED, errors reset
    any    → (manual override enabled=True)    → CLOSED, errors reset
    any    → (manual override enabled=False)   → OPEN, no cooldown
"""

from __future__ import annotations

import enum
import threading
import time
from typing import Callable, Iterable

import structlog

from ai_gateway.shared.observability.metrics import CIRCUIT_OPEN
from ai_gateway.shared.providers.types import CircuitSnapshot, ProviderProfile

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Per-provider circuit breaker with cooldown self-healing.

    Cooldown expiry is evaluated lazily on every read, so an open breaker
    needs no timer of its own.  ``clock`` returns epoch seconds and is
    injectable for tests.
    """

    def __init__(
        self,
        provider_id: str,
        *,
        error_threshold: int = 3,
        cooldown_seconds: float = 300.0,
        clock: Clock = time.time,
    ) -> None:
        self._provider_id = provider_id
        self._threshold = error_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_errors = 0
        self._last_error: str | None = None
        self._cooldown_expires_at: float | None = None
        self._manual_override = False
        self._lock = threading.Lock()

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_heal()
            return self._state

    @property
    def consecutive_errors(self) -> int:
        with self._lock:
            self._maybe_heal()
            return self._consecutive_errors

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def can_execute(self) -> bool:
        return self.state == CircuitState.CLOSED

    def record_success(self) -> None:
        """A successful call resets the consecutive error count."""
        with self._lock:
            self._maybe_heal()
            self._consecutive_errors = 0

    def record_failure(self, error: str | None = None) -> bool:
        """Record a failed call.  Returns True if this failure tripped the circuit."""
        with self._lock:
            self._maybe_heal()
            self._consecutive_errors += 1
            if error is not None:
                self._last_error = error

            if (
                self._state == CircuitState.CLOSED
                and self._consecutive_errors >= self._threshold
            ):
                self._state = CircuitState.OPEN
                self._cooldown_expires_at = self._clock() + self._cooldown
                CIRCUIT_OPEN.labels(provider=self._provider_id).set(1)
                logger.warning(
                    "circuit_breaker_opened",
                    provider=self._provider_id,
                    errors=self._consecutive_errors,
                    last_error=self._last_error,
                    cooldown_s=self._cooldown,
                )
                return True
            return False

    def override(self, enabled: bool) -> None:
        """Operator override.  Applying the same value twice is a no-op."""
        with self._lock:
            self._consecutive_errors = 0
            self._cooldown_expires_at = None
            if enabled:
                self._state = CircuitState.CLOSED
                self._manual_override = False
            else:
                self._state = CircuitState.OPEN
                self._manual_override = True
            CIRCUIT_OPEN.labels(provider=self._provider_id).set(0 if enabled else 1)
            logger.info(
                "circuit_breaker_manual_override",
                provider=self._provider_id,
                enabled=enabled,
            )

    # ── Persistence ──────────────────────────────────────────
    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            self._maybe_heal()
            return CircuitSnapshot(
                provider_id=self._provider_id,
                available=self._state == CircuitState.CLOSED,
                consecutive_errors=self._consecutive_errors,
                last_error=self._last_error,
                cooldown_expires_at=self._cooldown_expires_at,
                manual_override=self._manual_override,
            )

    def restore(self, snapshot: CircuitSnapshot) -> None:
        with self._lock:
            self._consecutive_errors = snapshot.consecutive_errors
            self._last_error = snapshot.last_error
            self._manual_override = snapshot.manual_override
            self._cooldown_expires_at = snapshot.cooldown_expires_at
            if snapshot.available:
                self._state = CircuitState.CLOSED
            elif snapshot.manual_override or snapshot.cooldown_expires_at is not None:
                self._state = CircuitState.OPEN
            else:
                # An open breaker with neither cause recorded cannot heal; start closed.
                self._state = CircuitState.CLOSED
            self._maybe_heal()

    def _maybe_heal(self) -> None:
        """Caller must hold lock."""
        if self._state != CircuitState.OPEN or self._manual_override:
            return
        if self._cooldown_expires_at is not None and self._clock() >= self._cooldown_expires_at:
            self._state = CircuitState.CLOSED
            self._consecutive_errors = 0
            self._cooldown_expires_at = None
            CIRCUIT_OPEN.labels(provider=self._provider_id).set(0)
            logger.info("circuit_breaker_closed", provider=self._provider_id)


class CircuitBreakerRegistry:
    """Owned registry of per-provider breakers keyed by provider id."""

    def __init__(
        self,
        profiles: Iterable[ProviderProfile],
        *,
        error_threshold: int = 3,
        cooldown_seconds: float = 300.0,
        clock: Clock = time.time,
    ) -> None:
        self._profiles = {p.provider_id: p for p in profiles}
        self._breakers = {
            pid: CircuitBreaker(
                pid,
                error_threshold=error_threshold,
                cooldown_seconds=cooldown_seconds,
                clock=clock,
            )
            for pid in self._profiles
        }

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._breakers

    def __iter__(self):
        return iter(self._breakers.values())

    def get(self, provider_id: str) -> CircuitBreaker:
        return self._breakers[provider_id]

    def is_available(self, provider_id: str) -> bool:
        """Configuration-level ``enabled`` AND breaker closed."""
        profile = self._profiles.get(provider_id)
        if profile is None or not profile.enabled:
            return False
        return self._breakers[provider_id].can_execute()

    def diagnostics(self, error_counts: dict[str, int] | None = None) -> dict[str, dict[str, object]]:
        counts = error_counts or {}
        out: dict[str, dict[str, object]] = {}
        for pid, profile in self._profiles.items():
            snap = self._breakers[pid].snapshot()
            out[pid] = {
                "enabled": profile.enabled,
                "available": profile.enabled and snap.available,
                "error_count": counts.get(pid, snap.consecutive_errors),
                "consecutive_errors": snap.consecutive_errors,
                "last_error": snap.last_error,
                "cooldown_expires_at": snap.cooldown_expires_at,
            }
        return out

    def snapshots(self) -> dict[str, CircuitSnapshot]:
        return {pid: cb.snapshot() for pid, cb in self._breakers.items()}

    def restore(self, snapshots: dict[str, CircuitSnapshot]) -> None:
        for pid, snap in snapshots.items():
            if pid in self._breakers:
                self._breakers[pid].restore(snap)
