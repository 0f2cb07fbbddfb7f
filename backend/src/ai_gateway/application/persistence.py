"""Snapshot and restore of ledger and circuit breaker state.

Storage problems never stop the gateway: a failed flush is logged and the
next flush retries, and an absent or unreadable snapshot starts the gateway
from zero usage with every provider enabled.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import structlog

from ai_gateway.domain.exceptions import PersistenceError
from ai_gateway.ports.outbound import SnapshotStorePort
from ai_gateway.shared.budget import BudgetLedger
from ai_gateway.shared.providers import CircuitSnapshot, FailoverOrchestrator

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatePersistence:
    def __init__(
        self,
        store: SnapshotStorePort,
        ledger: BudgetLedger,
        orchestrator: FailoverOrchestrator,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._orchestrator = orchestrator
        self._now = now
        self._write_lock = asyncio.Lock()

    @property
    def store(self) -> SnapshotStorePort:
        return self._store

    def snapshot(self) -> dict[str, Any]:
        ledger_state = self._ledger.export_state()
        return {
            "ledger": ledger_state,
            "availability": self._orchestrator.availability(),
            "circuits": {
                pid: snap.to_dict()
                for pid, snap in self._orchestrator.breakers.snapshots().items()
            },
            "limits": ledger_state["limits"],
            "period": ledger_state["period"],
            "saved_at": self._now().isoformat(),
        }

    async def flush(self) -> bool:
        """Write the current snapshot. Returns False if the store rejected it."""
        state = self.snapshot()
        async with self._write_lock:
            try:
                await self._store.write_snapshot(state)
            except PersistenceError as exc:
                logger.error("state_flush_failed", error=exc.message)
                return False
        logger.debug("state_flushed", period=state["period"])
        return True

    async def load(self) -> bool:
        """Restore ledger and breakers. Returns True if a snapshot was applied."""
        try:
            data = await self._store.read_snapshot()
        except PersistenceError as exc:
            logger.warning("state_load_failed", error=exc.message)
            return False
        if data is None:
            logger.info("state_not_found")
            return False

        try:
            raw_circuits = data.get("circuits") or {}
            if not isinstance(raw_circuits, Mapping):
                raise ValueError("circuits must be a mapping")
            circuits: dict[str, CircuitSnapshot] = {}
            for pid, raw in raw_circuits.items():
                if not isinstance(raw, Mapping):
                    raise ValueError(f"circuit state for {pid!r} must be a mapping")
                circuits[pid] = CircuitSnapshot.from_dict({**raw, "provider_id": pid})
            self._ledger.load_state(data.get("ledger") or {})
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("state_snapshot_invalid", error=str(exc))
            return False

        self._orchestrator.breakers.restore(circuits)
        logger.info(
            "state_loaded",
            period=self._ledger.period,
            saved_at=data.get("saved_at"),
            total_cost=self._ledger.total_cost(),
        )
        return True
