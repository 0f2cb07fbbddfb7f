"""Durable storage adapters for gateway state and usage history."""

from ai_gateway.adapters.outbound.persistence.history import JsonlHistorySink, RedisHistorySink
from ai_gateway.adapters.outbound.persistence.store import JsonFileSnapshotStore, RedisSnapshotStore

__all__ = [
    "JsonFileSnapshotStore",
    "JsonlHistorySink",
    "RedisHistorySink",
    "RedisSnapshotStore",
]
