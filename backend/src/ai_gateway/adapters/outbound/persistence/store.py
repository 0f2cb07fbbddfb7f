"""Snapshot stores implementing SnapshotStorePort.

The file store keeps one JSON document on disk and replaces it atomically;
the Redis store keeps the same document under a single key.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import orjson
import redis.asyncio as redis
import structlog

from ai_gateway.domain.exceptions import PersistenceError
from ai_gateway.ports.outbound import SnapshotStorePort

logger = structlog.get_logger(__name__)

SNAPSHOT_FILENAME = "gateway_state.json"
DEFAULT_SNAPSHOT_KEY = "ai_gateway:state"


def _decode(raw: bytes | str, source: str) -> dict[str, Any]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise PersistenceError(f"Corrupt snapshot in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceError(f"Corrupt snapshot in {source}: expected an object")
    return data


class JsonFileSnapshotStore(SnapshotStorePort):
    """Single JSON file; writes go to a temp file then ``os.replace``."""

    def __init__(self, data_dir: str | Path, filename: str = SNAPSHOT_FILENAME) -> None:
        self._path = Path(data_dir) / filename

    @property
    def path(self) -> Path:
        return self._path

    async def read_snapshot(self) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read)

    async def write_snapshot(self, state: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, state)

    def _read(self) -> dict[str, Any] | None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}") from exc
        return _decode(raw, str(self._path))

    def _write(self, state: dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(orjson.dumps(state, option=orjson.OPT_INDENT_2))
            os.replace(tmp, self._path)
        except (OSError, TypeError) as exc:
            raise PersistenceError(f"Cannot write {self._path}: {exc}") from exc
        logger.debug("snapshot_written", path=str(self._path))


class RedisSnapshotStore(SnapshotStorePort):
    """Snapshot stored as one JSON string value."""

    def __init__(
        self,
        url: str | None = None,
        *,
        key: str = DEFAULT_SNAPSHOT_KEY,
        client: redis.Redis | None = None,
    ) -> None:
        if client is None and not url:
            raise PersistenceError("RedisSnapshotStore requires a url or a client")
        self._client = client if client is not None else redis.Redis.from_url(url, decode_responses=False)
        self._key = key

    async def read_snapshot(self) -> dict[str, Any] | None:
        try:
            raw = await self._client.get(self._key)
        except redis.RedisError as exc:
            raise PersistenceError(f"Redis read failed: {exc}") from exc
        if raw is None:
            return None
        return _decode(raw, f"redis key {self._key}")

    async def write_snapshot(self, state: dict[str, Any]) -> None:
        try:
            await self._client.set(self._key, orjson.dumps(state))
        except (redis.RedisError, TypeError) as exc:
            raise PersistenceError(f"Redis write failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()
