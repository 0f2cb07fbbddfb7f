"""Append-only archives for closed billing periods."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import orjson
import redis.asyncio as redis
import structlog

from ai_gateway.domain.exceptions import PersistenceError
from ai_gateway.ports.outbound import HistorySinkPort

logger = structlog.get_logger(__name__)

HISTORY_FILENAME = "usage_history.jsonl"
DEFAULT_HISTORY_KEY = "ai_gateway:history"


class JsonlHistorySink(HistorySinkPort):
    """One JSON document per line."""

    def __init__(self, data_dir: str | Path, filename: str = HISTORY_FILENAME) -> None:
        self._path = Path(data_dir) / filename

    async def append(self, record: dict[str, Any]) -> None:
        await asyncio.to_thread(self._append, record)

    async def read_all(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_all)

    def _append(self, record: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("ab") as fh:
                fh.write(orjson.dumps(record) + b"\n")
        except (OSError, TypeError) as exc:
            raise PersistenceError(f"Cannot append to {self._path}: {exc}") from exc

    def _read_all(self) -> list[dict[str, Any]]:
        try:
            lines = self._path.read_bytes().splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}") from exc
        records = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                records.append(orjson.loads(line))
            except orjson.JSONDecodeError:
                logger.warning("history_line_skipped", path=str(self._path), line=lineno)
        return records


class RedisHistorySink(HistorySinkPort):
    def __init__(
        self,
        url: str | None = None,
        *,
        key: str = DEFAULT_HISTORY_KEY,
        client: redis.Redis | None = None,
    ) -> None:
        if client is None and not url:
            raise PersistenceError("RedisHistorySink requires a url or a client")
        self._client = client if client is not None else redis.Redis.from_url(url, decode_responses=False)
        self._key = key

    async def append(self, record: dict[str, Any]) -> None:
        try:
            await self._client.rpush(self._key, orjson.dumps(record))
        except (redis.RedisError, TypeError) as exc:
            raise PersistenceError(f"Redis history append failed: {exc}") from exc

    async def read_all(self) -> list[dict[str, Any]]:
        try:
            raw = await self._client.lrange(self._key, 0, -1)
        except redis.RedisError as exc:
            raise PersistenceError(f"Redis history read failed: {exc}") from exc
        records = []
        for index, item in enumerate(raw):
            try:
                records.append(orjson.loads(item))
            except orjson.JSONDecodeError:
                logger.warning("history_entry_skipped", key=self._key, index=index)
        return records

    async def close(self) -> None:
        await self._client.aclose()
