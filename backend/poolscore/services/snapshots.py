"""Persistence of in-progress matches.

Each live table keeps one JSON snapshot under ``<SNAPSHOT_KEY>:<table_id>``.
Writes are debounced so a burst of actions costs a single write, and a
snapshot that cannot be parsed never prevents a table from loading.
"""

from __future__ import annotations

import asyncio
from asyncio import Lock
import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import ValidationError
import redis.asyncio as redis

from ..config import REDIS_URL, SNAPSHOT_BACKEND, SNAPSHOT_DEBOUNCE_SECONDS
from ..scoring.straight_pool import PersistedMatch

logger = logging.getLogger(__name__)

STORE_ERRORS = (redis.RedisError, OSError)


class SnapshotStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemorySnapshotStore:
    """Process-local store, used in tests and single-instance deployments."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._store[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


class RedisSnapshotStore:
    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        self._client = client or redis.from_url(REDIS_URL, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        value = await self._client.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)


def build_store(backend: str = SNAPSHOT_BACKEND) -> SnapshotStore:
    if backend == "memory":
        return MemorySnapshotStore()
    if backend != "redis":
        logger.warning(
            "SNAPSHOT_BACKEND must be 'redis' or 'memory' (got %r); using redis",
            backend,
        )
    return RedisSnapshotStore()


def parse_snapshot(data: Mapping[str, Any]) -> PersistedMatch:
    """Validate ``data``, replacing invalid fields with their defaults.

    Each pass drops the top-level keys named in the validation errors and
    tries again; when an error cannot be pinned to a key the whole snapshot
    falls back to defaults.
    """
    remaining: Dict[str, Any] = dict(data)
    while True:
        try:
            return PersistedMatch.model_validate(remaining)
        except ValidationError as exc:
            bad = {
                err["loc"][0]
                for err in exc.errors()
                if err["loc"] and err["loc"][0] in remaining
            }
            if not bad:
                logger.warning("Snapshot could not be repaired; using defaults")
                return PersistedMatch()
            logger.warning("Snapshot fields reset to defaults: %s", sorted(bad))
            for key in bad:
                remaining.pop(key, None)


async def load_snapshot(store: SnapshotStore, key: str) -> PersistedMatch:
    """Load the snapshot stored under ``key`` or fall back to defaults."""
    try:
        raw = await store.get(key)
    except STORE_ERRORS:
        logger.warning("Snapshot store unavailable loading %s", key, exc_info=True)
        return PersistedMatch()

    if raw is None:
        return PersistedMatch()

    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if not isinstance(data, dict):
        logger.warning("Discarding corrupt snapshot %s", key)
        await delete_snapshot(store, key)
        return PersistedMatch()

    return parse_snapshot(data)


async def save_snapshot(
    store: SnapshotStore, key: str, payload: Mapping[str, Any]
) -> bool:
    try:
        await store.set(key, json.dumps(payload))
    except (TypeError, ValueError):
        logger.error("Snapshot %s is not serializable", key, exc_info=True)
        return False
    except STORE_ERRORS:
        logger.error("Failed to save snapshot %s", key, exc_info=True)
        return False
    return True


async def delete_snapshot(store: SnapshotStore, key: str) -> None:
    try:
        await store.delete(key)
    except STORE_ERRORS:
        logger.error("Failed to delete snapshot %s", key, exc_info=True)


class DebouncedSaver:
    """Coalesce snapshot writes; the last scheduled payload wins."""

    def __init__(
        self,
        store: SnapshotStore,
        key: str,
        delay: float = SNAPSHOT_DEBOUNCE_SECONDS,
    ) -> None:
        self.store = store
        self.key = key
        self.delay = delay
        self._pending: Optional[Mapping[str, Any]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, payload: Mapping[str, Any]) -> None:
        self._pending = payload
        self._cancel_task()
        self._task = asyncio.get_running_loop().create_task(self._write_later())

    async def flush(self) -> bool:
        """Write the pending payload now, if there is one."""
        if asyncio.current_task() is not self._task:
            self._cancel_task()
        self._task = None
        payload, self._pending = self._pending, None
        if payload is None:
            return False
        return await save_snapshot(self.store, self.key, payload)

    def cancel(self) -> None:
        self._pending = None
        self._cancel_task()

    async def _write_later(self) -> None:
        await asyncio.sleep(self.delay)
        await self.flush()

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
