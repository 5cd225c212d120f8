"""
Async facade over SQLiteCache.

Each call runs the synchronous engine in a worker thread so the event loop
never blocks on a locked database file. Calls on one facade are serialized
by an asyncio.Lock because the underlying connection is not shared safely
between concurrent threads.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, TypeVar

from shmcache.base import CacheProtocol
from shmcache.engine import SQLiteCache
from shmcache.types import CodecMode

T = TypeVar("T")


class AsyncSQLiteCache(CacheProtocol):
    """CacheProtocol implementation backed by a SQLiteCache handle."""

    def __init__(self, cache: SQLiteCache) -> None:
        self._cache = cache
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        db_path: Path | str | None = None,
        mode: CodecMode | str | None = None,
        silent: bool = False,
        disabled: bool = False,
        busy_timeout: float = 5.0,
    ) -> AsyncSQLiteCache:
        """Construct the underlying handle off the event loop."""
        cache = await asyncio.to_thread(
            SQLiteCache,
            db_path=db_path,
            mode=mode,
            silent=silent,
            disabled=disabled,
            busy_timeout=busy_timeout,
        )
        return cls(cache)

    @property
    def cache(self) -> SQLiteCache:
        return self._cache

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    async def get(self, key: str) -> Any | None:
        return await self._run(self._cache.get, key)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Set a value. `ttl_seconds` follows SQLiteCache.set's `expires` rules."""
        await self._run(self._cache.set, key, value, ttl_seconds or 0)

    async def delete(self, key: str) -> bool:
        return await self._run(self._cache.delete, key)

    async def exists(self, key: str) -> bool:
        return await self._run(self._cache.exists, key)

    async def purge_expired(self, compact: bool = True) -> int:
        return await self._run(self._cache.purge_expired, compact)

    async def compact(self) -> bool:
        return await self._run(self._cache.compact)

    async def close(self) -> None:
        """Close the underlying handle."""
        async with self._lock:
            self._cache.close()

    async def __aenter__(self) -> AsyncSQLiteCache:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
