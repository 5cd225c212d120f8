"""
Base classes for caching.

CacheProtocol is the async interface offered to coroutine-based callers;
shmcache.aio.AsyncSQLiteCache implements it on top of the synchronous
engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CacheProtocol(ABC):
    """Abstract interface for async cache implementations."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value from the cache."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Set a value in the cache."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value from the cache."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a key exists in the cache."""
        ...
