"""
Core types for the cache.

- CodecMode: the serialization formats a handle can store values in
- CacheEntry: one row of the backing table
- Expiry helpers shared by the engine and its callers
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

DEFAULT_TTL = 3600
RELATIVE_TTL_THRESHOLD = 100000


class CodecMode(str, Enum):
    """Serialization formats, in no particular order.

    Probe order lives in shmcache.codec.CODEC_PRIORITY.
    """

    MSGPACK = "msgpack"
    PICKLE = "pickle"
    JSON = "json"


def now_ts() -> int:
    """Current Unix time as an integer."""
    return int(time.time())


def resolve_expiry(expires: int, now: int | None = None) -> int:
    """Turn the `expires` argument of set() into an absolute timestamp.

    0 means "default TTL". Values below RELATIVE_TTL_THRESHOLD are relative
    seconds from now; anything else is already an absolute Unix timestamp.
    An absolute timestamp accidentally below the threshold is read as
    relative; callers relying on absolute times must pass real epoch values.

    Args:
        expires: 0, a relative TTL in seconds, or an absolute timestamp.
        now: Reference time, defaults to the current time.

    Returns:
        Absolute Unix expiry timestamp.
    """
    if now is None:
        now = now_ts()
    expires = int(expires)
    if expires == 0:
        return now + DEFAULT_TTL
    if expires < RELATIVE_TTL_THRESHOLD:
        return now + expires
    return expires


@dataclass(frozen=True)
class CacheEntry:
    """A row of the cache table, payload still encoded."""

    key: str
    value: bytes
    created_at: int
    expires_at: int

    def is_expired(self, now: int | None = None) -> bool:
        """True when the entry is logically dead at `now`."""
        if now is None:
            now = now_ts()
        return now > self.expires_at

    @property
    def ttl_remaining(self) -> int:
        """Seconds until expiry, never negative."""
        return max(0, self.expires_at - now_ts())
