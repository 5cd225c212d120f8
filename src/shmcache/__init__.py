"""
shmcache: a persistent, time-expiring key-value cache in a single SQLite file.
"""

from shmcache.engine import SQLiteCache
from shmcache.exceptions import (
    CacheError,
    ConfigError,
    DecodeError,
    EncodeError,
    NoCodecAvailable,
    StoreBusy,
    StoreCorrupt,
    StoreError,
)
from shmcache.types import CacheEntry, CodecMode

__version__ = "0.1.0"

__all__ = [
    "CacheEntry",
    "CacheError",
    "CodecMode",
    "ConfigError",
    "DecodeError",
    "EncodeError",
    "NoCodecAvailable",
    "SQLiteCache",
    "StoreBusy",
    "StoreCorrupt",
    "StoreError",
    "__version__",
]
