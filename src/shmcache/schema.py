"""
Schema management for the cache table.

The layout is shared by every process that opens the same file, so it must
stay stable:

    cache(created_at INTEGER, expires_at INTEGER, key TEXT PK, value BLOB)
    idx_cache_expires_at ON cache(expires_at)
"""

from __future__ import annotations

import os

from shmcache.exceptions import ConfigError
from shmcache.logging import get_logger
from shmcache.store import SQLiteStore

logger = get_logger(__name__)

TABLE_NAME = "cache"
EXPIRY_INDEX = "idx_cache_expires_at"
SHARED_FILE_MODE = 0o666

CREATE_TABLE_SQL = f"""
    CREATE TABLE {TABLE_NAME} (
        created_at INTEGER,
        expires_at INTEGER,
        key TEXT UNIQUE PRIMARY KEY,
        value BLOB
    )
"""

CREATE_INDEX_SQL = f"CREATE INDEX IF NOT EXISTS {EXPIRY_INDEX} ON {TABLE_NAME}(expires_at)"


def initialize(store: SQLiteStore, silent: bool = False) -> bool:
    """Create (or recreate) the cache table and its expiry index.

    Any existing cache table is dropped first. The file is then made
    writable by every local user sharing the cache.

    Args:
        store: Adapter for the backing file.
        silent: Suppress the informational notice.

    Returns:
        True once the schema is in place.
    """
    store.exec(f"DROP TABLE IF EXISTS {TABLE_NAME}")
    store.exec(CREATE_TABLE_SQL)
    store.exec(CREATE_INDEX_SQL)

    try:
        os.chmod(store.db_path, SHARED_FILE_MODE)
    except OSError as e:
        raise ConfigError(
            f"Cannot set permissions on cache file: {e}",
            context={"db_path": str(store.db_path)},
        ) from e

    if not silent:
        logger.info("Cache database initialized", db_path=str(store.db_path))

    return True


def schema_present(store: SQLiteStore) -> bool:
    """Check that both the cache table and the expiry index exist."""
    rows = store.fetch_all(
        "SELECT type, name FROM sqlite_master WHERE name IN (?, ?)",
        (TABLE_NAME, EXPIRY_INDEX),
    )
    found = {(row["type"], row["name"]) for row in rows}
    return ("table", TABLE_NAME) in found and ("index", EXPIRY_INDEX) in found
