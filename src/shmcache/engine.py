"""
SQLiteCache: the public cache handle.

One handle per process or session. It owns a single SQLite connection to
the backing file and exposes get/set/delete/purge_expired/compact.

Expiry is evaluated on read: an expired row is reported as a miss and
removed, together with every other expired row, in the same call. Bulk
removal and space reclamation are available through purge_expired() and
compact(), which are maintenance operations rather than per-request ones.

A handle built with disabled=True never touches the filesystem and answers
every call with a neutral result, so callers can switch caching off without
changing call sites.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from shmcache.codec import get_codec, resolve_mode
from shmcache.config import CacheSettings, default_cache_dir, get_settings
from shmcache.exceptions import ConfigError
from shmcache.logging import get_logger, log_context
from shmcache.schema import TABLE_NAME, initialize, schema_present
from shmcache.store import SQLiteStore
from shmcache.types import CacheEntry, CodecMode, now_ts, resolve_expiry

logger = get_logger(__name__)

DEFAULT_INSTANCE_ID = "cache"


class SQLiteCache:
    """Persistent key-value cache with per-entry expiry.

    Usage:
        with SQLiteCache(db_path="/tmp/app.sqlite") as cache:
            cache.set("files:php", data, 300)
            data = cache.get("files:php")

    Values are stored with the handle's codec mode. Readers and writers of
    the same file must agree on the mode; a mismatch surfaces as
    DecodeError on get().

    Only a missing cache table is detected at runtime (StoreCorrupt from
    every operation). A file that lost its expiry index keeps working,
    just with slower purges; stats()["schema_present"] reports it.

    Warning: a newly created file is writable by every local user. In
    pickle mode get() unpickles whatever is stored there, which can run
    arbitrary code, so use pickle only when all of those users are trusted.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        mode: CodecMode | str | None = None,
        silent: bool = False,
        disabled: bool = False,
        busy_timeout: float = 5.0,
    ) -> None:
        """Open (and if needed create) the backing store.

        Args:
            db_path: Backing SQLite file. Defaults to cache.sqlite in
                /dev/shm, or in the temp dir where /dev/shm is absent.
            mode: Codec mode override; auto-probed when None.
            silent: Suppress the notice logged when the schema is created.
            disabled: Passthrough mode, every operation is a no-op.
            busy_timeout: Seconds to wait for another process's write lock.

        Raises:
            ConfigError: Unknown or unavailable codec, or the backing
                location is not writable.
            StoreError: The file could not be opened or initialized.
        """
        if db_path is None:
            db_path = default_cache_dir() / f"{DEFAULT_INSTANCE_ID}.sqlite"
        self.db_path = Path(db_path)
        self.instance_id = self.db_path.stem
        self.disabled = disabled
        self.mode: CodecMode | None = None
        self._store: SQLiteStore | None = None

        if disabled:
            return

        self.mode = resolve_mode(mode)
        self._codec = get_codec(self.mode)

        missing_db = not self.db_path.exists()
        self._check_writable(missing_db)

        store = SQLiteStore(self.db_path, busy_timeout=busy_timeout)
        try:
            with log_context(instance_id=self.instance_id, operation="init"):
                store.open()
                if missing_db:
                    initialize(store, silent=silent)
        except BaseException:
            store.close()
            raise

        self._store = store

    @classmethod
    def from_settings(cls, settings: CacheSettings | None = None) -> SQLiteCache:
        """Build a handle from CacheSettings (environment/.env by default)."""
        settings = settings or get_settings()
        return cls(
            db_path=settings.db_file,
            mode=settings.CACHE_CODEC_MODE,
            silent=settings.CACHE_SILENT,
            disabled=settings.CACHE_DISABLED,
            busy_timeout=settings.CACHE_BUSY_TIMEOUT,
        )

    def _check_writable(self, missing_db: bool) -> None:
        directory = self.db_path.parent
        if not directory.is_dir():
            raise ConfigError(
                "Cache directory does not exist",
                context={"directory": str(directory)},
            )
        # SQLite writes its journal next to the database file.
        if not os.access(directory, os.W_OK):
            raise ConfigError(
                "Cache directory is not writable",
                context={"directory": str(directory)},
            )
        if not missing_db and not os.access(self.db_path, os.R_OK | os.W_OK):
            raise ConfigError(
                "Cache file is not writable",
                context={"db_path": str(self.db_path)},
            )

    @property
    def store(self) -> SQLiteStore:
        if self._store is None:
            raise ConfigError(
                "Cache handle is closed",
                context={"db_path": str(self.db_path)},
            )
        return self._store

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._store is not None:
            self._store.close()
            self._store = None

    def __enter__(self) -> SQLiteCache:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __del__(self) -> None:
        store = getattr(self, "_store", None)
        if store is not None:
            store.close()

    def __repr__(self) -> str:
        state = "disabled" if self.disabled else (self.mode.value if self.mode else "?")
        return f"SQLiteCache({str(self.db_path)!r}, {state})"

    # Core operations

    def get(self, key: str) -> Any | None:
        """Read a value from the cache.

        Args:
            key: Cache key.

        Returns:
            The decoded value, or None on a miss or an expired entry.

        Raises:
            DecodeError: The stored payload cannot be decoded.
            StoreCorrupt: The cache table is missing.
        """
        if self.disabled:
            return None

        with log_context(instance_id=self.instance_id, operation="get"):
            row = self.store.fetch_one(
                f"SELECT value, expires_at FROM {TABLE_NAME} WHERE key = ?",
                (key,),
            )
            if row is None:
                return None

            now = now_ts()
            expires_at = row["expires_at"]
            if expires_at is None or now > expires_at:
                self._remove_expired(key, now)
                return None

            return self._codec.decode(row["value"])

    def _remove_expired(self, key: str, now: int) -> int:
        removed = self.store.execute(
            f"DELETE FROM {TABLE_NAME} "
            "WHERE expires_at < ? OR (key = ? AND expires_at IS NULL)",
            (now, key),
        )
        logger.debug("Removed expired entries", key=key, removed=removed)
        return removed

    def set(self, key: str, value: Any, expires: int = 0) -> bool:
        """Write or replace a cache entry.

        `expires` is interpreted by magnitude: 0 means one hour from now,
        values below 100000 are a TTL in seconds, anything larger is an
        absolute Unix timestamp.

        Args:
            key: Cache key (at most 255 bytes recommended).
            value: Any value the codec mode can represent.
            expires: 0, relative TTL seconds, or absolute expiry timestamp.

        Returns:
            True once the entry is written, False on a disabled handle.

        Raises:
            EncodeError: The value cannot be represented in this mode.
            StoreCorrupt: The cache table is missing.
            StoreBusy: Another writer held the lock past the busy timeout.
        """
        if self.disabled:
            return False

        with log_context(instance_id=self.instance_id, operation="set"):
            payload = self._codec.encode(value)
            now = now_ts()
            self.store.execute(
                f"REPLACE INTO {TABLE_NAME} (key, value, expires_at, created_at) "
                "VALUES (:key, :value, :expires, :created)",
                {
                    "key": key,
                    "value": payload,
                    "expires": resolve_expiry(expires, now),
                    "created": now,
                },
            )
            return True

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if a row was removed."""
        if self.disabled:
            return False

        with log_context(instance_id=self.instance_id, operation="delete"):
            removed = self.store.execute(
                f"DELETE FROM {TABLE_NAME} WHERE key = ?",
                (key,),
            )
            return removed > 0

    def purge_expired(self, compact: bool = True) -> int:
        """Delete every expired entry in one statement.

        Args:
            compact: Reclaim the freed space afterwards.

        Returns:
            Number of rows removed.
        """
        if self.disabled:
            return 0

        with log_context(instance_id=self.instance_id, operation="purge"):
            removed = self.store.execute(
                f"DELETE FROM {TABLE_NAME} WHERE expires_at < ?",
                (now_ts(),),
            )
            logger.debug("Purged expired entries", removed=removed)

        if compact:
            self.compact()

        return removed

    def compact(self) -> bool:
        """Reclaim space left by deleted and replaced rows.

        May stall other writers on the same file while it runs.
        """
        if self.disabled:
            return False

        with log_context(instance_id=self.instance_id, operation="compact"):
            self.store.vacuum()
            logger.debug("Compacted cache file", db_path=str(self.db_path))
            return True

    # Inspection

    def exists(self, key: str) -> bool:
        """Check for a live entry without decoding or removing anything."""
        if self.disabled:
            return False

        with log_context(instance_id=self.instance_id, operation="exists"):
            row = self.store.fetch_one(
                f"SELECT expires_at FROM {TABLE_NAME} WHERE key = ?",
                (key,),
            )
        if row is None or row["expires_at"] is None:
            return False
        return now_ts() <= row["expires_at"]

    def entry(self, key: str) -> CacheEntry | None:
        """Return the raw row for `key`, expired or not."""
        if self.disabled:
            return None

        with log_context(instance_id=self.instance_id, operation="entry"):
            row = self.store.fetch_one(
                f"SELECT key, value, created_at, expires_at FROM {TABLE_NAME} WHERE key = ?",
                (key,),
            )
        if row is None:
            return None
        return CacheEntry(
            key=row["key"],
            value=bytes(row["value"]),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    def count(self, include_expired: bool = False) -> int:
        """Count entries, by default only the live ones."""
        if self.disabled:
            return 0

        with log_context(instance_id=self.instance_id, operation="count"):
            if include_expired:
                row = self.store.fetch_one(f"SELECT COUNT(*) FROM {TABLE_NAME}")
            else:
                row = self.store.fetch_one(
                    f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE expires_at >= ?",
                    (now_ts(),),
                )
        return row[0] if row else 0

    def stats(self) -> dict[str, Any]:
        """Get statistics about the backing store.

        Returns:
            Dict with total/live/expired counts, file size and codec.
        """
        if self.disabled:
            return {"disabled": True, "db_path": str(self.db_path)}

        stats: dict[str, Any] = {
            "db_path": str(self.db_path),
            "codec": self.mode.value if self.mode else None,
            "schema_present": schema_present(self.store),
            "file_size": self.db_path.stat().st_size if self.db_path.exists() else 0,
        }
        if not stats["schema_present"]:
            return stats

        total = self.count(include_expired=True)
        live = self.count()
        stats["total"] = total
        stats["live"] = live
        stats["expired"] = total - live
        return stats
