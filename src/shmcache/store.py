"""
SQLiteStore: thin adapter over the sqlite3 driver.

The cache engine only ever talks to the backing file through this class.
Every sqlite3 failure is translated into the cache's exception taxonomy
here, so nothing above this layer needs to know about sqlite3 errors.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Mapping, Sequence

from shmcache.exceptions import StoreBusy, StoreCorrupt, StoreError
from shmcache.logging import get_operation

Params = Sequence[Any] | Mapping[str, Any]

_CORRUPT_MARKERS = ("no such table", "not a database", "malformed", "no such index")
_BUSY_MARKERS = ("database is locked", "database table is locked", "busy")


def translate_error(exc: sqlite3.Error, db_path: Path) -> StoreError:
    """Map a sqlite3 exception onto StoreCorrupt, StoreBusy or StoreError."""
    message = str(exc)
    lowered = message.lower()
    context = {"db_path": str(db_path), "operation": get_operation()}

    if any(marker in lowered for marker in _BUSY_MARKERS):
        return StoreBusy(f"Backing store is busy: {message}", context=context)
    if isinstance(exc, sqlite3.DatabaseError) and any(
        marker in lowered for marker in _CORRUPT_MARKERS
    ):
        return StoreCorrupt(
            f"Table 'cache' missing or unreadable. DB corrupt? ({message})",
            context=context,
        )
    return StoreError(message, context=context)


class SQLiteStore:
    """Single-connection adapter for one SQLite file.

    Writes are committed immediately, so each call is its own atomic unit.
    Cross-process locking is left to SQLite; a locked file is waited on for
    up to `busy_timeout` seconds before StoreBusy is raised.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0) -> None:
        """Initialize the adapter. The connection opens lazily.

        Args:
            db_path: Path to the SQLite file.
            busy_timeout: Seconds to wait for another writer's lock.
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            with self._translate():
                self._conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=self.busy_timeout,
                    isolation_level="DEFERRED",
                    check_same_thread=False,
                )
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def open(self) -> SQLiteStore:
        self._get_conn()
        return self

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteStore:
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def _translate(self) -> Generator[None, None, None]:
        try:
            yield
        except sqlite3.Error as e:
            if self._conn is not None and self._conn.in_transaction:
                self._conn.rollback()
            raise translate_error(e, self.db_path) from e

    def exec(self, sql: str) -> None:
        """Run a parameterless statement and commit."""
        conn = self._get_conn()
        with self._translate():
            conn.execute(sql)
            conn.commit()

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run one data-modifying statement and commit.

        Args:
            sql: Statement with `?` or `:name` placeholders.
            params: Positional sequence or named mapping.

        Returns:
            Number of rows affected.
        """
        conn = self._get_conn()
        with self._translate():
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def fetch_one(self, sql: str, params: Params = ()) -> sqlite3.Row | None:
        """Run a query and return its first row, or None."""
        conn = self._get_conn()
        with self._translate():
            return conn.execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        conn = self._get_conn()
        with self._translate():
            return conn.execute(sql, params).fetchall()

    def vacuum(self) -> None:
        """Rebuild the file to reclaim free pages. Needs exclusive access."""
        conn = self._get_conn()
        with self._translate():
            if conn.in_transaction:
                conn.commit()
            conn.execute("VACUUM")
