"""
Tests for library logging and the exception hierarchy.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

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
from shmcache.logging import (
    ContextRichHandler,
    get_instance_id,
    get_logger,
    get_operation,
    log_context,
    setup_logging,
)


class TestLogContext:
    """Test scoped logging context."""

    def test_context_is_scoped(self) -> None:
        """Test that context is restored on exit."""
        assert get_operation() is None

        with log_context(instance_id="sessions", operation="get"):
            assert get_instance_id() == "sessions"
            assert get_operation() == "get"

            with log_context(operation="purge"):
                assert get_instance_id() == "sessions"
                assert get_operation() == "purge"

            assert get_operation() == "get"

        assert get_instance_id() is None
        assert get_operation() is None


class TestLibraryLogger:
    """Test that the library leaves handler setup to the host application."""

    def test_import_installs_no_output(self) -> None:
        logger = logging.getLogger("shmcache")
        assert logger.propagate is True
        assert all(isinstance(h, logging.NullHandler) for h in logger.handlers)

    def test_namespace(self) -> None:
        assert get_logger("tests").logger.name == "shmcache.tests"
        assert get_logger("shmcache.engine").logger.name == "shmcache.engine"

    def test_keyword_fields_become_context(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="shmcache")

        with log_context(instance_id="cache", operation="purge"):
            get_logger("tests").debug("Purged expired entries", removed=3)

        record = caplog.records[-1]
        assert record.getMessage() == "Purged expired entries"
        assert record.context == {"instance_id": "cache", "operation": "purge", "removed": 3}

    def test_host_handler_receives_schema_notice(
        self, db_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that records reach a handler configured on the root logger."""
        caplog.set_level(logging.INFO)

        SQLiteCache(db_path=db_path).close()

        messages = [r.getMessage() for r in caplog.records if r.name.startswith("shmcache")]
        assert "Cache database initialized" in messages

    def test_silent_skips_notice(self, db_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO)

        SQLiteCache(db_path=db_path, silent=True).close()

        assert "Cache database initialized" not in caplog.text


class TestSetupLogging:
    """Test console logging for processes shmcache owns."""

    def test_installs_single_rich_handler(self) -> None:
        setup_logging("DEBUG")
        setup_logging("WARNING")

        logger = logging.getLogger("shmcache")
        rich_handlers = [h for h in logger.handlers if isinstance(h, ContextRichHandler)]
        assert len(rich_handlers) == 1
        assert rich_handlers[0].level == logging.WARNING
        assert logger.level == logging.WARNING
        assert logger.propagate is False


class TestExceptions:
    """Test the exception taxonomy."""

    def test_hierarchy(self) -> None:
        assert issubclass(NoCodecAvailable, ConfigError)
        assert issubclass(StoreCorrupt, StoreError)
        assert issubclass(StoreBusy, StoreError)
        for exc_type in (ConfigError, StoreError, EncodeError, DecodeError):
            assert issubclass(exc_type, CacheError)

    def test_context_in_str(self) -> None:
        err = StoreCorrupt("Table 'cache' missing", context={"operation": "get"})
        assert str(err) == "Table 'cache' missing (operation='get')"
        assert "StoreCorrupt" in repr(err)

    def test_no_context(self) -> None:
        err = DecodeError("bad payload")
        assert str(err) == "bad payload"
        assert err.context == {}

    def test_catch_as_base(self) -> None:
        with pytest.raises(CacheError):
            raise StoreBusy("locked")
