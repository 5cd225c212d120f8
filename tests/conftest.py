"""
Pytest configuration and fixtures for shmcache tests.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import patch

import pytest

from shmcache.config import CacheSettings, clear_settings_cache
from shmcache.engine import SQLiteCache
from shmcache.types import CodecMode


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path of a backing file that does not exist yet."""
    return temp_dir / "cache.sqlite"


@pytest.fixture
def cache(db_path: Path) -> Generator[SQLiteCache, None, None]:
    """Provide a fresh cache handle using the auto-probed codec."""
    handle = SQLiteCache(db_path=db_path, silent=True)
    yield handle
    handle.close()


@pytest.fixture
def make_cache(db_path: Path) -> Generator[Callable[..., SQLiteCache], None, None]:
    """Factory for extra handles on the same backing file."""
    handles: list[SQLiteCache] = []

    def _make(**kwargs) -> SQLiteCache:
        kwargs.setdefault("db_path", db_path)
        kwargs.setdefault("silent", True)
        handle = SQLiteCache(**kwargs)
        handles.append(handle)
        return handle

    yield _make

    for handle in handles:
        handle.close()


@pytest.fixture
def frozen_clock() -> Generator[Callable[[int], None], None, None]:
    """Pin the engine's clock; call the yielded setter to move it."""
    current = {"now": 1_700_000_000}

    def _set(value: int) -> None:
        current["now"] = value

    with patch("shmcache.engine.now_ts", side_effect=lambda: current["now"]):
        yield _set


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide cache configuration through environment variables."""
    env_vars = {
        "CACHE_DB_FILE": str(temp_dir / "env.sqlite"),
        "CACHE_INSTANCE_ID": "testing",
        "CACHE_CODEC_MODE": CodecMode.JSON.value,
        "CACHE_SILENT": "true",
        "CACHE_DISABLED": "false",
        "CACHE_BUSY_TIMEOUT": "2.5",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> CacheSettings:
    """Provide settings built from the mocked environment."""
    return CacheSettings(_env_file=None)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_library_logger() -> Generator[None, None, None]:
    """Undo handler and level changes made by setup_logging."""
    logger = logging.getLogger("shmcache")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
