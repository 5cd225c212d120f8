"""
Configuration management using pydantic-settings.

Loads cache construction defaults from environment variables and .env files.
"""

from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shmcache.types import CodecMode

SHM_DIR = Path("/dev/shm")


def default_cache_dir() -> Path:
    """Shared-memory directory when the host has one, else the temp dir."""
    if SHM_DIR.is_dir():
        return SHM_DIR
    return Path(tempfile.gettempdir())


class CacheSettings(BaseSettings):
    """Cache settings loaded from environment variables.

    Optional:
        CACHE_DB_FILE: Backing SQLite file (derived from CACHE_INSTANCE_ID if unset)
        CACHE_INSTANCE_ID: Name of the default backing file
        CACHE_CODEC_MODE: Force a codec mode (msgpack|pickle|json)
        CACHE_SILENT: Suppress the notice when the schema is created
        CACHE_DISABLED: Construct handles in passthrough mode
        CACHE_BUSY_TIMEOUT: Seconds to wait on a locked database
        LOG_LEVEL: Console logging level for the CLI
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CACHE_DB_FILE: Path | None = Field(default=None, description="Backing SQLite file")
    CACHE_INSTANCE_ID: str = Field(
        default="cache", description="Instance id used to name the default file"
    )
    CACHE_CODEC_MODE: CodecMode | None = Field(
        default=None, description="Codec mode override (auto-probed if unset)"
    )
    CACHE_SILENT: bool = Field(default=False, description="Suppress schema notice")
    CACHE_DISABLED: bool = Field(default=False, description="Passthrough mode")
    CACHE_BUSY_TIMEOUT: float = Field(
        default=5.0, gt=0.0, le=300.0, description="Busy timeout in seconds"
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("CACHE_INSTANCE_ID")
    @classmethod
    def validate_instance_id(cls, v: str) -> str:
        """Instance ids become file names, so reject empty ones and separators."""
        v = v.strip()
        if not v:
            raise ValueError("CACHE_INSTANCE_ID must not be empty")
        if "/" in v or "\\" in v:
            raise ValueError("CACHE_INSTANCE_ID must not contain path separators")
        return v

    @property
    def db_file(self) -> Path:
        """Effective backing file path."""
        if self.CACHE_DB_FILE is not None:
            return self.CACHE_DB_FILE
        return default_cache_dir() / f"{self.CACHE_INSTANCE_ID}.sqlite"

    def display(self) -> dict[str, str | float | bool | None]:
        """Return effective settings for display."""
        return {
            "CACHE_DB_FILE": str(self.db_file),
            "CACHE_INSTANCE_ID": self.CACHE_INSTANCE_ID,
            "CACHE_CODEC_MODE": self.CACHE_CODEC_MODE.value if self.CACHE_CODEC_MODE else None,
            "CACHE_SILENT": self.CACHE_SILENT,
            "CACHE_DISABLED": self.CACHE_DISABLED,
            "CACHE_BUSY_TIMEOUT": self.CACHE_BUSY_TIMEOUT,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> CacheSettings:
    """Get cached settings singleton.

    Raises:
        ValidationError: If a setting is invalid.
    """
    return CacheSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
