"""
Custom exception hierarchy for the cache.

All exceptions inherit from CacheError, which carries optional structured
context for callers that render or log failures themselves.
"""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigError(CacheError):
    """Raised when a cache handle cannot be configured.

    Fatal at construction time: no handle is produced.

    Examples:
        - Unknown codec mode name
        - Codec backend not importable
        - Backing directory or file not writable
    """

    pass


class NoCodecAvailable(ConfigError):
    """Raised when no serialization backend in the registry is available."""

    pass


class StoreError(CacheError):
    """Raised when the backing SQLite store fails.

    Context should include:
        - db_path: The backing file
        - operation: The cache operation that failed
    """

    pass


class StoreCorrupt(StoreError):
    """Raised when the cache table is missing or the file is not a database.

    Never auto-repaired: another process may be mid-initialization.
    """

    pass


class StoreBusy(StoreError):
    """Raised when the backing file stays locked past the busy timeout.

    Recoverable by retrying the operation.
    """

    pass


class EncodeError(CacheError):
    """Raised when a value cannot be represented in the active codec mode.

    Context should include:
        - mode: The codec mode
        - type: The type of the offending value
    """

    pass


class DecodeError(CacheError):
    """Raised when a stored payload cannot be decoded.

    Typical causes are a codec mode mismatch between writer and reader,
    or a truncated payload.
    """

    pass
