"""
Logging for the cache.

Library code only emits records under the ``shmcache`` logger, which carries
a NullHandler and propagates to whatever the host application configured.
``setup_logging`` is for processes shmcache owns, like the maintenance CLI.

Records carry the cache instance and current operation from context
variables, plus any keyword fields passed to the logger, as
``record.context``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator, MutableMapping

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

LOGGER_NAME = "shmcache"

_RESERVED_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

_instance_id_var: ContextVar[str | None] = ContextVar("instance_id", default=None)
_operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


def get_instance_id() -> str | None:
    return _instance_id_var.get()


def get_operation() -> str | None:
    return _operation_var.get()


@contextmanager
def log_context(
    instance_id: str | None = None,
    operation: str | None = None,
) -> Generator[None, None, None]:
    """Set the cache instance and operation for records emitted inside the block."""
    tokens = []
    if instance_id is not None:
        tokens.append((_instance_id_var, _instance_id_var.set(instance_id)))
    if operation is not None:
        tokens.append((_operation_var, _operation_var.set(operation)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def current_context() -> dict[str, str]:
    context: dict[str, str] = {}
    instance_id = get_instance_id()
    operation = get_operation()
    if instance_id:
        context["instance_id"] = instance_id
    if operation:
        context["operation"] = operation
    return context


class ContextLogger(logging.LoggerAdapter):
    """Adapter that moves keyword arguments into ``record.context``.

    Usage:
        logger = get_logger(__name__)
        logger.debug("Purged expired entries", removed=3)
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        context = current_context()
        for key in [k for k in kwargs if k not in _RESERVED_KWARGS]:
            context[key] = kwargs.pop(key)

        extra = dict(kwargs.get("extra") or {})
        extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs


class ContextRichHandler(RichHandler):
    """Rich console handler that shows the instance and operation after the level."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = getattr(record, "context", {})

        parts: list[Text | str] = [level_text]
        if context.get("instance_id"):
            parts += [" ", Text(context["instance_id"], style="dim")]
        if context.get("operation"):
            parts += [" ", Text(context["operation"], style="cyan")]
        return Text.assemble(*parts)


def setup_logging(log_level: str = "INFO") -> None:
    """Send shmcache records to a rich console handler on stderr.

    Replaces a handler installed by an earlier call and stops propagation,
    so only call this from an entry point that owns the process.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(LOGGER_NAME)

    for handler in [h for h in logger.handlers if isinstance(h, ContextRichHandler)]:
        logger.removeHandler(handler)
        handler.close()

    handler = ContextRichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger under the shmcache namespace."""
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return ContextLogger(logging.getLogger(name), {})
