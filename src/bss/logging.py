"""
Structured logging for the blob storage server.

Every record carries two mappings:
- ``context``: request-scoped values (request_id, operation, blob) set with
  log_context() and snapshotted when the record is created
- ``fields``: keyword arguments passed to the individual log call

File output is JSON Lines with both mappings flattened into the top level.
Console output goes through rich, with context as a coloured prefix and
fields as trailing key=value pairs.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, MutableMapping

import orjson
from rich.console import Console, ConsoleRenderable
from rich.logging import RichHandler
from rich.text import Text

_ROOT = "bss"
_PASSTHROUGH = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})
_QUIET_LOGGERS = ("aiosqlite", "asyncio")

_context: ContextVar[dict[str, str]] = ContextVar("bss_log_context")


def current_context() -> dict[str, str]:
    """Return a copy of the active logging context."""
    return dict(_context.get({}))


@contextmanager
def log_context(**values: str | None) -> Generator[None, None, None]:
    """Layer values onto the logging context for the duration of the block.

    None values are skipped, so callers can pass optional identifiers
    without checking them first.
    """
    merged = {**_context.get({}), **{k: v for k, v in values.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


class ContextLogger(logging.LoggerAdapter):
    """Adapter that turns keyword arguments into structured fields.

    ``logger.info("Blob stored", size=3)`` records ``fields={"size": 3}``
    alongside a snapshot of the current context.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _PASSTHROUGH}
        extra = dict(kwargs.pop("extra", None) or {})
        extra["context"] = current_context()
        extra["fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for mapping in (getattr(record, "context", {}), getattr(record, "fields", {})):
            for key, value in mapping.items():
                entry.setdefault(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()


class ContextRichHandler(RichHandler):
    """Rich console handler that renders context and fields around the message."""

    def render_message(self, record: logging.LogRecord, message: str) -> ConsoleRenderable:
        rendered = super().render_message(record, message)
        context: dict[str, str] = getattr(record, "context", {})
        fields: dict[str, Any] = getattr(record, "fields", {})

        prefix = Text()
        if "request_id" in context:
            # UUID7 randomness sits at the tail
            prefix.append(f"{context['request_id'][-8:]} ", style="dim")
        if "operation" in context:
            prefix.append(f"{context['operation']} ", style="cyan")
        if "blob" in context:
            prefix.append(f"{context['blob'][:12]} ", style="magenta")

        suffix = Text(style="dim")
        if fields:
            suffix.append("  " + " ".join(f"{k}={v}" for k, v in fields.items()))

        return Text.assemble(prefix, rendered, suffix)


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``bss`` logger tree.

    Args:
        log_level: Console threshold (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional JSON Lines file; it always receives DEBUG and above.
        console_output: Whether to attach the rich console handler.
    """
    level = logging.getLevelName(log_level.upper())
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.propagate = False

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(level)

    if console_output:
        console_handler = ContextRichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(level)
        root.addHandler(console_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> ContextLogger:
    """Return a structured logger under the ``bss`` namespace."""
    if not logging.getLogger(_ROOT).handlers:
        setup_logging()
    if name != _ROOT and not name.startswith(f"{_ROOT}."):
        name = f"{_ROOT}.{name}"
    return ContextLogger(logging.getLogger(name), {})
