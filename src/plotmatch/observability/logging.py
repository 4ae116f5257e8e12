"""Structured logging for land-matching searches.

A search fans out into two source queries, a consolidation step, sequential
cache writes and possibly background revalidation tasks. All of them log
under one correlation id, carried in a ContextVar so tasks spawned during
the request inherit it. JSON lines carry the search fields passed through
``extra=`` (source, area, land_number, step, duration_ms).
"""

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

SEARCH_FIELDS = ("source", "area", "land_number", "step", "duration_ms")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s"

# Chatty client libraries; their per-request lines duplicate ours
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "mlflow")


def get_correlation_id() -> str:
    """Return the current correlation ID, or empty string if not set."""
    return correlation_id.get()


@contextmanager
def bind_correlation_id(cid: str | None = None) -> Iterator[str]:
    """Bind ``cid`` (or a fresh short id) for the duration of the block."""
    value = cid or uuid.uuid4().hex[:12]
    token = correlation_id.set(value)
    try:
        yield value
    finally:
        correlation_id.reset(token)


class CorrelationFilter(logging.Filter):
    """Stamp every record with the bound correlation id ('-' when unbound)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, search fields flattened to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = correlation_id.get()
        if cid:
            entry["correlation_id"] = cid

        entry.update(
            (key, getattr(record, key)) for key in SEARCH_FIELDS
            if getattr(record, key, None) is not None
        )

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    The API runs with JSON lines; the CLI passes ``json_format=False`` for
    the text layout, which still shows the correlation id of the command.
    """
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
