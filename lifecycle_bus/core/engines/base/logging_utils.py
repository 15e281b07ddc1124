"""
Logging helpers shared by the bus and the engines.

Every record emitted through `get_logger` carries `correlation_id`: the routing
key of the event whose processing task produced it, or "-" outside of one.
"""

from __future__ import annotations

import contextvars
import logging
import sys
import time
import traceback
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

DEFAULT_PREFIX = "lifecycle_bus"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-5s %(name)s [key=%(correlation_id)s] %(message)s"

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "lifecycle_correlation_id", default=None
)
_configured = False


def _stamp(record: logging.LogRecord) -> None:
    if not hasattr(record, "correlation_id"):
        record.correlation_id = _correlation_id.get() or "-"


class ContextFilter(logging.Filter):
    """Stamps the current correlation id on records of lifecycle_bus loggers."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        _stamp(record)
        return True


class _KeyFormatter(logging.Formatter):
    # records from foreign loggers reach our handlers without the filter
    def format(self, record: logging.LogRecord) -> str:
        _stamp(record)
        return super().format(record)


def configure_logging(
    *,
    level: int | str = logging.INFO,
    log_file: Optional[str] = None,
    force: bool = False,
) -> None:
    """Install stdout (and optionally file) handlers on the root logger once."""
    global _configured
    if _configured and not force:
        return

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream=sys.stdout)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError:
            root.warning("Cannot open log file %s; logging to stdout only", log_file, exc_info=True)

    for handler in handlers:
        handler.setFormatter(_KeyFormatter(DEFAULT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
        root.addHandler(handler)
    root.setLevel(level)
    _configured = True


def set_correlation_id(cid: Optional[str]) -> contextvars.Token:
    return _correlation_id.set(cid)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """`lifecycle_bus.<name>` logger with the correlation filter attached."""
    logger = logging.getLogger(f"{DEFAULT_PREFIX}.{name}" if name else DEFAULT_PREFIX)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())
    return logger


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    *,
    context: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Log `exc` with its traceback, where it happened and any routing metadata."""
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    details = f" | extra={extra!r}" if extra else ""
    logger.error(
        "Exception in %s: %s: %s%s\n%s",
        context or "unknown",
        type(exc).__name__,
        exc,
        details,
        trace,
    )


@contextmanager
def timed(logger: logging.Logger, action: str, *, level: int = logging.INFO) -> Iterator[None]:
    """Log how long the wrapped block took, or how long it ran before failing."""
    start = time.monotonic()
    try:
        yield
    except Exception:
        logger.exception("%s failed after %.3fs", action, time.monotonic() - start)
        raise
    logger.log(level, "%s completed in %.3fs", action, time.monotonic() - start)


__all__ = [
    "ContextFilter",
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "reset_correlation_id",
    "get_correlation_id",
    "log_exception",
    "timed",
]
