from __future__ import annotations

# Only the logging helpers are re-exported here: the bus modules import them
# through this package, so pulling in the engine base would be circular.
from .logging_utils import (
    configure_logging,
    get_correlation_id,
    get_logger,
    log_exception,
    reset_correlation_id,
    set_correlation_id,
    timed,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_exception",
    "reset_correlation_id",
    "set_correlation_id",
    "timed",
]
