from __future__ import annotations

import traceback
from collections import deque, defaultdict
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional, List

from lifecycle_bus.core.domain.event_models import EventStatus
from lifecycle_bus.core.engines.base.logging_utils import get_logger
from lifecycle_bus.core.event_topics import ENGINE_ERROR

_logger = get_logger("error_engine")


class ErrorEngine:
    """
    Collects handler failures reported by engines.

    Stores recent errors, groups them by category (the reporting engine) and
    switches to safe mode when the same few contexts keep failing. When a bus
    is attached every record is also published under ``engine.error`` with
    status ERROR.
    """

    def __init__(self, *, event_bus: Optional[Any] = None, max_errors: int = 200) -> None:
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=max_errors)
        self._categorized_errors: Dict[str, Deque[Dict[str, Any]]] = defaultdict(lambda: deque(maxlen=50))
        self._error_counts: Dict[str, int] = defaultdict(int)
        self._safe_mode: bool = False
        self._event_bus = event_bus

    @property
    def is_safe_mode(self) -> bool:
        return self._safe_mode

    def reset_safe_mode(self) -> None:
        self._safe_mode = False

    async def log_error(
        self,
        error: BaseException,
        *,
        context: str = "",
        severity: str = "error",
        category: Optional[str] = None,
        **metadata: Any,
    ) -> Dict[str, Any]:
        """
        Record an error.

        Args:
            error: The exception that occurred
            context: Human-readable context string, e.g. "notepad_engine.NotepadEvent"
            severity: error|warning|critical
            category: Optional category identifier, usually the engine name
            **metadata: Additional context data (routing key, ...)
        """
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": context,
            "message": str(error),
            "error_type": type(error).__name__,
            "severity": severity,
            "category": category or "general",
            "trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "metadata": metadata,
        }
        self._errors.appendleft(record)
        self._categorized_errors[record["category"]].appendleft(record)
        self._error_counts[record["category"]] += 1

        # repeated failures from the same one or two places
        if len(self._errors) >= 10:
            contexts = [e.get("context") for e in list(self._errors)[:10]]
            if len(set(contexts)) <= 2 and not self._safe_mode:
                self._safe_mode = True
                _logger.warning("Safe mode enabled after repeated failures in %s", sorted(set(contexts)))

        if self._event_bus is not None:
            self._publish(record, error)
        return record

    def _publish(self, record: Dict[str, Any], error: BaseException) -> None:
        payload = {
            "context": record["context"],
            "message": record["message"],
            "severity": record["severity"],
            "category": record["category"],
            "key": record["metadata"].get("key"),
        }
        try:
            self._event_bus.emit(ENGINE_ERROR, payload, EventStatus.ERROR, error=error)
        except Exception:
            # reporting an error must never raise into the engine that failed
            _logger.exception("Failed to publish %s", ENGINE_ERROR)

    def peek_last(self) -> Optional[Dict[str, Any]]:
        return self._errors[0] if self._errors else None

    def dump_recent_text(self, *, limit: int = 100) -> str:
        out = []
        for e in list(self._errors)[:limit]:
            out.append(f"[{e.get('context', '')}] {e.get('error_type', '')}: {e.get('message', '')}")
        return "\n".join(out)

    def get_errors_by_category(self, category: str, limit: int = 20) -> List[Dict[str, Any]]:
        errors = self._categorized_errors.get(category, deque())
        return list(errors)[:limit]

    def get_error_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "total_errors": len(self._errors),
            "by_category": {},
            "safe_mode": self._safe_mode,
        }
        for category, count in self._error_counts.items():
            recent_errors = self._categorized_errors.get(category, deque())
            summary["by_category"][category] = {
                "total_count": count,
                "recent_count": len(recent_errors),
                "last_error": recent_errors[0] if recent_errors else None,
            }
        return summary


__all__ = ["ErrorEngine"]
