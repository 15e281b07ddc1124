"""Environment-backed configuration for lifecycle_bus engines and the demo runner."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from dotenv import load_dotenv

from lifecycle_bus.core.bus.dedup_window import DEFAULT_WINDOW
from lifecycle_bus.core.domain.event_models import KeyPolicy
from lifecycle_bus.core.event_bus import BusPolicy

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_PATHS: Sequence[Path] = (
    PROJECT_ROOT / ".env",
    PROJECT_ROOT / "config" / ".env",
)


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _millis(value: Optional[str], default: float) -> float:
    """Parse a millisecond count into seconds; invalid input keeps the default, negatives clamp to 0."""
    if value is None or not value.strip():
        return default
    try:
        return max(0.0, float(value) / 1000.0)
    except ValueError:
        return default


@dataclass(slots=True)
class LifecycleBusConfig:
    dedup_window: float = DEFAULT_WINDOW
    compare_errors: bool = False
    clear_cache_on_remove: bool = False
    key_policy: KeyPolicy = KeyPolicy.CORRELATION
    completion_delay: float = 0.0
    settle_delay: float = 0.0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "LifecycleBusConfig":
        env = os.environ if environ is None else environ
        return cls(
            dedup_window=_millis(env.get("LIFECYCLE_DEDUP_WINDOW_MS"), DEFAULT_WINDOW),
            compare_errors=_flag(env.get("LIFECYCLE_COMPARE_ERRORS")),
            clear_cache_on_remove=_flag(env.get("LIFECYCLE_CLEAR_CACHE_ON_REMOVE")),
            key_policy=KeyPolicy.parse(env.get("LIFECYCLE_KEY_POLICY", "correlation")),
            completion_delay=_millis(env.get("LIFECYCLE_COMPLETION_DELAY_MS"), 0.0),
            settle_delay=_millis(env.get("LIFECYCLE_SETTLE_DELAY_MS"), 0.0),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
            log_file=(env.get("LOG_FILE") or "").strip() or None,
        )

    def bus_policy(self) -> BusPolicy:
        return BusPolicy(
            dedup_window=self.dedup_window,
            compare_errors=self.compare_errors,
            clear_cache_on_remove=self.clear_cache_on_remove,
        )

    def engine_options(self) -> Dict[str, Any]:
        """Keyword arguments shared by every LifecycleEngine built from this config."""
        return {
            "policy": self.bus_policy(),
            "key_policy": self.key_policy,
            "completion_delay": self.completion_delay,
        }


def load_dotenv_files(paths: Optional[Iterable[str | Path]] = None) -> Sequence[Path]:
    """
    Load .env files into os.environ without overriding variables already set.
    Returns the files that were found and processed.
    """
    processed: list[Path] = []
    for raw in paths or DEFAULT_ENV_PATHS:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = (PROJECT_ROOT / path).resolve()
        if not path.exists():
            continue
        load_dotenv(dotenv_path=str(path), override=False)
        processed.append(path)
    return tuple(processed)


def load_config(*, dotenv_paths: Optional[Iterable[str | Path]] = None) -> LifecycleBusConfig:
    load_dotenv_files(dotenv_paths)
    return LifecycleBusConfig.from_env()


__all__ = ["LifecycleBusConfig", "load_config", "load_dotenv_files"]
