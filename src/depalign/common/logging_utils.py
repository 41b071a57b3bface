"""Centralized logging configuration and structured debug helpers.

All modules log through ``logging.getLogger(__name__)``; the CLI calls
``configure_logging()`` once. Structured DEBUG traces attach their fields via
``extra=extra_context(...)`` and are gated by ``is_debug_enabled`` so the
context dicts are only built when someone will read them.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from ..constants import Constants

_CONFIGURED = False


def _level_from_env() -> int:
    name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(force: bool = False) -> None:
    """Configure the root logger once using ``Constants.LOG_FORMAT``.

    The level comes from the ``DEPALIGN_LOG_LEVEL`` environment variable;
    callers may override it afterwards (the CLI flag wins).
    """
    global _CONFIGURED  # pylint: disable=global-statement
    if _CONFIGURED and not force:
        return
    logging.basicConfig(level=_level_from_env(), format=Constants.LOG_FORMAT, force=force)
    logging.getLogger().setLevel(_level_from_env())
    _CONFIGURED = True


def is_debug_enabled(logger: logging.Logger) -> bool:
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log record, dropping None values."""
    return {key: value for key, value in fields.items() if value is not None}


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        if self._start is None:
            return 0
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
