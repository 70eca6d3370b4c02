"""Activity and usage-tracking sink.

The API client reports every request and response as a structured record:
``sink.log(level, message, details, correlation_id)``. Levels are the
activity categories used by the form plugin's log table (``api_call``,
``api_usage``, ``info``, ``warning``, ``error``). The default sink forwards
records to the standard ``logging`` module; a persistence layer can plug in
its own sink with the same method.
"""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_LEVELS = {
    "api_call": logging.DEBUG,
    "api_usage": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ActivitySink(Protocol):
    def log(
        self,
        level: str,
        message: str,
        details: dict[str, Any] | None = None,
        correlation_id: Any = None,
    ) -> None: ...


class LoggingSink:
    """Sink writing activity records to a ``logging.Logger``."""

    def __init__(self, target: logging.Logger | None = None):
        self._logger = target or logger

    def log(
        self,
        level: str,
        message: str,
        details: dict[str, Any] | None = None,
        correlation_id: Any = None,
    ) -> None:
        self._logger.log(
            _LEVELS.get(level, logging.INFO),
            "[%s] %s %s (correlation_id=%s)",
            level,
            message,
            details or {},
            correlation_id,
        )


class MemorySink:
    """Sink that keeps records in memory, for diagnostics and tests."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def log(
        self,
        level: str,
        message: str,
        details: dict[str, Any] | None = None,
        correlation_id: Any = None,
    ) -> None:
        self.records.append({
            "level": level,
            "message": message,
            "details": dict(details or {}),
            "correlation_id": correlation_id,
        })

    def by_level(self, level: str) -> list[dict[str, Any]]:
        return [r for r in self.records if r["level"] == level]
