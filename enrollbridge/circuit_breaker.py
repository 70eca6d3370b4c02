"""Fail-fast guard around the enrollment platform.

States:
  CLOSED    -- calls flow through; exhausted calls are counted
  OPEN      -- the platform is treated as down and calls fail immediately
  HALF_OPEN -- recovery window elapsed; the next call is a probe

The breaker sits outside the client's retry loop: a single ``call()`` that
exhausts its attempts counts as one failure. A form session hammering a dead
endpoint therefore stops after ``failure_threshold`` user actions instead of
stacking 3-attempt backoff cycles on each of them.
"""

import enum
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of calling the platform while the breaker is OPEN.

    Attributes:
        source_name: Endpoint base the breaker guards.
    """

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(
            f"Circuit breaker OPEN for '{source_name}': "
            f"enrollment platform unavailable, failing fast"
        )


class CircuitBreaker:
    """Consecutive-failure breaker with an injectable monotonic clock.

    Args:
        name: Label used in log lines and ``CircuitOpenError``.
        failure_threshold: Exhausted calls in a row before opening.
        recovery_timeout: Seconds in OPEN before a probe is allowed.
        clock: Returns monotonic seconds; defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock or time.monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            logger.info("%s: circuit breaker OPEN -> HALF_OPEN, probing", self.name)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_call_permitted(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("%s: circuit breaker HALF_OPEN -> CLOSED", self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._trip("probe failed")
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            self._trip(f"{self._failure_count} consecutive failures")

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    def _trip(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning("%s: circuit breaker tripped to OPEN (%s)", self.name, reason)
