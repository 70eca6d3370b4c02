"""Tests for the enrollment platform circuit breaker.

Transitions covered:
  CLOSED -> OPEN (threshold of exhausted calls)
  OPEN -> HALF_OPEN (recovery timeout elapsed)
  HALF_OPEN -> CLOSED (successful probe)
  HALF_OPEN -> OPEN (failed probe)

Plus wiring of the breaker parameters from the connector config.
"""

import logging

from enrollbridge.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from enrollbridge.client import ApiClient


class MockClock:
    """Deterministic clock; nothing here sleeps."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


def _tripped(threshold: int = 2, recovery: float = 60.0) -> tuple[CircuitBreaker, MockClock]:
    clock = MockClock()
    cb = CircuitBreaker("platform", failure_threshold=threshold, recovery_timeout=recovery, clock=clock)
    for _ in range(threshold):
        cb.record_failure()
    return cb, clock


class TestTransitions:

    def test_starts_closed_and_permits_calls(self):
        cb = CircuitBreaker("platform", clock=MockClock())
        assert cb.state == CircuitState.CLOSED
        assert cb.is_call_permitted
        assert cb.failure_count == 0

    def test_default_threshold_is_five(self):
        cb = CircuitBreaker("platform", clock=MockClock())
        for _ in range(4):
            cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert not cb.is_call_permitted

    def test_open_until_recovery_timeout(self):
        cb, clock = _tripped(recovery=60.0)
        clock.advance(59.9)
        assert cb.state == CircuitState.OPEN
        clock.advance(0.1)
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.is_call_permitted

    def test_probe_success_closes(self):
        cb, clock = _tripped(recovery=10.0)
        clock.advance(10.0)
        assert cb.state == CircuitState.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_probe_failure_reopens_with_fresh_timer(self):
        cb, clock = _tripped(recovery=10.0)
        clock.advance(10.0)
        assert cb.state == CircuitState.HALF_OPEN
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        clock.advance(9.0)
        assert cb.state == CircuitState.OPEN

    def test_success_clears_streak(self):
        cb = CircuitBreaker("platform", failure_threshold=3, clock=MockClock())
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_reset(self):
        cb, _ = _tripped()
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.is_call_permitted

    def test_trip_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="enrollbridge.circuit_breaker"):
            _tripped()
        assert "tripped to OPEN" in caplog.text

    def test_open_error(self):
        err = CircuitOpenError("https://api.example.test")
        assert err.source_name == "https://api.example.test"
        assert "https://api.example.test" in str(err)
        assert "failing fast" in str(err)


class TestClientWiring:

    def test_breaker_parameters_from_config(self):
        config = {"resilience": {"circuit_breaker": {"failure_threshold": 7, "recovery_timeout": 15}}}
        client = ApiClient("https://api.example.test/api/", "pw", config=config)
        assert client.circuit_breaker.failure_threshold == 7
        assert client.circuit_breaker.recovery_timeout == 15
        assert client.circuit_breaker.name == "https://api.example.test/api"

    def test_breaker_defaults(self):
        client = ApiClient("https://api.example.test/api", "pw")
        assert client.circuit_breaker.failure_threshold == 5
        assert client.circuit_breaker.recovery_timeout == 60
        assert client.max_retries == 3
        assert client.backoff_base == 2
