"""Tests for health report classification and formatting."""

from enrollbridge.health import (
    DEGRADED,
    ERROR,
    HEALTHY,
    SLOW,
    HealthReport,
    classify_latency,
    format_report,
)


class TestClassifyLatency:

    def test_boundaries(self):
        assert classify_latency(0) == (HEALTHY, None)
        assert classify_latency(4_999) == (HEALTHY, None)
        assert classify_latency(5_000) == (DEGRADED, "High latency detected")
        assert classify_latency(10_000) == (DEGRADED, "High latency detected")
        assert classify_latency(10_001) == (SLOW, "Very high latency")


class TestHealthReport:

    def test_checked_at_defaults_to_now(self):
        report = HealthReport(status=HEALTHY, latency_ms=12, endpoint="https://x")
        assert report.checked_at.endswith("+00:00")

    def test_to_dict(self):
        report = HealthReport(
            status=ERROR, latency_ms=3, endpoint="https://x",
            checked_at="2026-01-05T00:00:00+00:00", error="HTTP 500: down", http_status=500,
        )
        assert report.to_dict() == {
            "status": "error",
            "latency_ms": 3,
            "endpoint": "https://x",
            "checked_at": "2026-01-05T00:00:00+00:00",
            "error": "HTTP 500: down",
            "warning": None,
            "http_status": 500,
        }


class TestFormatReport:

    def test_format(self):
        output = format_report({
            "delmarva_de": HealthReport(status=HEALTHY, latency_ms=120, endpoint="https://a"),
            "pepco_dc": HealthReport(
                status=DEGRADED, latency_ms=6200, endpoint="https://b",
                warning="High latency detected",
            ),
            "backup": HealthReport(status=ERROR, latency_ms=5, endpoint="https://c", error="refused"),
        })
        lines = output.splitlines()
        assert lines[0] == "Enrollment Platform Health Check"
        assert "HEALTHY" in lines[2] and "(120ms)" in lines[2]
        assert "DEGRADED" in lines[3] and "High latency detected" in lines[3]
        assert "ERROR" in lines[4] and "(refused)" in lines[4]

    def test_empty(self):
        assert format_report({}).splitlines()[0] == "Enrollment Platform Health Check"
