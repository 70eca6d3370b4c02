"""Connectivity health reporting for the enrollment platform.

``ApiClient.health_check()`` times one lightweight call and hands the
latency to ``classify_latency``. ``format_report`` renders one or more
reports (one per configured utility program) for the ``--health-check``
CLI command.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone

HEALTHY = "healthy"
DEGRADED = "degraded"
SLOW = "slow"
ERROR = "error"

DEGRADED_AFTER_MS = 5_000
SLOW_AFTER_MS = 10_000


@dataclass
class HealthReport:
    """Result of a single health probe."""

    status: str
    latency_ms: int
    endpoint: str
    checked_at: str = ""
    error: str | None = None
    warning: str | None = None
    http_status: int | None = None

    def __post_init__(self):
        if not self.checked_at:
            self.checked_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)


def classify_latency(latency_ms: int) -> tuple[str, str | None]:
    """Map a successful probe's latency to a status and optional warning.

    Returns:
        ``(status, warning)``: healthy under 5s, degraded from 5s to 10s,
        slow above 10s.
    """
    if latency_ms > SLOW_AFTER_MS:
        return SLOW, "Very high latency"
    if latency_ms >= DEGRADED_AFTER_MS:
        return DEGRADED, "High latency detected"
    return HEALTHY, None


def format_report(results: dict[str, HealthReport]) -> str:
    """Format health reports as an aligned text table.

    Args:
        results: Mapping of label (preset id or endpoint) to report.

    Returns:
        Multi-line string ready for console output.
    """
    lines = [
        "Enrollment Platform Health Check",
        "-" * 60,
    ]
    max_name = max(len(name) for name in results) if results else 0
    for name, report in results.items():
        if report.status == ERROR:
            detail = f"({report.error})"
        else:
            detail = f"({report.latency_ms}ms)"
            if report.warning:
                detail += f" {report.warning}"
        lines.append(f"  {name + ':':<{max_name + 2}} {report.status.upper():<10} {detail}")
    return "\n".join(lines)
