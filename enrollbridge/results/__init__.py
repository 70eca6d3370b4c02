"""Read-only interpreters over parsed platform responses."""

from enrollbridge.results.scheduling import SchedulingResult
from enrollbridge.results.validation import ValidationResult

__all__ = ["SchedulingResult", "ValidationResult"]
