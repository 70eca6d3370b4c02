"""Pydantic v2 schema models for EnrollBridge.

- ConnectorConfig / ResilienceConfig / CircuitBreakerConfig: connector settings
- ConfigField: settings descriptor for configuration UIs
- UtilityPreset / PresetBranding: utility program presets
- *Outcome: connector operation results
"""

from enrollbridge.schemas.models import (
    CONNECTION_ERROR,
    AccountValidationOutcome,
    BookingOutcome,
    CircuitBreakerConfig,
    ConfigField,
    ConnectionTestOutcome,
    ConnectorConfig,
    EnrollmentOutcome,
    PresetBranding,
    ResilienceConfig,
    ScheduleOutcome,
    UtilityPreset,
)

__all__ = [
    "CONNECTION_ERROR",
    "AccountValidationOutcome",
    "BookingOutcome",
    "CircuitBreakerConfig",
    "ConfigField",
    "ConnectionTestOutcome",
    "ConnectorConfig",
    "EnrollmentOutcome",
    "PresetBranding",
    "ResilienceConfig",
    "ScheduleOutcome",
    "UtilityPreset",
]
