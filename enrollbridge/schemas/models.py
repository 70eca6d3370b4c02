"""Pydantic v2 models for connector configuration, presets and outcomes.

Configuration models validate what an operator or settings panel supplies.
Outcome models are what the connector returns from its business
operations: a connector never raises across its boundary, so every failure
is expressed as an outcome with ``success``/``is_valid`` False and an
``error_code``.

Models:
- ConnectorConfig: endpoint, credentials and resilience parameters
- ResilienceConfig / CircuitBreakerConfig: retry, timeout and breaker settings
- ConfigField: descriptor for one connector setting
- UtilityPreset / PresetBranding: static utility program presets
- ConnectionTestOutcome, AccountValidationOutcome, EnrollmentOutcome,
  ScheduleOutcome, BookingOutcome: connector operation results
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

CONNECTION_ERROR = "connection_error"

CONFIG_FIELD_TYPES = frozenset({"url", "password", "checkbox", "text"})

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


# ── Configuration ──


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, ge=1, description="Exhausted calls in a row before opening")
    recovery_timeout: float = Field(default=60, gt=0, description="Seconds in OPEN before a probe")


class ResilienceConfig(BaseModel):
    """Retry, timeout and circuit breaker parameters."""

    max_retries: int = Field(default=3, ge=1, description="Attempts per call, first included")
    backoff_base: float = Field(default=2, gt=0, description="Backoff is backoff_base ** attempt seconds")
    backoff_max: float = Field(default=300, gt=0, description="Upper bound for one backoff sleep")
    request_timeout: float = Field(default=30, gt=0, description="Per-attempt timeout in seconds")
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)


class ConnectorConfig(BaseModel):
    """Connector settings for one form instance.

    ``api_password`` may be empty when the password comes from the
    environment; ``config.load_config`` resolves it before validation.
    """

    api_endpoint: str = Field(
        ...,
        description="Base URL for the IntelliSOURCE API",
        examples=["https://ph.powerportal.com/phiIntelliSOURCE/api"],
    )
    api_password: str = Field(default="", description="Shared secret sent as pswd")
    password_env_var: str = Field(
        default="ENROLLBRIDGE_API_PASSWORD",
        description="Environment variable consulted when api_password is empty",
    )
    test_mode: bool = Field(default=False)
    correlation_id: Optional[Any] = Field(
        default=None, description="Form instance id attached to activity records"
    )
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    @field_validator("api_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        v = v.strip()
        if not re.match(r"^https?://[^\s/]+", v):
            raise ValueError(f"API Endpoint must be a valid URL, got '{v}'")
        return v.rstrip("/")


class ConfigField(BaseModel):
    """Descriptor of one connector setting, for configuration UIs."""

    key: str
    label: str
    type: str = Field(..., description="Input type: url, password, checkbox or text")
    required: bool = False
    description: str = ""
    default: Optional[Any] = None
    encrypted: bool = False

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in CONFIG_FIELD_TYPES:
            raise ValueError(
                f"Invalid field type '{v}'. Must be one of: {sorted(CONFIG_FIELD_TYPES)}"
            )
        return v


# ── Presets ──


class PresetBranding(BaseModel):
    primary_color: str = Field(..., examples=["#0066cc"])
    logo_url: str = ""

    @field_validator("primary_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not _HEX_COLOR_RE.match(v):
            raise ValueError(f"primary_color must be #RRGGBB, got '{v}'")
        return v


class UtilityPreset(BaseModel):
    """Static settings for one utility demand-response program."""

    id: str = Field(..., examples=["delmarva_de"])
    name: str = Field(..., examples=["Delmarva Power - Delaware"])
    short_name: str = Field(..., examples=["Delmarva DE"])
    state: str = Field(..., min_length=2, max_length=2, examples=["DE"])
    api_endpoint: str
    program_name: str
    program_url: str
    support_phone: str
    support_email: str
    branding: PresetBranding

    @field_validator("state")
    @classmethod
    def validate_state(cls, v: str) -> str:
        if not v.isalpha() or not v.isupper():
            raise ValueError(f"state must be a two-letter uppercase code, got '{v}'")
        return v


# ── Connector outcomes ──


class ConnectionTestOutcome(BaseModel):
    success: bool
    message: str


class AccountValidationOutcome(BaseModel):
    """Result of ``validate_account``.

    ``error_code`` is ``already_enrolled``, ``medical_condition``, a platform
    error code, or ``connection_error`` when the call itself failed.
    """

    is_valid: bool = False
    error_code: str = ""
    error_message: str = ""
    is_already_enrolled: bool = False
    requires_medical_acknowledgment: bool = False
    customer_data: dict[str, Any] = Field(default_factory=dict)


class EnrollmentOutcome(BaseModel):
    success: bool = False
    confirmation_number: str = ""
    error_code: str = ""
    error_message: str = ""
    missing_fields: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class ScheduleOutcome(BaseModel):
    """Result of ``get_schedule_slots``; slots are display-ready."""

    success: bool = False
    fsr: str = ""
    ca_no: str = ""
    region: str = ""
    region_name: str = ""
    is_scheduled: bool = False
    existing_appointment: Optional[dict[str, Any]] = None
    slots: list[dict[str, Any]] = Field(default_factory=list)
    equipment_count: int = 0
    error_code: str = ""
    error_message: str = ""


class BookingOutcome(BaseModel):
    success: bool = False
    confirmation_number: str = ""
    appointment_date: str = ""
    appointment_time: str = ""
    error_code: str = ""
    error_message: str = ""
    raw_response: str = ""
