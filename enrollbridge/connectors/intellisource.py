"""IntelliSOURCE / PowerPortal connector.

Each business operation composes the same three steps:

    field mapper -> ApiClient -> result interpreter

and converts whatever goes wrong along the way into a failure outcome with
``error_code="connection_error"`` and the underlying message. Clients are
cached per endpoint/password so that the circuit breaker sees consecutive
failures across operations.
"""

import logging
from datetime import date
from typing import Any, Awaitable, Callable

from enrollbridge.activity import ActivitySink
from enrollbridge.client import ApiClient
from enrollbridge.config import DEFAULT_API_ENDPOINT, resolve_password
from enrollbridge.connectors.base import BaseConnector
from enrollbridge.field_mapper import (
    MissingFieldsError,
    digits_only,
    map_enrollment,
    map_scheduling,
    sanitize_account,
)
from enrollbridge.response_validator import ResponseKind, validate_response
from enrollbridge.results import SchedulingResult, ValidationResult
from enrollbridge.sanitize import mask_identifier
from enrollbridge.schemas import (
    CONNECTION_ERROR,
    AccountValidationOutcome,
    BookingOutcome,
    ConfigField,
    ConnectionTestOutcome,
    ConnectorConfig,
    EnrollmentOutcome,
    ScheduleOutcome,
    UtilityPreset,
)
from enrollbridge.transport import Transport
from enrollbridge.xml_tree import get_value, node_value, parse

logger = logging.getLogger(__name__)

SUPPORTED_FEATURES = [
    "account_validation",
    "enrollment",
    "scheduling",
    "promo_codes",
    "equipment_selection",
    "cycling_levels",
]

_SUPPORT_PHONE = "1-888-818-0075"
_SUPPORT_EMAIL = "support@energywiserewards.com"
_PROGRAM_NAME = "Energy Wise Rewards"
_DELMARVA_BRANDING = {"primary_color": "#0066cc", "logo_url": ""}
_PEPCO_BRANDING = {"primary_color": "#00a94f", "logo_url": ""}

PRESETS: dict[str, UtilityPreset] = {
    preset.id: preset
    for preset in (
        UtilityPreset(
            id="delmarva_de",
            name="Delmarva Power - Delaware",
            short_name="Delmarva DE",
            state="DE",
            api_endpoint=DEFAULT_API_ENDPOINT,
            program_name=_PROGRAM_NAME,
            program_url="https://energywiserewards.delmarva.com",
            support_phone=_SUPPORT_PHONE,
            support_email=_SUPPORT_EMAIL,
            branding=_DELMARVA_BRANDING,
        ),
        UtilityPreset(
            id="delmarva_md",
            name="Delmarva Power - Maryland",
            short_name="Delmarva MD",
            state="MD",
            api_endpoint=DEFAULT_API_ENDPOINT,
            program_name=_PROGRAM_NAME,
            program_url="https://energywiserewards.delmarva.com",
            support_phone=_SUPPORT_PHONE,
            support_email=_SUPPORT_EMAIL,
            branding=_DELMARVA_BRANDING,
        ),
        UtilityPreset(
            id="pepco_md",
            name="Pepco - Maryland",
            short_name="Pepco MD",
            state="MD",
            api_endpoint=DEFAULT_API_ENDPOINT,
            program_name=_PROGRAM_NAME,
            program_url="https://energywiserewards.pepco.com",
            support_phone=_SUPPORT_PHONE,
            support_email=_SUPPORT_EMAIL,
            branding=_PEPCO_BRANDING,
        ),
        UtilityPreset(
            id="pepco_dc",
            name="Pepco - Washington DC",
            short_name="Pepco DC",
            state="DC",
            api_endpoint=DEFAULT_API_ENDPOINT,
            program_name=_PROGRAM_NAME,
            program_url="https://energywiserewards.pepco.com",
            support_phone=_SUPPORT_PHONE,
            support_email=_SUPPORT_EMAIL,
            branding=_PEPCO_BRANDING,
        ),
    )
}


class IntelliSourceConnector(BaseConnector):
    """Connector for utility demand-response programs on IntelliSOURCE.

    Args:
        transport: HTTP transport handed to every client (tests inject a fake).
        sink: Activity sink handed to every client.
        sleep: Backoff sleep handed to every client.
    """

    id = "intellisource"
    name = "IntelliSOURCE / PowerPortal"
    description = (
        "API connector for utility demand response programs using the "
        "PowerPortal IntelliSOURCE platform."
    )
    version = "2.0.0"

    def __init__(
        self,
        transport: Transport | None = None,
        sink: ActivitySink | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self._transport = transport
        self._sink = sink
        self._sleep = sleep
        self._clients: dict[tuple[str, str], ApiClient] = {}

    # ── Metadata ──

    def get_config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                key="api_endpoint",
                label="API Endpoint",
                type="url",
                required=True,
                description=(
                    "Base URL for the IntelliSOURCE API "
                    f"(e.g., {DEFAULT_API_ENDPOINT})"
                ),
                default=DEFAULT_API_ENDPOINT,
            ),
            ConfigField(
                key="api_password",
                label="API Password",
                type="password",
                required=True,
                description="Authentication password for API calls",
                encrypted=True,
            ),
            ConfigField(
                key="test_mode",
                label="Test Mode",
                type="checkbox",
                description="Enable test mode to use mock responses instead of live API",
                default=False,
            ),
        ]

    def validate_config(self, config: dict) -> list[str]:
        errors = []
        endpoint = config.get("api_endpoint")
        if not endpoint:
            errors.append("API Endpoint is required")
        else:
            try:
                ConnectorConfig(api_endpoint=endpoint)
            except ValueError:
                errors.append("API Endpoint must be a valid URL")
        if not resolve_password(config):
            errors.append("API Password is required")
        return errors

    @property
    def supported_features(self) -> list[str]:
        return list(SUPPORTED_FEATURES)

    @property
    def presets(self) -> dict[str, UtilityPreset]:
        return dict(PRESETS)

    def map_fields(self, form_data: dict, kind: str = "enrollment") -> dict:
        """Map form data for ``kind`` (``"enrollment"`` or ``"scheduling"``).

        Raises:
            MissingFieldsError: If required parameters are missing.
        """
        if kind == "scheduling":
            return map_scheduling(form_data)
        return map_enrollment(form_data)

    # ── Client cache ──

    def _client(self, config: dict) -> ApiClient:
        endpoint = (config.get("api_endpoint") or DEFAULT_API_ENDPOINT).rstrip("/")
        password = resolve_password(config)
        key = (endpoint, password)
        if key not in self._clients:
            self._clients[key] = ApiClient(
                endpoint,
                password,
                transport=self._transport,
                sink=self._sink,
                config=config,
                correlation_id=config.get("correlation_id"),
                test_mode=bool(config.get("test_mode", False)),
                sleep=self._sleep,
            )
        return self._clients[key]

    # ── Business operations ──

    async def test_connection(self, config: dict) -> ConnectionTestOutcome:
        try:
            await self._client(config).get_promo_codes()
        except Exception as exc:
            logger.warning("Connection test failed: %s", exc)
            return ConnectionTestOutcome(success=False, message=f"Connection failed: {exc}")
        return ConnectionTestOutcome(success=True, message="Connection successful")

    async def validate_account(self, data: dict, config: dict) -> AccountValidationOutcome:
        account = sanitize_account(data.get("account_number") or data.get("utility_no") or "")
        zip_code = digits_only(data.get("zip") or "")
        logger.debug("Validating account %s", mask_identifier(account))
        try:
            result = await self._client(config).validate_account(account, zip_code)
        except Exception as exc:
            logger.warning("Account validation failed: %s", exc)
            return AccountValidationOutcome(
                is_valid=False, error_code=CONNECTION_ERROR, error_message=str(exc),
            )
        return self._validation_outcome(result)

    @staticmethod
    def _validation_outcome(result: ValidationResult) -> AccountValidationOutcome:
        if result.is_already_enrolled():
            error_code = "already_enrolled"
        elif result.requires_medical_acknowledgment():
            error_code = "medical_condition"
        else:
            error_code = result.error_code
        return AccountValidationOutcome(
            is_valid=result.is_valid(),
            error_code=error_code,
            error_message=result.error_message,
            is_already_enrolled=result.is_already_enrolled(),
            requires_medical_acknowledgment=result.requires_medical_acknowledgment(),
            customer_data=result.to_dict(),
        )

    async def submit_enrollment(self, form_data: dict, config: dict) -> EnrollmentOutcome:
        try:
            params = self.map_fields(form_data, "enrollment")
            response = await self._client(config).enroll(params, use_field_mapper=False)
        except MissingFieldsError as exc:
            logger.warning("Enrollment not submitted: %s", exc)
            return EnrollmentOutcome(
                success=False,
                error_code=CONNECTION_ERROR,
                error_message=str(exc),
                missing_fields=exc.missing_fields,
            )
        except Exception as exc:
            logger.warning("Enrollment submission failed: %s", exc)
            return EnrollmentOutcome(
                success=False, error_code=CONNECTION_ERROR, error_message=str(exc),
            )
        return self._enrollment_outcome(response)

    @staticmethod
    def _enrollment_outcome(response: Any) -> EnrollmentOutcome:
        if not isinstance(response, dict):
            return EnrollmentOutcome(success=bool(response), data={"body": str(response)})
        root = response.get("message", response)
        if not isinstance(root, dict):
            root = {}
        confirmation = node_value(root.get("confirmation_no")) or node_value(root.get("caNo"))
        success = node_value(root.get("status")).lower() == "success" or bool(confirmation)
        return EnrollmentOutcome(
            success=success,
            confirmation_number=confirmation,
            error_code=node_value(root.get("error_cd")),
            error_message=node_value(root.get("error_message")),
            data=response,
        )

    async def get_schedule_slots(self, data: dict, config: dict) -> ScheduleOutcome:
        account = str(data.get("account_number") or data.get("utility_no") or "")
        start_date = data.get("start_date") or date.today().strftime("%m/%d/%Y")
        try:
            if account and account != "ADMIN-VIEW":
                account = sanitize_account(account)
            required_capacity = int(data.get("required_capacity") or 1)
            result = await self._client(config).get_schedule_slots(
                account,
                start_date,
                equipment=data.get("equipment") or {},
                end_date=data.get("end_date", ""),
            )
            return self._schedule_outcome(result, required_capacity)
        except Exception as exc:
            logger.warning("Schedule lookup failed: %s", exc)
            return ScheduleOutcome(
                success=False, error_code=CONNECTION_ERROR, error_message=str(exc),
            )

    @staticmethod
    def _schedule_outcome(result: SchedulingResult, required_capacity: int) -> ScheduleOutcome:
        slots = result.get_slots_for_display(required_capacity=required_capacity)
        return ScheduleOutcome(
            success=bool(slots) or bool(result.fsr_no) or result.is_scheduled(),
            fsr=result.fsr_no,
            ca_no=result.comverge_no,
            region=result.get_region(),
            region_name=result.get_region_name(),
            is_scheduled=result.is_scheduled(),
            existing_appointment=result.get_existing_appointment(),
            slots=slots,
            equipment_count=result.total_equipment_count(),
            error_message=result.error_message,
        )

    async def book_appointment(self, data: dict, config: dict) -> BookingOutcome:
        try:
            body = await self._client(config).book_appointment(
                data.get("fsr", ""),
                data.get("ca_no", ""),
                data.get("schedule_date", ""),
                data.get("time", ""),
                data.get("equipment") or {},
                user_id=data.get("user_id"),
            )
            return self._booking_outcome(str(body), data)
        except Exception as exc:
            logger.warning("Appointment booking failed: %s", exc)
            return BookingOutcome(
                success=False, error_code=CONNECTION_ERROR, error_message=str(exc),
            )

    @staticmethod
    def _booking_outcome(body: str, data: dict) -> BookingOutcome:
        """Interpret the booking reply: plain text, or XML with a status.

        Raises:
            TreeParseError: If an XML-looking reply does not parse.
            ValueError: If an XML reply fails response screening.
        """
        confirmation = ""
        success = bool(body.strip()) and "error" not in body.lower()
        if body.lstrip().startswith("<"):
            document = parse(body)
            report = validate_response(ResponseKind.BOOKING, document)
            if not report:
                raise ValueError(f"Invalid response from API: {report.last_error}")
            confirmation = node_value(get_value(document, "message.confirmation"))
            status = node_value(get_value(document, "message.status")).lower()
            has_error = get_value(document, "message.error") is not None
            success = not has_error and (bool(confirmation) or status in ("success", "scheduled", "y"))
        return BookingOutcome(
            success=success,
            confirmation_number=confirmation,
            appointment_date=data.get("schedule_date", ""),
            appointment_time=data.get("time", ""),
            raw_response=body,
        )
