"""Resilient client for the IntelliSOURCE enrollment platform.

Every platform call goes through ``ApiClient.call``:
- credentials are carried as the ``pswd`` form parameter and never in a URL
  (a GET carrying ``pswd`` is upgraded to POST)
- transport failures and 5xx responses are retried with exponential backoff
- a per-client circuit breaker fails fast once the platform looks down
- request/response activity is reported to an ``ActivitySink`` with
  credentials redacted

The endpoint helpers (``validate_account``, ``enroll``, ...) build the
platform parameters for one operation and hand the parsed tree to the
response validator and result interpreters.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

from enrollbridge.activity import ActivitySink, LoggingSink
from enrollbridge.circuit_breaker import CircuitBreaker, CircuitOpenError
from enrollbridge.field_mapper import map_enrollment
from enrollbridge.health import ERROR, HealthReport, classify_latency
from enrollbridge.response_validator import ResponseKind, validate_response
from enrollbridge.results.scheduling import SchedulingResult
from enrollbridge.results.validation import ValidationResult
from enrollbridge.sanitize import has_credentials, redact_params, redact_text
from enrollbridge.schemas import ResilienceConfig
from enrollbridge.transport import AiohttpTransport, Transport, TransportError
from enrollbridge.xml_tree import TreeParseError, parse

logger = logging.getLogger(__name__)

VALIDATE_PATH = "/prospects/validate.xml"
ENROLL_PATH = "/prospects/enroll.xml"
SCHEDULING_PATH = "/field_service_requests/scheduling.xml"
BOOKING_PATH = "/field_service_requests/schedule"
PROMO_CODES_PATH = "/promo_codes"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
ADMIN_VIEW_ACCOUNT = "ADMIN-VIEW"

# Booking endpoint expects the long names for these windows
BOOKING_TIME_NAMES = {
    "MD": "Mid-Day",
    "md": "Mid-Day",
    "EV": "Evening",
    "ev": "Evening",
}


class ApiError(Exception):
    """A platform call failed.

    Attributes:
        http_status: Final HTTP status, or 0 when no usable response exists
            (network failure, unparseable body, untrusted payload).
    """

    def __init__(self, message: str, http_status: int = 0):
        self.http_status = http_status
        super().__init__(message)


def join_url(endpoint: str, path: str) -> str:
    return f"{endpoint.rstrip('/')}/{path.lstrip('/')}"


class ApiClient:
    """Async client for one configured platform endpoint.

    Args:
        endpoint: Base API URL, e.g. ``https://ph.powerportal.com/phiIntelliSOURCE/api``.
        password: Shared secret sent as ``pswd``.
        transport: Awaitable HTTP transport. Defaults to ``AiohttpTransport``.
        sink: Activity sink. Defaults to ``LoggingSink``.
        config: Optional connector config; its ``resilience`` section
            overrides retry, timeout and breaker parameters and is
            validated as a ``ResilienceConfig``.
        correlation_id: Form instance id attached to activity records. Usage
            records are only emitted when set.
        test_mode: Recorded on activity records.
        sleep: Backoff sleep coroutine. Defaults to ``asyncio.sleep``.
        clock: Monotonic clock (seconds) for latency and the breaker.

    Raises:
        pydantic.ValidationError: If the ``resilience`` section is invalid.
    """

    def __init__(
        self,
        endpoint: str,
        password: str,
        transport: Transport | None = None,
        sink: ActivitySink | None = None,
        config: dict | None = None,
        correlation_id: Any = None,
        test_mode: bool = False,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self._password = password
        self._transport = transport or AiohttpTransport()
        self._sink = sink or LoggingSink()
        self.correlation_id = correlation_id
        self.test_mode = test_mode
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

        settings = ResilienceConfig.model_validate((config or {}).get("resilience") or {})
        self.max_retries = settings.max_retries
        self.backoff_base = settings.backoff_base
        self.backoff_max = settings.backoff_max
        self.request_timeout = settings.request_timeout

        self.circuit_breaker = CircuitBreaker(
            name=self.endpoint,
            failure_threshold=settings.circuit_breaker.failure_threshold,
            recovery_timeout=settings.circuit_breaker.recovery_timeout,
            clock=self._clock,
        )

    def _auth(self) -> dict[str, str]:
        return {"pswd": self._password, "val": "submit"}

    # ── Core request ──

    async def call(
        self,
        path: str,
        params: dict[str, Any],
        method: str = "POST",
        parse_tree: bool = True,
    ) -> dict | str:
        """Send one request to the platform.

        Args:
            path: Path relative to the endpoint, e.g. ``/promo_codes``.
            params: Platform parameters, credentials included.
            method: ``"GET"`` or ``"POST"``.
            parse_tree: Parse the body as XML. When False the raw text is
                returned.

        Returns:
            The parsed document (``{}`` for an empty body) or the raw body.

        Raises:
            ApiError: On HTTP >= 400 after retries, network failure, or an
                unparseable body.
            CircuitOpenError: If the breaker is open.
        """
        url = join_url(self.endpoint, path)
        method = method.upper()
        display_path = path.lstrip("/")

        if method == "GET" and has_credentials(params):
            self._sink.log("warning", "Attempted to send credentials via GET request", {
                "path": display_path,
                "method": method,
            }, self.correlation_id)
            method = "POST"

        headers: dict[str, str] = {}
        body: str | None
        if method == "GET":
            url = f"{url}?{urlencode(params)}"
            body = None
        else:
            body = urlencode(params)
            headers["Content-Type"] = FORM_CONTENT_TYPE

        if not self.circuit_breaker.is_call_permitted:
            raise CircuitOpenError(self.endpoint)

        self._log_request(method, display_path, params)
        started = self._clock()
        status, response_body, error = await self._send_with_retry(url, method, headers, body)
        elapsed_ms = round((self._clock() - started) * 1000)
        self._log_response(method, display_path, status, elapsed_ms, error)

        if error is not None:
            raise ApiError(error, status)

        if parse_tree:
            if not response_body:
                return {}
            try:
                return parse(response_body)
            except TreeParseError as exc:
                raise ApiError(f"Failed to parse API response: {exc}", 0) from exc
        return response_body

    async def _send_with_retry(
        self, url: str, method: str, headers: dict[str, str], body: str | None,
    ) -> tuple[int, str, str | None]:
        """Retry loop. Returns ``(status, body, error_message_or_None)``."""
        attempt = 0
        while attempt < self.max_retries:
            try:
                response = await self._transport(
                    url, method, headers, body, self.request_timeout
                )
            except TransportError as exc:
                attempt += 1
                logger.warning(
                    "%s: request failed (attempt %d/%d): %s",
                    self.endpoint, attempt, self.max_retries, exc,
                )
                if attempt < self.max_retries:
                    await self._backoff(attempt)
                    continue
                self.circuit_breaker.record_failure()
                return 0, "", str(exc) or "Max retries exceeded"

            if response.status >= 500:
                attempt += 1
                logger.warning(
                    "%s: HTTP %d (attempt %d/%d)",
                    self.endpoint, response.status, attempt, self.max_retries,
                )
                if attempt < self.max_retries:
                    await self._backoff(attempt)
                    continue
                self.circuit_breaker.record_failure()
            else:
                self.circuit_breaker.record_success()

            if response.status >= 400:
                return (
                    response.status,
                    response.body,
                    f"HTTP {response.status}: {redact_text(response.body)}",
                )
            return response.status, response.body, None

        return 0, "", "Max retries exceeded"

    async def _backoff(self, attempt: int) -> None:
        delay = min(self.backoff_base ** attempt, self.backoff_max)
        logger.info("%s: retrying in %ss...", self.endpoint, delay)
        await self._sleep(delay)

    # ── Activity records ──

    def _log_request(self, method: str, path: str, params: dict[str, Any]) -> None:
        self._sink.log("api_call", f"{method} {path}", {
            "direction": "request",
            "params": redact_params(params),
            "test_mode": self.test_mode,
        }, self.correlation_id)

    def _log_response(
        self, method: str, path: str, status: int, elapsed_ms: int, error: str | None,
    ) -> None:
        success = 200 <= status < 400
        self._sink.log("api_call", f"{method} {path}", {
            "direction": "response",
            "status": status,
            "elapsed_ms": elapsed_ms,
            "success": success,
            "test_mode": self.test_mode,
        }, self.correlation_id)

        if self.correlation_id is not None:
            self._sink.log("api_usage", f"{method} {path}", {
                "endpoint": path,
                "method": method,
                "status": status,
                "elapsed_ms": elapsed_ms,
                "success": success,
                "error": error,
            }, self.correlation_id)

    def _reject_untrusted(self, kind: ResponseKind, path: str, document: Any) -> None:
        report = validate_response(kind, document)
        if report:
            return
        self._sink.log("warning", "Invalid API response schema", {
            "endpoint": path,
            "errors": report.errors,
        }, self.correlation_id)
        raise ApiError(f"Invalid response from API: {report.last_error}", 0)

    # ── Endpoint helpers ──

    async def validate_account(self, utility_no: str, zip_code: str) -> ValidationResult:
        """Check an account number/ZIP pair against the platform."""
        params = {"utility_no": utility_no, "zip": zip_code, **self._auth()}
        document = await self.call(VALIDATE_PATH, params)
        self._reject_untrusted(ResponseKind.VALIDATION, VALIDATE_PATH, document)
        return ValidationResult(document)

    async def enroll(self, fields: dict, use_field_mapper: bool = True) -> dict | str:
        """Submit an enrollment.

        Raises:
            MissingFieldsError: When mapping is on and required fields are empty.
            ApiError: On platform failure.
        """
        api_params = map_enrollment(fields) if use_field_mapper else dict(fields)
        params = {**api_params, **self._auth()}

        self._sink.log("info", "Enrollment API call with mapped fields", {
            "mapped_fields": sorted(redact_params(params)),
            "field_count": len(redact_params(params)),
        }, self.correlation_id)

        return await self.call(ENROLL_PATH, params)

    async def get_schedule_slots(
        self,
        account_number: str,
        start_date: str,
        equipment: dict[str, dict] | None = None,
        end_date: str = "",
    ) -> SchedulingResult:
        """Fetch open appointment slots.

        Args:
            account_number: Standard or ``X``-prefixed alternate account.
                Empty or ``"ADMIN-VIEW"`` requests general availability.
            start_date: ``M/D/YYYY``.
            equipment: Device type code -> ``{"count": ..., "location": ...}``.
            end_date: Optional ``M/D/YYYY``.
        """
        params: dict[str, Any] = {"startDate": start_date, **self._auth()}
        if end_date:
            params["endDate"] = end_date

        if account_number and account_number != ADMIN_VIEW_ACCOUNT:
            if account_number[0] in "xX":
                params["caNo"] = account_number[1:]
            else:
                params["utility_no"] = account_number

        for device_type, item in (equipment or {}).items():
            if "count" in item:
                params[f"eqCount-{device_type}"] = item["count"]
            if "location" in item:
                params[f"eqLoc-{device_type}"] = item["location"]

        document = await self.call(SCHEDULING_PATH, params)
        self._reject_untrusted(ResponseKind.SCHEDULING, SCHEDULING_PATH, document)
        return SchedulingResult(document)

    async def book_appointment(
        self,
        fsr: str,
        ca_no: str,
        schedule_date: str,
        time_slot: str,
        equipment: dict[str, dict],
        user_id: str | None = None,
    ) -> str:
        """Book a slot; the platform answers with plain text."""
        params: dict[str, Any] = {
            "fsr": fsr,
            "caNo": ca_no,
            "schedule_date": schedule_date,
            "time": BOOKING_TIME_NAMES.get(time_slot, time_slot),
            **self._auth(),
        }
        for device_type, item in equipment.items():
            count = int(item.get("count") or 0)
            if count <= 0:
                continue
            params[f"eqCount-{device_type}"] = count
            if "location" in item:
                params[f"eqLoc-{device_type}"] = item["location"]
            if "desired_device" in item:
                params[f"dd-{device_type}"] = item["desired_device"]
        if user_id:
            params["userId"] = user_id

        return await self.call(BOOKING_PATH, params, "POST", parse_tree=False)

    async def get_promo_codes(self) -> list[str]:
        body = await self.call(PROMO_CODES_PATH, {"pswd": self._password}, "POST", parse_tree=False)
        return [code.strip() for code in str(body).split(",") if code.strip()]

    async def test_connection(self) -> bool:
        try:
            await self.get_promo_codes()
        except (ApiError, CircuitOpenError) as exc:
            logger.info("Connection test against %s failed: %s", self.endpoint, exc)
            return False
        return True

    async def health_check(self) -> HealthReport:
        """Time one promo-code fetch and classify the latency."""
        started = self._clock()
        try:
            await self.get_promo_codes()
        except ApiError as exc:
            return HealthReport(
                status=ERROR,
                latency_ms=round((self._clock() - started) * 1000),
                endpoint=self.endpoint,
                error=str(exc),
                http_status=exc.http_status,
            )
        except CircuitOpenError as exc:
            return HealthReport(
                status=ERROR,
                latency_ms=round((self._clock() - started) * 1000),
                endpoint=self.endpoint,
                error=str(exc),
            )

        latency_ms = round((self._clock() - started) * 1000)
        status, warning = classify_latency(latency_ms)
        return HealthReport(
            status=status,
            latency_ms=latency_ms,
            endpoint=self.endpoint,
            warning=warning,
        )
