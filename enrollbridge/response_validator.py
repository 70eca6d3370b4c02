"""Screening of parsed platform responses before business logic sees them.

Platform payloads are untrusted: values end up in rendered forms and in
confirmation emails. Each response kind has a small structural contract
(a ``message`` root and at least one status indicator) and a list of
string-bearing fields that must be free of markup and script vectors.

The validator never raises. ``validate_response`` returns a
``ValidationReport``; a falsy report means "untrusted, do not proceed" and
always carries at least one error string.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from enrollbridge.xml_tree import as_list, node_attr

logger = logging.getLogger(__name__)

MAX_FIELD_LENGTH = 10_000


class ResponseKind(str, enum.Enum):
    """Response schemas known to the validator."""

    VALIDATION = "validation"
    SCHEDULING = "scheduling"
    BOOKING = "booking"


STATUS_INDICATORS: dict[ResponseKind, tuple[str, ...]] = {
    ResponseKind.VALIDATION: ("status", "enroll-status", "messagetype"),
    ResponseKind.SCHEDULING: ("messagetype", "scheduled", "fsrno", "openslots", "equipments"),
    ResponseKind.BOOKING: ("status", "confirmation", "error"),
}

STRING_FIELDS: dict[ResponseKind, tuple[str, ...]] = {
    ResponseKind.VALIDATION: (
        "status", "messagetype", "enroll-status", "caNo", "comvergeno",
        "partType", "fname", "lname", "email",
    ),
    ResponseKind.SCHEDULING: (
        "messagetype", "scheduled", "fsrno", "comvergeno", "email", "fname",
        "lname", "scheduledate", "scheduletime", "region", "territory", "serviceArea",
    ),
    ResponseKind.BOOKING: ("status", "confirmation", "message", "error"),
}

ADDRESS_FIELDS = ("street", "city", "state", "zip")

_DANGEROUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<script",
        r"javascript:",
        r"on\w+\s*=",
        r"<iframe",
        r"<object",
        r"<embed",
        r"data:",
        r"vbscript:",
    )
)
_MARKUP_RE = re.compile(r"<|>|javascript:|on\w+\s*=", re.IGNORECASE)
_ERROR_CODE_RE = re.compile(r"^[A-Za-z0-9\-_]+$")
_SLOT_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


@dataclass
class ValidationReport:
    """Result of screening one response."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid

    @property
    def last_error(self) -> str:
        return self.errors[0] if self.errors else ""


def is_safe_string(value: str) -> bool:
    """True when ``value`` has no XSS vectors and is within the length cap."""
    if len(value) > MAX_FIELD_LENGTH:
        return False
    return not any(pattern.search(value) for pattern in _DANGEROUS_PATTERNS)


def _string_values(node: Any) -> list[str]:
    """All text carried by a node: its value, or each value of a list."""
    values = []
    for item in as_list(node):
        if isinstance(item, str):
            values.append(item)
        elif isinstance(item, dict) and item.get("value") is not None:
            values.append(str(item["value"]))
    return values


class _Screen:
    """Collects errors for a single validation pass."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def strings(self, container: dict, names: tuple[str, ...], prefix: str = "") -> None:
        for name in names:
            if name not in container:
                continue
            for value in _string_values(container[name]):
                if not is_safe_string(value):
                    self.errors.append(f"Unsafe content detected in field: {prefix}{name}")
                    break

    def address(self, address: Any) -> None:
        for item in as_list(address):
            if isinstance(item, dict):
                self.strings(item, ADDRESS_FIELDS, prefix="address.")

    def error_detail(self, error_detail: Any) -> None:
        for detail in as_list(error_detail):
            if not isinstance(detail, dict):
                continue
            for error in as_list(detail.get("error")):
                code = node_attr(error, "code")
                if code is not None and not _ERROR_CODE_RE.match(str(code)):
                    self.errors.append("Invalid error code format")
                    return

    def equipment(self, equipment: Any) -> None:
        for item in as_list(equipment):
            attrs = item.get("attr", {}) if isinstance(item, dict) else {}
            for name, value in attrs.items():
                if _MARKUP_RE.search(str(value)):
                    self.errors.append(f"Invalid equipment {name}")
                    return

    def slots(self, openslots: Any) -> None:
        if not isinstance(openslots, dict) or "noslots" in openslots:
            return
        for slot in as_list(openslots.get("slot")):
            if not isinstance(slot, dict):
                continue
            date = node_attr(slot, "date", node_attr(slot, "DATE"))
            if date is not None and not _SLOT_DATE_RE.match(str(date)):
                self.errors.append("Invalid slot date format")
                return
            for time in as_list(slot.get("time", slot.get("TIME"))):
                capacity = node_attr(time, "value", node_attr(time, "VALUE"))
                if capacity is not None and not _NUMERIC_RE.match(str(capacity)):
                    self.errors.append("Invalid time slot value")
                    return


def validate_response(kind: ResponseKind | str, document: Any) -> ValidationReport:
    """Screen a parsed response of the given kind.

    Args:
        kind: ``ResponseKind`` or its string value.
        document: Parsed document as returned by ``xml_tree.parse``.

    Returns:
        ValidationReport; ``valid`` is False whenever any rule fails.
    """
    try:
        kind = ResponseKind(kind)
    except ValueError:
        return ValidationReport(False, [f"Unknown response kind: {kind}"])

    if not isinstance(document, dict) or not isinstance(document.get("message"), dict):
        return ValidationReport(False, ["Missing root message element"])

    message = document["message"]
    if not any(name in message for name in STATUS_INDICATORS[kind]):
        return ValidationReport(False, [f"Missing status indicator in {kind.value} response"])

    screen = _Screen()
    screen.strings(message, STRING_FIELDS[kind])

    if kind in (ResponseKind.VALIDATION, ResponseKind.SCHEDULING) and "address" in message:
        screen.address(message["address"])
    if kind is ResponseKind.VALIDATION and "error-detail" in message:
        screen.error_detail(message["error-detail"])
    if kind is ResponseKind.SCHEDULING:
        equipments = message.get("equipments")
        if isinstance(equipments, dict) and "equipment" in equipments:
            screen.equipment(equipments["equipment"])
        if "openslots" in message:
            screen.slots(message["openslots"])

    if screen.errors:
        logger.debug("%s response rejected: %s", kind.value, screen.errors)
        return ValidationReport(False, screen.errors)
    return ValidationReport(True)


class ResponseValidator:
    """Stateful wrapper keeping the errors of its own most recent call.

    Each instance owns its error list, so separate callers never observe
    each other's results.
    """

    def __init__(self) -> None:
        self._last = ValidationReport(True)

    def validate(self, kind: ResponseKind | str, document: Any) -> bool:
        self._last = validate_response(kind, document)
        return self._last.valid

    def get_errors(self) -> list[str]:
        return list(self._last.errors)

    def get_last_error(self) -> str:
        return self._last.last_error
