"""Internal form fields to enrollment platform parameters.

The platform expects its own terse parameter names (``fname``, ``dayPhone``,
``eqCount-15``...) and a handful of coded values that the form never asks
for directly (contract codes, ownership codes, landlord placeholders). All of
that translation lives here as pure functions over plain dicts.

Two entry points per operation:

- ``map_enrollment`` / ``map_scheduling`` raise ``MissingFieldsError``.
- ``check_enrollment`` / ``check_scheduling`` return a ``MappingResult`` so
  form flows can branch on missing fields without exception handling.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

# ── Lookup tables ──

# Contract codes keyed by "<cycling level>%-<device category>"
CONTRACT_CODES: dict[str, str] = {
    "50%-Pro-VHF": "01",
    "50%-Pro-Z": "02",
    "50%-IT900": "03",
    "50%-DCU": "04",
    "75%-Pro-VHF": "05",
    "75%-Pro-Z": "06",
    "75%-IT900": "07",
    "75%-DCU": "08",
    "100%-Pro-VHF": "09",
    "100%-Pro-Z": "10",
    "100%-IT900": "11",
    "100%-DCU": "12",
    "50%-Business-DCU": "13",
    "50%-Business-IT900": "14",
    "50%-Business-Pro-Z": "15",
    "50%-MMA-IT900": "16",
    "75%-MMA-IT900": "17",
    "100%-MMA-IT900": "18",
    "50%-MMA-DCU": "19",
    "75%-MMA-DCU": "20",
    "100%-MMA-DCU": "21",
}
DEFAULT_CONTRACT_CODE = "09"  # 100%-Pro-VHF

ENROLLMENT_FIELD_MAP: dict[str, str] = {
    # Account
    "utility_no": "utility_no",
    "account_number": "utility_no",
    "cycling_level": "level",
    # Personal
    "first_name": "fname",
    "last_name": "lname",
    # Address
    "street": "address",
    "street2": "address2",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "zip_confirm": "zip",
    # Contact
    "phone": "dayPhone",
    "alt_phone": "evePhone",
    "email": "email",
    # Property
    "ownership": "ownsPrem",
    "thermostat_count": "eqCount-15",
    "promo_code": "pCode",
    # DCU-specific
    "easy_access": "easyAccess",
    "install_time": "installTime",
}

SCHEDULING_FIELD_MAP: dict[str, str] = {
    "schedule_date": "schedule_date",
    "schedule_time": "time",
}

ACCOUNT_FIELD = "accountnumber"
"""Name reported for a missing account in either identifier space."""

REQUIRED_ENROLLMENT_FIELDS: tuple[str, ...] = (
    "utility_no",
    "level",
    "fname",
    "lname",
    "zip",
    "dayPhone",
    "email",
    "ownsPrem",
    "eqCount-15",
)

REQUIRED_SCHEDULING_FIELDS: tuple[str, ...] = ("schedule_date", "time")

ENROLLMENT_CONSTANTS: dict[str, str] = {
    "overrideFlag": "01",
    "noStories": "0",
    "gated": "No",
    "mktSrc": "WEB",
    "val": "val",
}

PROMO_INCLUDE_LIST = frozenset({
    "WEB", "RADIO", "BLOG", "BROCHURE", "BUS", "STOP", "EVENT",
    "FACEBOOK", "FRIEND", "INSTALLER", "NEWSPAPER", "OTHER",
})

FIELD_LABELS: dict[str, str] = {
    "accountnumber": "Account Number",
    "utility_no": "Account Number",
    "level": "Participation Level",
    "fname": "First Name",
    "lname": "Last Name",
    "address": "Street Address",
    "address2": "Address Line 2",
    "city": "City",
    "state": "State",
    "zip": "ZIP Code",
    "dayPhone": "Primary Phone",
    "evePhone": "Secondary Phone",
    "email": "Email Address",
    "ownsPrem": "Lease or Own",
    "eqCount-15": "Number of Thermostats/Units",
    "pCode": "Promo Code",
    "schedule_date": "Appointment Date",
    "time": "Appointment Time",
    "contract": "Contract Type",
}

# Device codes for the dd-15 parameter
DEVICE_DCU = "02"
DEVICE_THERMOSTAT = "05"
LOCATION_INTERIOR = "05"

OWNS_PREMISES = "01"
LEASES_PREMISES = "02"
LANDLORD_PLACEHOLDER_PHONE = "1234567890"

_NON_DIGITS = re.compile(r"\D")
_NON_ZIP = re.compile(r"[^0-9\-]")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class MissingFieldsError(Exception):
    """Required platform parameters were absent or empty after mapping.

    Attributes:
        missing_fields: Platform parameter names, in required-set order.
    """

    def __init__(self, message: str, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(message)


@dataclass
class MappingResult:
    """Outcome of a non-raising mapping call."""

    params: dict[str, str] = field(default_factory=dict)
    missing_fields: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_fields

    @property
    def missing_labels(self) -> list[str]:
        return [get_field_label(name) for name in self.missing_fields]


# ── Value transforms ──


def digits_only(value: Any) -> str:
    return _NON_DIGITS.sub("", str(value))


def _clamp_count(value: Any) -> str:
    match = _LEADING_INT.match(str(value))
    count = int(match.group(1)) if match else 0
    return str(max(1, count))


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


_TRANSFORMS: dict[str, Callable[[Any], Any]] = {
    "cycling_level": lambda v: str(v),
    "state": lambda v: str(v).upper(),
    "phone": digits_only,
    "alt_phone": digits_only,
    "email": lambda v: str(v).strip().lower(),
    "zip": lambda v: _NON_ZIP.sub("", str(v)),
    "zip_confirm": lambda v: _NON_ZIP.sub("", str(v)),
    "thermostat_count": _clamp_count,
}


def transform_value(field_name: str, value: Any) -> Any:
    """Apply the per-field transform for ``field_name`` (trim by default)."""
    return _TRANSFORMS.get(field_name, _trim)(value)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _rename(fields: dict, field_map: dict[str, str]) -> dict[str, Any]:
    """Table-driven rename; the first non-empty writer of a parameter wins."""
    params: dict[str, Any] = {}
    for internal_name, api_name in field_map.items():
        value = fields.get(internal_name)
        if _is_empty(value):
            continue
        if _is_empty(params.get(api_name)):
            params[api_name] = transform_value(internal_name, value)
    return params


# ── Account identifiers ──


def is_alternate_account(account: str) -> bool:
    """True when the identifier is in the X-prefixed alternate space."""
    return account[:1].lower() == "x"


def resolve_account(account: str, params: dict) -> dict:
    """Route an account identifier to ``utility_no`` or ``caNo``.

    Alternate identifiers lose their ``X`` prefix and any non-digits and are
    sent as ``caNo``; standard identifiers are reduced to digits and sent as
    ``utility_no``. The parameter for the other space is always dropped.
    """
    account = str(account or "").strip()
    if is_alternate_account(account):
        params.pop("utility_no", None)
        params["caNo"] = digits_only(account[1:])
    else:
        params.pop("caNo", None)
        params["utility_no"] = digits_only(account)
    return params


def sanitize_account(account: str) -> str:
    """Normalize an identifier while keeping its space (``X`` prefix kept)."""
    account = str(account or "").strip()
    if is_alternate_account(account):
        return "X" + digits_only(account[1:])
    return digits_only(account)


# ── Derived values ──


def get_contract_code(level: Any, device_type: str) -> str:
    """Look up the contract code for a cycling level and device category.

    Args:
        level: Participation level, e.g. ``"75"`` or ``"75%"``.
        device_type: ``"dcu"`` for outdoor switches, anything else is a
            thermostat.

    Returns:
        Two-digit code, ``DEFAULT_CONTRACT_CODE`` for unknown combinations.
    """
    level_str = str(level).strip().rstrip("%")
    category = "DCU" if str(device_type).lower() == "dcu" else "Pro-VHF"
    return CONTRACT_CODES.get(f"{level_str}%-{category}", DEFAULT_CONTRACT_CODE)


def _missing(params: dict, required: tuple[str, ...]) -> list[str]:
    missing = []
    for name in required:
        if name == "utility_no":
            if _is_empty(params.get("utility_no")) and _is_empty(params.get("caNo")):
                missing.append(ACCOUNT_FIELD)
        elif _is_empty(params.get(name)):
            missing.append(name)
    return missing


# ── Enrollment ──


def check_enrollment(fields: dict) -> MappingResult:
    """Map enrollment form data and report missing parameters without raising."""
    params = _rename(fields, ENROLLMENT_FIELD_MAP)

    account = fields.get("utility_no") or fields.get("account_number") or ""
    resolve_account(account, params)

    params["partType"] = "01"
    device_type = str(fields.get("device_type") or "thermostat").lower()
    params["contract"] = get_contract_code(fields.get("cycling_level") or "100", device_type)

    ownership = str(fields.get("ownership") or "own").strip().lower()
    params["ownsPrem"] = LEASES_PREMISES if ownership in ("lease", "rent") else OWNS_PREMISES
    if params["ownsPrem"] == LEASES_PREMISES:
        first = str(fields.get("first_name") or "").replace(" ", "")
        last = str(fields.get("last_name") or "").replace(" ", "")
        params["llordName"] = f"Landlord,{first}{last}"
        params["llordPhone"] = LANDLORD_PLACEHOLDER_PHONE
    else:
        params["llordName"] = ""
        params["llordPhone"] = ""
    params["llordAuth"] = "02"

    for phone_param in ("dayPhone", "evePhone"):
        if phone_param in params:
            params[phone_param] = digits_only(params[phone_param])
    params["dayPhoneExt"] = ""

    params["eqLoc-15"] = LOCATION_INTERIOR
    params.setdefault("eqCount-15", "1")
    if device_type == "dcu":
        params["dd-15"] = DEVICE_DCU
        easy_access = fields.get("easy_access") or "Yes"
        install_time = fields.get("install_time") or "Anytime"
        must_schedule = easy_access == "No" or install_time == "Appointment"
        params["mustSchedule"] = "Y" if must_schedule else "N"
    else:
        params["dd-15"] = DEVICE_THERMOSTAT

    params.update(ENROLLMENT_CONSTANTS)

    return MappingResult(params=params, missing_fields=_missing(params, REQUIRED_ENROLLMENT_FIELDS))


def map_enrollment(fields: dict) -> dict:
    """Map enrollment form data to platform parameters.

    Raises:
        MissingFieldsError: If any required parameter is absent or empty.
    """
    result = check_enrollment(fields)
    if not result.ok:
        raise MissingFieldsError(
            "Missing required fields for enrollment: " + ", ".join(result.missing_fields),
            result.missing_fields,
        )
    logger.debug("Mapped %d enrollment parameters", len(result.params))
    return result.params


# ── Scheduling ──


def check_scheduling(fields: dict) -> MappingResult:
    """Map scheduling form data and report missing parameters without raising."""
    params = _rename(fields, SCHEDULING_FIELD_MAP)
    account = fields.get("account_number") or fields.get("utility_no") or ""
    if account:
        resolve_account(account, params)
    return MappingResult(params=params, missing_fields=_missing(params, REQUIRED_SCHEDULING_FIELDS))


def map_scheduling(fields: dict) -> dict:
    """Map scheduling form data to platform parameters.

    Raises:
        MissingFieldsError: If the appointment date or time is missing.
    """
    result = check_scheduling(fields)
    if not result.ok:
        raise MissingFieldsError(
            "Missing required fields for scheduling: " + ", ".join(result.missing_fields),
            result.missing_fields,
        )
    return result.params


# ── Promo codes and account checks ──


def filter_promo_codes(promo_codes: list[str], utility_prefix: str = "DE") -> list[str]:
    """Keep standard marketing codes and the utility's commercial codes.

    A code is kept when it is in ``PROMO_INCLUDE_LIST`` or starts with
    ``<utility_prefix>C`` (e.g. ``DEC...`` for Delmarva commercial codes).
    """
    commercial_prefix = f"{utility_prefix.upper()}C"
    filtered = []
    for code in promo_codes:
        code = code.strip()
        if not code:
            continue
        upper = code.upper()
        if upper in PROMO_INCLUDE_LIST or upper.startswith(commercial_prefix):
            filtered.append(code)
    return filtered


def check_account_for_utility(account_number: str, utility: str) -> list[dict[str, str]]:
    """Catch accounts entered on the wrong utility's form.

    Pepco accounts are exactly 10 digits; Delmarva accounts are not.

    Returns:
        List of ``{"code", "message"}`` dicts, empty when the account fits.
    """
    account = digits_only(account_number)
    utility = utility.lower()
    errors = []
    if "delmarva" in utility and len(account) == 10:
        errors.append({
            "code": "pepco_account",
            "message": "This appears to be a Pepco account number. "
                       "Please visit the Pepco enrollment page.",
        })
    if "pepco" in utility and len(account) != 10:
        errors.append({
            "code": "delmarva_account",
            "message": "This appears to be a Delmarva Power account number. "
                       "Please visit the Delmarva enrollment page.",
        })
    return errors


def get_field_label(api_field: str) -> str:
    """Human-readable label for a platform parameter name."""
    if api_field in FIELD_LABELS:
        return FIELD_LABELS[api_field]
    return api_field.replace("_", " ").replace("-", " ").title()


def field_mapping_info() -> dict:
    """Describe the mapping tables, for diagnostics and the CLI."""
    return {
        "enrollment": {
            "map": dict(ENROLLMENT_FIELD_MAP),
            "required": list(REQUIRED_ENROLLMENT_FIELDS),
            "contracts": dict(CONTRACT_CODES),
        },
        "scheduling": {
            "map": dict(SCHEDULING_FIELD_MAP),
            "required": list(REQUIRED_SCHEDULING_FIELDS),
        },
    }
