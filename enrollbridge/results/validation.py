"""Account validation response interpretation.

The validate endpoint signals the same business outcome in several ways
(enrollment status codes, enrollment status letters, error-detail codes,
participant types). ``ValidationResult`` resolves them once, at construction,
in a fixed precedence order:

1. Already enrolled: enroll-status ``02`` or error code ``03``. Terminal.
2. Medical condition: error code ``21``. The account is *valid* but the
   applicant must acknowledge the medical-condition terms.
3. Error response: enroll-status ``-1`` with an error code, mapped through
   ``ERROR_MESSAGES``.
4. Corporate account: participant type other than ``01`` (residential).
5. Enrollment status letters ``A``/``P``/``S``/``N``/``E``.
6. Fallback on ``01`` / ``valid`` / ``prospect`` markers.
"""

import logging

from enrollbridge.xml_tree import as_list, node_attr, node_has_value, node_value

logger = logging.getLogger(__name__)

ENROLL_STATUS_ELIGIBLE = "01"
ENROLL_STATUS_ENROLLED = "02"
ENROLL_STATUS_ERROR = "-1"
ERROR_ALREADY_ENROLLED = "03"
ERROR_MEDICAL_CONDITION = "21"
RESIDENTIAL_PART_TYPE = "01"

ALREADY_ENROLLED_MESSAGE = (
    "We're sorry, the customer information you entered has already been enrolled. "
    "If you would like to schedule an appointment, please use the scheduling form."
)
CORPORATE_ACCOUNT_MESSAGE = (
    "Our records indicate that the Account Number you entered is for a Corporate "
    "Account. Please contact customer service for business enrollment."
)
UNEXPECTED_FORMAT_MESSAGE = "Unexpected response format"

ERROR_MESSAGES: dict[str, str] = {
    "001": "Account not found. Please verify your account number and try again.",
    "002": "ZIP code does not match account records.",
    "003": "Account is not eligible for this program.",
    "004": "Account is already enrolled in this program.",
    "005": "Account has been suspended. Please contact customer service.",
    "006": "Invalid account type for this program.",
}

# Blocking enrollment status letters: (is_valid, message). N and E keep the
# marker-based outcome.
ENROLL_STATUS_LETTERS: dict[str, tuple[bool, str]] = {
    "A": (False, "This account is already enrolled in the program."),
    "P": (False, "This account has a pending enrollment. Please wait for "
                 "confirmation or contact customer service."),
    "S": (False, "This account enrollment has been suspended. Please contact "
                 "customer service."),
}


def error_code_message(code: str) -> str:
    """User-facing message for a platform error code."""
    return ERROR_MESSAGES.get(
        code,
        f"Validation error (Code: {code}). Please try again or contact customer service.",
    )


class ValidationResult:
    """Read-only view over a parsed ``/prospects/validate.xml`` response."""

    def __init__(self, document: dict):
        self._root: dict = {}
        self._is_valid = False
        self._error_message = ""
        self._is_already_enrolled = False
        self._has_medical_condition = False
        self._requires_medical_acknowledgment = False

        message = document.get("message") if isinstance(document, dict) else None
        if isinstance(message, dict):
            self._root = message
            self._interpret()
        else:
            self._error_message = UNEXPECTED_FORMAT_MESSAGE

    def _interpret(self) -> None:
        enroll_status = self.enroll_status
        codes = self.error_codes
        error_code = self.error_code

        if enroll_status == ENROLL_STATUS_ENROLLED or ERROR_ALREADY_ENROLLED in codes:
            self._is_already_enrolled = True
            self._error_message = ALREADY_ENROLLED_MESSAGE
            return

        if ERROR_MEDICAL_CONDITION in codes:
            self._has_medical_condition = True
            self._requires_medical_acknowledgment = True
            self._is_valid = True
            return

        if enroll_status == ENROLL_STATUS_ERROR and error_code:
            self._error_message = error_code_message(error_code)
            return

        part_type = self.part_type
        if part_type and part_type != RESIDENTIAL_PART_TYPE:
            self._error_message = CORPORATE_ACCOUNT_MESSAGE
            return

        letter = enroll_status.upper()
        if letter in ENROLL_STATUS_LETTERS:
            self._is_valid, self._error_message = ENROLL_STATUS_LETTERS[letter]
            if letter == "A":
                self._is_already_enrolled = True
            return

        self._is_valid = (
            enroll_status == ENROLL_STATUS_ELIGIBLE
            or self.status.lower() == "valid"
            or self.message_type.lower() == "prospect"
        )

    # ── Outcome ──

    def is_valid(self) -> bool:
        return self._is_valid

    @property
    def error_message(self) -> str:
        return self._error_message

    def is_already_enrolled(self) -> bool:
        return self._is_already_enrolled

    def has_medical_condition(self) -> bool:
        return self._has_medical_condition

    def requires_medical_acknowledgment(self) -> bool:
        return self._requires_medical_acknowledgment

    # ── Raw fields ──

    def _field(self, name: str) -> str:
        return node_value(self._root.get(name), "")

    @property
    def message_type(self) -> str:
        return self._field("messagetype")

    @property
    def status(self) -> str:
        return self._field("status")

    @property
    def enroll_status(self) -> str:
        return self._field("enroll-status")

    def has_enroll_status(self) -> bool:
        return node_has_value(self._root.get("enroll-status"))

    @property
    def error_codes(self) -> list[str]:
        """Every ``error-detail/error[@code]`` in document order."""
        codes = []
        for detail in as_list(self._root.get("error-detail")):
            if not isinstance(detail, dict):
                continue
            for error in as_list(detail.get("error")):
                code = node_attr(error, "code")
                if code:
                    codes.append(str(code))
        return codes

    @property
    def error_code(self) -> str:
        codes = self.error_codes
        return codes[0] if codes else ""

    @property
    def ca_no(self) -> str:
        return self._field("caNo")

    @property
    def comverge_no(self) -> str:
        return self._field("comvergeno")

    @property
    def part_type(self) -> str:
        return self._field("partType")

    @property
    def first_name(self) -> str:
        return self._field("fname")

    @property
    def last_name(self) -> str:
        return self._field("lname")

    @property
    def email(self) -> str:
        return self._field("email")

    @property
    def address(self) -> dict[str, str]:
        address = self._root.get("address")
        address = address if isinstance(address, dict) else {}
        return {
            part: node_value(address.get(part), "")
            for part in ("street", "city", "state", "zip")
        }

    @property
    def formatted_address(self) -> str:
        addr = self.address
        if not addr["street"]:
            return ""
        return f"{addr['street']}, {addr['city']}, {addr['state']} {addr['zip']}"

    def to_dict(self) -> dict:
        return {
            "is_valid": self._is_valid,
            "error_message": self._error_message,
            "message_type": self.message_type,
            "status": self.status,
            "enroll_status": self.enroll_status,
            "ca_no": self.ca_no,
            "comverge_no": self.comverge_no,
            "part_type": self.part_type,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "address": self.address,
            "error_code": self.error_code,
            "is_already_enrolled": self._is_already_enrolled,
            "has_medical_condition": self._has_medical_condition,
            "requires_medical_acknowledgment": self._requires_medical_acknowledgment,
        }
