"""Redaction helpers for anything that reaches a log line."""

import re
from typing import Any

CREDENTIAL_PARAMS = frozenset({"pswd"})
"""Request parameters that must never be logged or sent in a URL."""

_CREDENTIAL_QUERY_RE = re.compile(r"(?i)\b(pswd|password)=([^&\s]+)")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def has_credentials(params: dict[str, Any]) -> bool:
    return any(name in params for name in CREDENTIAL_PARAMS)


def redact_params(params: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``params`` without credential parameters."""
    return {k: v for k, v in params.items() if k not in CREDENTIAL_PARAMS}


def redact_text(value: str | None) -> str:
    """Return ``value`` with credential query fragments and emails masked."""
    if not value:
        return ""
    text = str(value)
    text = _CREDENTIAL_QUERY_RE.sub(lambda match: f"{match.group(1)}=***", text)
    return _EMAIL_RE.sub("***@***", text)


def mask_identifier(value: str | None) -> str:
    """Return a masked account identifier suitable for log output."""
    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    return f"***{trimmed[-4:]}"
