"""Redaction helpers for safe logging.

Customer phone numbers, usernames, emails and message bodies arrive in every
webhook. None of them may reach the logs: identifiers are hashed with
`hash_identifier` and free text is reduced to its length.
"""

import hashlib
import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_HANDLE_PATTERN = re.compile(r"(?<![\w.])@[A-Za-z0-9_.]{2,30}")

_REDACTED = "[REDACTED]"


def hash_identifier(value: str) -> str:
    """Non-reversible short hash of an external identifier (first 12 hex chars of sha256)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def id_prefix(value: str | None, length: int = 8) -> str:
    """Leading characters of a platform message id, enough to grep for."""
    if not value:
        return "none"
    return value[:length]


def redact_string(value: str) -> str:
    """Redact phone, email and @handle patterns from a string."""
    result = _EMAIL_PATTERN.sub(_REDACTED, value)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    result = _HANDLE_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # structure only
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
