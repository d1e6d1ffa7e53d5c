"""Sanitization of sensitive values before they reach logs or spans.

Error context and SQL parameters are copied and redacted at logging time;
the original data is never modified. Field names are matched against a
default pattern plus ``log_config.sensitive_fields``.

User e-mail addresses are personal data. They are not redacted outright,
because support needs to correlate a failing request with a user, but they are
masked (``j***@example.com``) wherever they end up in a log entry or span tag.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from tracetour.core.config import get_settings
from tracetour.core.constants import REDACTED
from tracetour.core.exceptions import TraceTourError

DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|secret|token|api[_-]?key|authorization|credential|"
    r"private[_-]?key|session|connection[_-]?string)",
    re.IGNORECASE,
)

EMAIL_FIELD_PATTERN: Final[Pattern[str]] = re.compile(r"e-?mail", re.IGNORECASE)

MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _configured_sensitive_fields() -> tuple[str, ...]:
    return tuple(f.lower() for f in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates a secret.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True if the value should be redacted.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True
    field_lower = field_name.lower()
    return any(f in field_lower for f in _configured_sensitive_fields())


def mask_email(email: str) -> str:
    """Mask the local part of an e-mail address, keeping its first character.

    Strings that do not look like an address are returned redacted.
    """
    local, sep, domain = email.partition("@")
    if not sep or not local or not domain:
        return REDACTED
    return f"{local[0]}***@{domain}"


def sanitize_value(value: Any, field_name: str = "", depth: int = 0) -> Any:
    """Sanitize a value if it appears to be sensitive.

    Nested dicts, lists and tuples are handled recursively up to MAX_DEPTH.

    Args:
        value: The value to potentially sanitize.
        field_name: The field name for context.
        depth: Current recursion depth.

    Returns:
        Any: Sanitized copy, or the original value if nothing is sensitive.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name:
        if is_sensitive_field(field_name):
            return REDACTED
        if isinstance(value, str) and EMAIL_FIELD_PATTERN.search(field_name):
            return mask_email(value)

    if isinstance(value, dict):
        return {k: sanitize_value(v, str(k), depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive fields redacted or masked."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_error_context(
    error: BaseException, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Create sanitized error context for logging.

    Application errors contribute their code, severity, fingerprint and
    structured context; any other exception contributes its type and message.

    Args:
        error: The exception to describe.
        context: Additional context to include (will be sanitized).

    Returns:
        dict[str, Any]: Sanitized error context safe for logging.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if isinstance(error, TraceTourError):
        error_context.update(
            {
                "error_code": error.error_code,
                "severity": error.severity.value,
                "fingerprint": error.fingerprint,
                "error.notify": error.should_notify,
            }
        )
        if error.context:
            error_context["error_context"] = sanitize_dict(error.context)
        if error.cause is not None:
            error_context["cause_type"] = type(error.cause).__name__
            error_context["cause_message"] = str(error.cause)

    if context:
        error_context.update(sanitize_dict(context))

    return error_context


def sanitize_sql_params(params: object) -> object:
    """Sanitize SQL query parameters for safe logging.

    Named parameters are sanitized by key. Positional parameters carry no
    names, so strings among them that look like e-mail addresses are masked.
    Unknown formats are redacted.
    """
    if params is None:
        return None
    if isinstance(params, dict):
        return sanitize_dict(params)
    if isinstance(params, (list, tuple)):
        masked = [
            mask_email(p) if isinstance(p, str) and "@" in p else p for p in params
        ]
        return type(params)(masked)
    return REDACTED
