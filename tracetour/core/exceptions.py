"""Structured exception hierarchy for consistent error handling.

Every error the service raises on purpose derives from ``TraceTourError``.
Each carries an error code, a severity and structured context, and the
severity decides whether the error is alert-worthy (``should_notify``). That
flag ends up as ``notify`` in problem responses and ``error.notify`` in logs
and spans, and external alerting keys off it.

Taxonomy:
- ``ValidationError``: malformed input, never alerts
- ``NotFoundError``: missing entity, never alerts
- ``ConflictError``: duplicate entity, never alerts
- ``InternalError``: store/cache/backend failure, always alerts
- ``PanicRecoveredError``: an unexpected failure caught by the recovery
  middleware, always alerts
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    CONFLICT = "CONFLICT"
    """The resource already exists or collides with existing state."""

    CACHE_ERROR = "CACHE_ERROR"
    """The cache backend failed or was unreachable."""

    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    """The client went away before the request finished."""

    PANIC_RECOVERED = "PANIC_RECOVERED"
    """An unhandled failure reached the recovery middleware."""


class Severity(Enum):
    """Severity levels used to decide on alerting."""

    LOW = "LOW"
    """Expected errors caused by the caller (bad input, missing entities)."""

    MEDIUM = "MEDIUM"
    """Degraded behaviour that does not need immediate attention."""

    HIGH = "HIGH"
    """Backend failures that need attention."""

    CRITICAL = "CRITICAL"
    """Unhandled failures; something is broken."""


class TraceTourError(Exception):
    """Base exception class for all application exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash built from the error type, code and raising location.
        """
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "tracetour/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """True for errors that occur during normal operation (LOW/MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_notify(self) -> bool:
        """True when the error should trigger alerts (HIGH/CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(TraceTourError):
    """Exception raised when input validation fails."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(TraceTourError):
    """Exception raised when a requested resource cannot be found."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ConflictError(TraceTourError):
    """Exception raised when a resource already exists (e.g. duplicate e-mail)."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.CONFLICT,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class InternalError(TraceTourError):
    """Exception raised when a backend (store, cache, tracer) fails."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class CacheError(InternalError):
    """Exception raised when the cache backend fails on a write or delete."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CACHE_ERROR, context, cause)


class RequestCancelledError(TraceTourError):
    """Exception raised when work is abandoned because the client disconnected."""

    def __init__(
        self,
        message: str = "Request was cancelled by the client",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.REQUEST_CANCELLED, message, Severity.MEDIUM, context
        )


class PanicRecoveredError(TraceTourError):
    """Wraps an unexpected failure caught by the recovery middleware.

    Any value may have been raised deep in the call tree; the original
    exception is kept as ``cause`` and its type/value are copied to context.
    """

    def __init__(self, original: BaseException) -> None:
        super().__init__(
            ErrorCode.PANIC_RECOVERED,
            f"panic recovered: {original!r}",
            Severity.CRITICAL,
            {
                "panic.type": type(original).__name__,
                "panic.value": str(original),
            },
            original,
        )
