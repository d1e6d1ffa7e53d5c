"""Structured, trace-correlated logging with Loguru.

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: One JSON object per line (staging/production)

Standard library logging (uvicorn, SQLAlchemy, asyncpg) is intercepted and
routed through Loguru so every line shares the same format and context.

Every log entry written from a request path should go through one of the
``log_*_with_trace`` helpers. They attach the ``layer`` that produced the
entry plus the ``trace_id``/``span_id`` of the active span, so a log line can
always be joined with its trace. ``log_error_with_trace`` also stamps
``error.notify``, which is what alerting filters on, and marks the active
span as failed.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Final, Protocol, cast

import orjson
from loguru import logger
from opentelemetry import trace

from tracetour.core.error_context import sanitize_dict, sanitize_error_context
from tracetour.core.observability import current_trace_ids, mark_span_error

if TYPE_CHECKING:
    from loguru import Logger


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """Protocol for log configuration objects."""

    @property
    def log_level(self) -> str: ...

    @property
    def log_formatter_type(self) -> str | None: ...

    @property
    def sensitive_fields(self) -> list[str]: ...


class SettingsProtocol(Protocol):
    """Protocol for settings objects that setup_logging can accept."""

    @property
    def debug(self) -> bool: ...

    @property
    def log_config(self) -> LogConfigProtocol: ...


DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Fields shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "layer",
    "correlation_id",
    "trace_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "error.notify",
)
_SHORTENED_FIELDS: Final[frozenset[str]] = frozenset(
    {"correlation_id", "trace_id", "request_id"}
)


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    if field in _SHORTENED_FIELDS and len(str(value)) > ID_DISPLAY_LENGTH:
        value = str(value)[:ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    elif field == "error.notify":
        value = "notify" if value else "no-notify"
    elif field == "status_code":
        status_str = str(value)
        if status_str.startswith("2"):
            return f"<green>{value}</green>"
        if status_str.startswith(("4", "5")):
            return f"<red>{value}</red>"
    return _escape(value)


def _format_extra_field(key: str, value: object) -> str:
    str_value = str(value)
    if len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Format the extra fields of a record, priority fields first."""
    parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    safe_extra = sanitize_dict(
        {
            k: v
            for k, v in extra.items()
            if k not in PRIORITY_FIELDS and not k.startswith("_") and v is not None
        }
    )
    parts.extend(
        f"<dim>{_format_extra_field(k, v)}</dim>" for k, v in safe_extra.items()
    )
    return parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Format string for Loguru to render.
    """
    try:
        time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        parts = [
            f"<green>{time_str}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
        ]

        if context_parts := _format_context_fields(record.get("extra", {})):
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))
        if record.get("exception"):
            parts.append("\n{exception}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as a single JSON line.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if extra := record.get("extra", {}):
        log_entry.update(
            sanitize_dict({k: v for k, v in extra.items() if not k.startswith("_")})
        )

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return orjson.dumps(log_entry, default=str).decode() + "\n"


def _json_sink(message: object) -> None:
    record = getattr(message, "record", None)
    if record is not None:
        sys.stdout.write(serialize_for_json(record))
        sys.stdout.flush()


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra: dict[str, Any] = {}
        if record.name == "uvicorn.access" and hasattr(record, "scope"):
            scope = record.scope
            extra["method"] = scope.get("method", "")
            extra["path"] = scope.get("path", "")

        logger.opt(depth=depth, exception=record.exc_info).bind(**extra).log(
            level, record.getMessage()
        )


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru with the configured formatter.

    Only the first call has an effect.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or "console"

    if formatter_type == "json":
        logger.add(
            _json_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )

    _state.configured = True


def _trace_fields(layer: str, fields: dict[str, Any]) -> dict[str, Any]:
    trace_id, span_id = current_trace_ids()
    return {"layer": layer, "trace_id": trace_id, "span_id": span_id, **fields}


def log_with_trace(log: Logger, layer: str, message: str, **fields: Any) -> None:
    """Write an INFO entry tagged with the layer and the active trace IDs.

    Args:
        log: Logger to write to, usually the request-scoped one.
        layer: Layer producing the entry (handler, usecase, repository...).
        message: Log message. It is written verbatim, never formatted.
        **fields: Additional structured fields.
    """
    log.opt(depth=1).bind(**_trace_fields(layer, fields)).info(message)


def log_warning_with_trace(
    log: Logger, layer: str, message: str, **fields: Any
) -> None:
    """Write a WARNING entry tagged with the layer and the active trace IDs."""
    log.opt(depth=1).bind(**_trace_fields(layer, fields)).warning(message)


def log_error_with_trace(
    log: Logger,
    layer: str,
    message: str,
    error: BaseException,
    *,
    notify: bool = True,
    span: trace.Span | None = None,
    mark_span: bool = True,
    **fields: Any,
) -> None:
    """Write an ERROR entry and mark the span as failed.

    ``notify`` is written as ``error.notify``; alerting fires only for
    entries where it is true. Expected failures (missing user, bad input)
    pass ``notify=False``.

    Args:
        log: Logger to write to, usually the request-scoped one.
        layer: Layer producing the entry.
        message: Log message. It is written verbatim, never formatted.
        error: The failure being reported.
        notify: Whether the entry should trigger alerts.
        span: Span to mark as failed. Defaults to the active span.
        mark_span: False for failures the operation recovers from; the span
            keeps its status and only the log entry is written.
        **fields: Additional structured fields.
    """
    if mark_span:
        mark_span_error(span or trace.get_current_span(), error)
    error_fields = sanitize_error_context(error)
    error_fields["error.notify"] = notify
    log.opt(depth=1).bind(**_trace_fields(layer, {**error_fields, **fields})).error(
        message
    )
