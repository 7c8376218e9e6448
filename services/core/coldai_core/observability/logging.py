"""Structured logging for the Cold AI dashboard services.

Both the API and the worker log single-line JSON so a prospect can be
followed across services by ``user_id``, ``prospect_id`` and
``message_log_id``. Extras carrying credentials are masked and long
payloads (generated messages, research blobs) are clipped before they reach
the log pipeline.

Usage:
    logger = get_logger(__name__)
    context = RequestContext(user_id=user_id, trigger="poll")
    logger.warning("Prospect refresh failed", context=context.bind(attempt=2))
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "coldai-core"

# Extras whose values never leave the process
SENSITIVE_FIELDS = frozenset({
    "session", "session_id", "cookie", "authorization",
    "api_key", "access_token", "password", "service_role_key",
})
REDACTED = "[redacted]"

# Longest string extra kept verbatim
MAX_FIELD_CHARS = 500

# Chatty third-party loggers held at WARNING unless the root is stricter
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "celery.redirected")


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON document per line.

    Base keys are timestamp, level, logger, message and service. Warnings
    and above also carry their source location. Every other attribute on
    the record is copied as an extra field.
    """

    # LogRecord attributes that are not user supplied extras
    RESERVED_FIELDS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        max_field_chars: int = MAX_FIELD_CHARS,
    ):
        """Initialize the formatter.

        Args:
            service_name: Stamped on every line, e.g. ``coldai-worker``.
            max_field_chars: String extras longer than this are clipped.
        """
        super().__init__()
        self.service_name = service_name
        self.max_field_chars = max_field_chars

    def format(self, record: logging.LogRecord) -> str:
        """Render one record.

        Args:
            record: The record emitted by a stdlib or structured logger.

        Returns:
            A JSON string without a trailing newline.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key in self.RESERVED_FIELDS or key.startswith("_"):
                continue
            entry[key] = self._field_value(key, value)

        return json.dumps(entry)

    def _field_value(self, key: str, value: Any) -> Any:
        if key.lower() in SENSITIVE_FIELDS:
            return REDACTED
        if isinstance(value, str):
            return self._clip(value)
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError):
            return self._clip(str(value))
        # Large structures (research data) are logged as a clipped string
        if len(encoded) > self.max_field_chars:
            return self._clip(encoded)
        return value

    def _clip(self, text: str) -> str:
        if len(text) <= self.max_field_chars:
            return text
        dropped = len(text) - self.max_field_chars
        return f"{text[:self.max_field_chars]}... [{dropped} more chars]"


@dataclass(frozen=True)
class RequestContext:
    """Fields attached to every log line of one dashboard operation.

    Attributes:
        request_id: HTTP request id, when the operation is request scoped.
        user_id: Dashboard user the operation runs for.
        prospect_id: Research cache id of the prospect being acted on.
        message_log_id: Message generation log being sent or regenerated.
        trigger: What started a prospect refresh (initial, realtime, poll).
        extra: Additional free-form fields.
    """

    request_id: Optional[str] = None
    user_id: Optional[str] = None
    prospect_id: Optional[int] = None
    message_log_id: Optional[int] = None
    trigger: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def bind(self, **values: Any) -> "RequestContext":
        """Copy this context with more fields.

        Known attribute names replace the attribute. Anything else is merged
        into ``extra``.

        Returns:
            A new context; this one is unchanged.
        """
        known = {k: v for k, v in values.items() if k in _CONTEXT_ATTRIBUTES}
        extra = {k: v for k, v in values.items() if k not in _CONTEXT_ATTRIBUTES}
        return replace(self, **known, extra={**self.extra, **extra})

    def to_dict(self) -> dict[str, Any]:
        """Set fields only. Ids of 0 are kept, empty strings are not."""
        result: dict[str, Any] = {}
        for name in ("request_id", "user_id", "trigger"):
            value = getattr(self, name)
            if value:
                result[name] = value
        for name in ("prospect_id", "message_log_id"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        result.update(self.extra)
        return result


_CONTEXT_ATTRIBUTES = frozenset(
    f.name for f in fields(RequestContext) if f.name != "extra"
)


class StructuredLogger:
    """Stdlib logger wrapper whose calls accept a context and keyword fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Prospects refreshed", context=ctx, prospect_count=12)
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        # Explicit keyword fields win over context fields of the same name
        extra = context.to_dict() if context else {}
        extra.update(kwargs)
        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get the structured logger for a module, creating it on first use.

    Args:
        name: Dotted logger name, normally ``__name__``.

    Returns:
        The same instance for every call with the same name.
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Install a single stdout handler on the root logger.

    Called at API startup and from the worker's logging signal. A repeated
    call replaces the handler instead of adding a second one.

    Args:
        level: Log level name, case-insensitive.
        json_format: Emit JSON lines instead of plain text.
        service_name: Service name stamped on every JSON line.
        quiet_loggers: Loggers raised to WARNING so request and SQL chatter
            does not drown dashboard events.

    Raises:
        ValueError: If ``level`` is not a logging level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter(
                f"%(asctime)s - {service_name} - %(name)s - %(levelname)s - %(message)s"
            )
        )
    root_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
