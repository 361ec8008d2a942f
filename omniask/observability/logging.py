"""
OmniAsk - Structured JSON Logging

Structured logging with automatic request context injection.

Features:
- JSON-formatted logs for easy parsing
- Request context (request_id, trace_id, caller_id, provider) from contextvars
- Log level and format configurable via LOG_LEVEL / LOG_FORMAT
- Redaction of secret-looking fields and bearer values

Usage:
    from omniask.observability.logging import setup_logging, get_logger

    setup_logging(level="INFO")

    logger = get_logger(__name__)
    logger.info("Stream finished", provider="claude", chunks=42)

Output:
    {"timestamp": "2024-01-15T10:30:00+00:00", "level": "INFO",
     "logger": "omniask.api.routes.stream", "message": "Stream finished",
     "provider": "claude", "chunks": 42, "request_id": "req_xyz"}
"""

import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

_request_context: ContextVar[Optional["LogContext"]] = ContextVar("log_context", default=None)

# Attributes every LogRecord carries; anything else was passed as extra
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "taskName",
}


@dataclass
class LogContext:
    """
    Correlation fields for the current request.

    Stored in a ContextVar so concurrent streams never see each other's ids.
    """
    request_id: str = ""
    trace_id: str = ""
    span_id: str = ""
    caller_id: str = ""
    provider: str = ""
    endpoint: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _request_context.get()

    @classmethod
    def set_current(cls, ctx: "LogContext"):
        _request_context.set(ctx)

    @classmethod
    def clear(cls):
        _request_context.set(None)

    def update(self, **kwargs):
        for key, value in kwargs.items():
            if key != "extra" and hasattr(self, key):
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> Dict[str, Any]:
        result = {
            key: value
            for key, value in (
                ("request_id", self.request_id),
                ("trace_id", self.trace_id),
                ("span_id", self.span_id),
                ("caller_id", self.caller_id),
                ("provider", self.provider),
                ("endpoint", self.endpoint),
            )
            if value
        }
        result.update(self.extra)
        return result


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection and redaction.

    Field names containing any SENSITIVE_FIELDS entry are replaced with
    "[REDACTED]", as are string values that carry a bearer token.
    """

    SENSITIVE_FIELDS = {
        "password", "secret", "token", "api_key", "apikey",
        "authorization", "credential", "private_key",
    }

    REDACTED = "[REDACTED]"

    def __init__(
        self,
        include_location: bool = False,
        redact_sensitive: bool = True,
    ):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_location:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        ctx = LogContext.get_current()
        if ctx:
            log_data.update(ctx.to_dict())

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            if self.redact_sensitive:
                value = self._redact(key, value)
            log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)

    def _redact(self, key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            return self.REDACTED
        if isinstance(value, str) and value.lower().startswith("bearer "):
            return self.REDACTED
        return value


class StructuredLogger:
    """
    Logger wrapper that takes structured fields as keyword arguments.

        logger.warning("Upstream rejected request", provider="gemini", status_code=429)
    """

    _PASSTHROUGH = {"exc_info", "stack_info", "stacklevel"}

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return

        extra = dict(kwargs.pop("extra", None) or {})
        for key in [k for k in kwargs if k not in self._PASSTHROUGH]:
            extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


_logging_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """
    Setup structured logging.

    Call once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON formatter (True) or plain text formatter (False)
        include_location: Include filename:lineno in logs
        redact_sensitive: Redact secret-looking fields
    """
    global _logging_configured

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_output:
        handler.setFormatter(JSONFormatter(
            include_location=include_location,
            redact_sensitive=redact_sensitive,
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    root_logger.addHandler(handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger, configuring logging from LOG_LEVEL and
    LOG_FORMAT on first use.
    """
    if not _logging_configured:
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )
    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Async context manager that logs how long an operation took.

        async with TimedOperation("upstream_stream", logger, provider="claude"):
            ...
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        log_level: int = logging.DEBUG,
        **fields: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger("omniask.timing")
        self.log_level = log_level
        self.fields = fields
        self.start_time = 0.0
        self.duration_ms: Optional[float] = None

    async def __aenter__(self) -> "TimedOperation":
        self.start_time = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        fields = dict(self.fields, operation=self.operation, duration_ms=round(self.duration_ms, 2))

        if exc_type is not None and not issubclass(exc_type, GeneratorExit):
            self.logger._log(logging.WARNING, f"{self.operation} failed", error_type=exc_type.__name__, **fields)
        else:
            self.logger._log(self.log_level, f"{self.operation} completed", **fields)
