"""
Structured JSON logging for the mill kernel.

Every kernel logger lives under ``mill_kernel``.  One JSON line per record:
``ts``, ``level``, ``logger``, ``message``, then the event fields bound in
LogContext, then the record's ``extra`` values.  A logged exception adds an
``error`` object; kernel exceptions contribute their code and public fields.

configure_logging() owns exactly one handler on the ``mill_kernel`` logger.
Calling it again swaps that handler and level; foreign handlers (test
capture, host application) are left alone.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "ensure_logging_configured",
    "kernel_handlers",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "mill_kernel"

# ---------------------------------------------------------------------------
# Event context
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})
_event_fields: ContextVar[Mapping[str, str]] = ContextVar("mill_log_fields", default=_EMPTY)


class LogContext:
    """
    Event-scoped log fields, carried per thread / task in one ContextVar.

    Only the names in FIELDS are accepted.  Values are stored as strings;
    None means "leave unchanged".
    """

    FIELDS = ("correlation_id", "event_key", "actor_id", "warehouse_id")

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(_event_fields.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        _event_fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_event_fields.get())

    @classmethod
    def clear(cls) -> None:
        _event_fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Overlay ``fields`` for the duration of the block."""
        token = _event_fields.set(cls._merged(fields))
        try:
            yield
        finally:
            _event_fields.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
        # Kernel exceptions keep their context (available, requested, ...) as attributes.
        error.update(
            {k: v for k, v in vars(exc).items() if not k.startswith("_") and k not in error}
        )
    return error


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_payload(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``mill_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_HANDLER_MARK = "_mill_kernel_handler"


def kernel_handlers() -> list[logging.Handler]:
    """Handlers installed by configure_logging() (zero or one)."""
    return [h for h in logging.getLogger(_LOGGER_PREFIX).handlers if getattr(h, _HANDLER_MARK, False)]


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the structured handler on ``mill_kernel``, replacing the one a
    previous call installed.  Returns the installed handler.
    """
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    for previous in kernel_handlers():
        if previous is not handler:
            kernel_logger.removeHandler(previous)

    installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    installed.setFormatter(StructuredFormatter())
    setattr(installed, _HANDLER_MARK, True)
    if installed not in kernel_logger.handlers:
        kernel_logger.addHandler(installed)

    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    return installed


def ensure_logging_configured() -> None:
    """Install the default stderr handler unless one is already configured."""
    if not kernel_handlers():
        configure_logging()
