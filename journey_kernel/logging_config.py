"""
Module: journey_kernel.logging_config
Responsibility: One-line JSON log records for the journey kernel, enriched
    with the journey scope (tenant, actor, instance, approval) of the
    current call.
Architecture position: Kernel > cross-cutting.  Imported by services;
    imports nothing from the kernel itself.

Every record carries ``ts``, ``level``, ``logger`` and ``message``, then the
bound scope fields, then any ``extra=`` keys.  Kernel errors logged with
``exc_info`` contribute their ``code`` and public attributes as ``exc_*``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "journey_kernel"

SCOPE_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "journey_instance_id",
    "approval_request_id",
    "trace_id",
)

_scope: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"journey_log_{field}", default=None) for field in SCOPE_FIELDS
}


class LogContext:
    """
    Journey scope attached to every record logged in the current context.

    Values live in ContextVars, so threads and asyncio tasks each see their
    own scope.  Values are stored as strings.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Overwrite the given scope fields; None values are left alone."""
        unknown = fields.keys() - _scope.keys()
        if unknown:
            raise TypeError(f"Unknown log scope fields: {sorted(unknown)}")
        for field, value in fields.items():
            if value is not None:
                _scope[field].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            field: value
            for field, var in _scope.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _scope.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Scope fields for the duration of a ``with`` block.

        Previous values come back on exit.  None values and names outside
        SCOPE_FIELDS are ignored so callers can pass optional ids through.
        """
        tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = [
            (_scope[field], _scope[field].set(str(value)))
            for field, value in fields.items()
            if value is not None and field in _scope
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if attr.startswith("_") or attr in ("args", "code"):
            continue
        fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for attr, value in vars(record).items():
            if attr not in _RECORD_ATTRS:
                payload.setdefault(attr, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.approval_gate")``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


# Marks the handler installed by configure_logging; other handlers (test
# capture, host application) are left untouched.
_INSTALLED_MARK = "_journey_structured_handler"
_setup_lock = threading.Lock()


def _installed(logger: logging.Logger) -> bool:
    return any(getattr(h, _INSTALLED_MARK, False) for h in logger.handlers)


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the kernel namespace once per process."""
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    with _setup_lock:
        if _installed(namespace):
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        setattr(target, _INSTALLED_MARK, True)
        namespace.addHandler(target)
        namespace.setLevel(level)
        namespace.propagate = False


def reset_logging() -> None:
    """Detach every handler from the kernel namespace.  Test helper."""
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    with _setup_lock:
        for handler in list(namespace.handlers):
            namespace.removeHandler(handler)
        namespace.setLevel(logging.WARNING)
