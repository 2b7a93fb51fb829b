"""
Structured JSON logging for the approval engine.

Every record is one JSON object per line.  Besides the envelope
(``ts``, ``level``, ``logger``, ``message``) a record carries the approval
context bound around the current engine call:

    correlation_id   request id from the caller, or ``sweep-<n>`` per tick
    actor_id         deciding / requesting user id, or ``system``
    approvable_ref   ``<kind>:<id>`` of the request being approved
    approval_id      the approval being decided

Event-specific ``extra=`` fields follow.  An extra overrides a bound context
field of the same name (``approval_created`` reports the new approval, not
the one whose decision created it).  Extras never replace the envelope;
a clashing extra is kept as ``extra_<name>``.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

from hrms_kernel.domain.approval import ActorContext, EntityRef
from hrms_kernel.exceptions import HrmsKernelError

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "approvable_ref",
    "approval_id",
)

SYSTEM_ACTOR = "system"

_ENVELOPE_KEYS = frozenset({"ts", "level", "logger", "message"})

# Copy-on-write: each bind() installs a new dict, never mutates the current one.
_context: ContextVar[Mapping[str, str]] = ContextVar("hrms_log_context", default={})


def _normalize(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    return {k: str(v) for k, v in fields.items() if v is not None}


class LogContext:
    """Approval context attached to every record logged inside a bind()."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None leaves a field as is."""
        _context.set({**_context.get(), **_normalize(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[dict[str, str]]:
        """Set fields on entry, restore the previous context on exit."""
        token = _context.set({**_context.get(), **_normalize(fields)})
        try:
            yield cls.get_all()
        finally:
            _context.reset(token)

    @classmethod
    def for_actor(
        cls,
        actor: ActorContext,
        approvable: EntityRef | None = None,
        approval_id: UUID | None = None,
    ):
        """bind() for an engine call made by ``actor`` on ``approvable``.

        The actor's correlation id wins over an outer one; without it the
        outer id (e.g. the sweep tick) is kept.
        """
        return cls.bind(
            correlation_id=actor.correlation_id,
            actor_id=actor.user_id if actor.user_id is not None else SYSTEM_ACTOR,
            approvable_ref=approvable,
            approval_id=approval_id,
        )


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Engine values in log payloads: ids, dates, statuses, refs, amounts."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, EntityRef, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key in _STDLIB_KEYS:
                continue
            payload[f"extra_{key}" if key in _ENVELOPE_KEYS else key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)

    @staticmethod
    def _error_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        if isinstance(exc, HrmsKernelError):
            fields["exc_code"] = exc.code
            # approval_id, approvable_kind, level, ... as set by the raiser
            for k, v in vars(exc).items():
                if not k.startswith("_") and k != "code":
                    fields[f"exc_{k}"] = v
        return fields


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "hrms_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the hrms_kernel namespace (``batch.scanner`` etc.)."""
    if name == _LOGGER_PREFIX or name.startswith(f"{_LOGGER_PREFIX}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Send engine logs to ``handler`` (default: a stream on stderr).

    Only the first call takes effect.  ``level`` accepts a number or a
    name such as ``"DEBUG"``.
    """
    global _configured
    resolved = _resolve_level(level)
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(resolved)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
