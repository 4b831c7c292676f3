# src/logging/context.py - v1
"""Contextual logging support: attach session_id, fingerprint and operation to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per analysis request.
_session_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    session_id: str | None = None
    fingerprint: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        session_id=_session_id.get(),
        fingerprint=_fingerprint.get(),
        operation=_operation.get(),
    )


def set_request_context(session_id: str, fingerprint: str | None = None) -> None:
    """Set request-level context (called once per get_or_compute)."""
    _session_id.set(session_id)
    _fingerprint.set(fingerprint)


def set_operation_context(operation: str | None) -> None:
    """Set the current operation (lookup, compute, enrich, ...)."""
    _operation.set(operation)


def clear_context() -> None:
    """Reset all context variables."""
    _session_id.set(None)
    _fingerprint.set(None)
    _operation.set(None)
