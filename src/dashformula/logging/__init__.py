"""Structured event logging for dashformula.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from dashformula.logging.events import (
    EventLevel,
    EventType,
    FormulaEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    redact_context,
    set_log_dir,
)
from dashformula.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "FormulaEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "get_sink",
    "redact_context",
    "set_log_dir",
]
