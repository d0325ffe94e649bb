"""Structured event logging for gridcalc.

Provides the event schema, a filesystem NDJSON sink, and emit helpers
that never raise.
"""

from gridcalc.logging.events import (
    EventLevel,
    EventType,
    GridEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    make_sheet_event,
    set_project_dir,
)
from gridcalc.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GridEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "get_sink",
    "make_sheet_event",
    "set_project_dir",
]
