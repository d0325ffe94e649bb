"""Event schema and module-level emit helpers.

Events are pydantic models written one per line to the project log.
Timestamps are UTC ISO-8601 with a ``Z`` suffix.  The ``emit`` helpers
never raise.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Commands
    command_applied = "command_applied"
    command_rejected = "command_rejected"
    formula_error = "formula_error"

    # Sheet lifecycle
    sheet_created = "sheet_created"
    sheet_loaded = "sheet_loaded"
    sheet_saved = "sheet_saved"
    sheet_deleted = "sheet_deleted"

    # Export
    csv_exported = "csv_exported"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

INVALID_REFERENCE = "invalid_reference"
UNSUPPORTED_COMMAND = "unsupported_command"
INVALID_PAYLOAD = "invalid_payload"
UNRECOGNIZED_TEXT = "unrecognized_text"


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridEvent(BaseModel):
    """One line of the event log."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def make_sheet_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    sheet_id: str,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> GridEvent:
    """Build an event attributed to one sheet."""
    ctx: dict[str, Any] = {"sheet_id": sheet_id}
    if extra:
        ctx.update(extra)
    return GridEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Project attachment
# ---------------------------------------------------------------------------

# Set by ``set_project_dir``; until then ``emit()`` discards events.
_sink: Any = None  # EventSink | None
_project_dir: Path | None = None


def set_project_dir(project_dir: Path | str | None) -> None:
    """Point the event log at *project_dir* (``None`` detaches it).

    The CLI calls this per command and the server once at startup.
    Sink options come from the project config.
    """
    global _sink, _project_dir
    from gridcalc.config import load_config
    from gridcalc.logging.sink import EventSink

    if project_dir is None:
        _sink = None
        _project_dir = None
        return

    _project_dir = Path(project_dir)
    cfg = load_config(_project_dir)
    _sink = EventSink(
        _project_dir,
        fsync=bool(cfg.get("logging_fsync", False)),
        tail_bytes=int(cfg["logging_tail_bytes"]),
    )


def get_sink() -> Any:
    """The attached :class:`EventSink`, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Emitting
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Report a logging failure on stderr, at most once a minute."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts and now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    print(f"[gridcalc] {msg}", file=sys.stderr)


def emit(event: GridEvent) -> None:
    """Append *event* to the project log, if one is attached.

    A failing write is reported on stderr and otherwise ignored: the
    command that produced the event has already succeeded.
    """
    sink = _sink
    if sink is None:
        return
    try:
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    emit(GridEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=dict(context or {}),
        error_code=error_code,
    ))


def emit_info(
    event_type: EventType, message: str, context: dict[str, Any] | None = None
) -> None:
    _emit_at(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code)
