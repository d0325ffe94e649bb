"""Shared service layer for the gridcalc server and CLI.

This module is the single place that opens and persists sheets, applies
commands to them, and reports what happened through the event log.  Both
the FastAPI server and the CLI go through :class:`SheetService`.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from gridcalc.cell_graph import evaluate
from gridcalc.command_parser import parse_command
from gridcalc.commands import Command, describe, parse_command_payload
from gridcalc.config import load_config, sheets_path
from gridcalc.errors import InvalidReference, SheetNotFound, UnsupportedCommand
from gridcalc.executor import apply_command
from gridcalc.export import from_csv, to_csv, workbook_from_json, workbook_to_json
from gridcalc.formulas.parser import validate_formula
from gridcalc.logging.events import (
    INVALID_PAYLOAD,
    INVALID_REFERENCE,
    UNRECOGNIZED_TEXT,
    UNSUPPORTED_COMMAND,
    EventLevel,
    EventType,
    emit,
    emit_warning,
    get_sink,
    make_sheet_event,
)
from gridcalc.sheet import DEFAULT_COLS, DEFAULT_ROWS, Sheet
from gridcalc.storage import SheetStore, YamlSheetStore, sheet_from_record, sheet_to_record
from gridcalc.values import Formula, display_text

logger = logging.getLogger(__name__)

UNRECOGNIZED_MESSAGE = (
    "Sorry, I didn't understand that command. Try phrases like "
    "'set A1 to 100', 'sum A1:A10' or 'copy A1:B2 to D1'."
)

_ID_STRIP_RE = re.compile(r"[^a-z0-9_\-]+")


def _rejection_code(exc: Exception) -> str:
    if isinstance(exc, InvalidReference):
        return INVALID_REFERENCE
    if isinstance(exc, UnsupportedCommand):
        return UNSUPPORTED_COMMAND
    return INVALID_PAYLOAD


class SheetService:
    """Sheet operations over one store.

    Parameters
    ----------
    store : SheetStore
        Where sheet records are kept.
    default_rows, default_cols : int
        Bounds given to newly created sheets.
    autosave : bool
        Persist a sheet after every applied command.
    project_dir : Path | None
        Project root, used to locate the event log.
    """

    def __init__(
        self,
        store: SheetStore,
        *,
        default_rows: int = DEFAULT_ROWS,
        default_cols: int = DEFAULT_COLS,
        autosave: bool = True,
        project_dir: Path | None = None,
    ) -> None:
        self.store = store
        self.default_rows = default_rows
        self.default_cols = default_cols
        self.autosave = autosave
        self.project_dir = project_dir
        self._sheets: dict[str, Sheet] = {}
        self._dirty: set[str] = set()
        self._lock = threading.RLock()

    @classmethod
    def for_project(cls, project_dir: Path, *, autosave: bool = True) -> SheetService:
        """Service over the YAML sheet files of a project directory."""
        project_dir = Path(project_dir).resolve()
        cfg = load_config(project_dir)
        return cls(
            YamlSheetStore(sheets_path(project_dir, cfg)),
            default_rows=int(cfg["default_rows"]),
            default_cols=int(cfg["default_cols"]),
            autosave=autosave,
            project_dir=project_dir,
        )

    # ------------------------------------------------------------------
    # Sheet helpers
    # ------------------------------------------------------------------

    def _get_sheet(self, sheet_id: str) -> Sheet:
        """Return the open sheet, loading it from the store on first use."""
        sheet = self._sheets.get(sheet_id)
        if sheet is not None:
            return sheet
        record = self.store.load(sheet_id)
        if record is None:
            raise SheetNotFound(sheet_id)
        sheet = sheet_from_record(record)
        self._sheets[sheet_id] = sheet
        emit(make_sheet_event(
            EventType.sheet_loaded, EventLevel.info,
            f"Loaded sheet {sheet.name!r}", sheet_id=sheet_id,
        ))
        return sheet

    def _names(self) -> dict[str, str]:
        """Map of sheet id -> display name for every stored sheet."""
        out: dict[str, str] = {}
        for sheet_id in self.store.list_ids():
            if sheet_id in self._sheets:
                out[sheet_id] = self._sheets[sheet_id].name
                continue
            record = self.store.load(sheet_id) or {}
            out[sheet_id] = str(record.get("name") or sheet_id)
        return out

    def _new_id(self, name: str) -> str:
        base = _ID_STRIP_RE.sub("-", name.lower()).strip("-") or "sheet"
        taken = set(self.store.list_ids()) | set(self._sheets)
        candidate = base
        n = 2
        while candidate in taken:
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def _check_name_free(self, name: str) -> None:
        if name in self._names().values():
            raise ValueError(f"Sheet {name!r} already exists")

    def _store_sheet(self, sheet: Sheet) -> None:
        self.store.save(sheet_to_record(sheet))
        self._dirty.discard(sheet.sheet_id)

    @staticmethod
    def _summary(sheet: Sheet) -> dict[str, Any]:
        return {
            "id": sheet.sheet_id,
            "name": sheet.name,
            "n_rows": sheet.n_rows,
            "n_cols": sheet.n_cols,
        }

    # ------------------------------------------------------------------
    # Sheet management (CRUD)
    # ------------------------------------------------------------------

    def list_sheets(self) -> list[dict[str, Any]]:
        """Return summaries (id, name) of every stored sheet."""
        with self._lock:
            return [{"id": sid, "name": name} for sid, name in self._names().items()]

    def create_sheet(self, name: str | None = None) -> dict[str, Any]:
        """Create and persist an empty sheet.  Raises ValueError on duplicate name."""
        with self._lock:
            if name is None:
                name = f"Sheet{len(self.store.list_ids()) + 1}"
            self._check_name_free(name)
            sheet = Sheet(
                self._new_id(name), name,
                n_rows=self.default_rows, n_cols=self.default_cols,
            )
            self._sheets[sheet.sheet_id] = sheet
            self._store_sheet(sheet)
        emit(make_sheet_event(
            EventType.sheet_created, EventLevel.info,
            f"Created sheet {name!r}", sheet_id=sheet.sheet_id,
        ))
        return {"ok": True, **self._summary(sheet)}

    def open_sheet(self, sheet_id: str) -> dict[str, Any]:
        """Load a sheet and return its cells (see :meth:`get_cells`)."""
        return self.get_cells(sheet_id)

    def rename_sheet(self, sheet_id: str, new_name: str) -> dict[str, Any]:
        """Rename a sheet.  Raises ValueError on duplicate name."""
        with self._lock:
            sheet = self._get_sheet(sheet_id)
            old_name = sheet.name
            if new_name != old_name:
                self._check_name_free(new_name)
            sheet.name = new_name
            self._store_sheet(sheet)
        return {"ok": True, "id": sheet_id, "old_name": old_name, "new_name": new_name}

    def duplicate_sheet(self, sheet_id: str, new_name: str | None = None) -> dict[str, Any]:
        """Copy a sheet under a new id and name."""
        with self._lock:
            source = self._get_sheet(sheet_id)
            name = new_name or f"{source.name} (Copy)"
            self._check_name_free(name)
            dup = source.duplicate(self._new_id(name), name)
            self._sheets[dup.sheet_id] = dup
            self._store_sheet(dup)
        emit(make_sheet_event(
            EventType.sheet_created, EventLevel.info,
            f"Duplicated {source.name!r} as {name!r}", sheet_id=dup.sheet_id,
            extra={"source_id": sheet_id},
        ))
        return {"ok": True, **self._summary(dup)}

    def delete_sheet(self, sheet_id: str) -> dict[str, Any]:
        """Delete a sheet.  The last remaining sheet cannot be deleted."""
        with self._lock:
            ids = self.store.list_ids()
            if sheet_id not in ids:
                raise SheetNotFound(sheet_id)
            if len(ids) <= 1:
                raise ValueError("Cannot delete the only sheet")
            self.store.delete(sheet_id)
            self._sheets.pop(sheet_id, None)
            self._dirty.discard(sheet_id)
            remaining = [sid for sid in ids if sid != sheet_id]
        emit(make_sheet_event(
            EventType.sheet_deleted, EventLevel.info,
            f"Deleted sheet {sheet_id!r}", sheet_id=sheet_id,
        ))
        return {"ok": True, "deleted": sheet_id, "remaining": remaining}

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def apply(self, sheet_id: str, command: Command | dict[str, Any]) -> dict[str, Any]:
        """Apply one structured command to a sheet.

        *command* may be a command model or a raw mapping with a ``type``
        tag.  Commands on the service are serialised: each runs to
        completion, recompute included, before the next starts.

        Raises:
            SheetNotFound: If *sheet_id* does not exist.
            InvalidReference: If the command names a bad cell or range.
            UnsupportedCommand: If the command tag is unknown.
            pydantic.ValidationError: If a mapping has bad fields.
        """
        with self._lock:
            sheet = self._get_sheet(sheet_id)
            try:
                if isinstance(command, dict):
                    command = parse_command_payload(command)
                result = apply_command(sheet, command)
            except (InvalidReference, UnsupportedCommand, ValidationError) as exc:
                code = _rejection_code(exc)
                emit(make_sheet_event(
                    EventType.command_rejected, EventLevel.warning, str(exc),
                    sheet_id=sheet_id, error_code=code,
                    extra={"command": command if isinstance(command, dict) else describe(command)},
                ))
                raise

            self._sheets[sheet_id] = result.sheet
            self._dirty.add(sheet_id)
            if self.autosave:
                self._store_sheet(result.sheet)

        emit(make_sheet_event(
            EventType.command_applied, EventLevel.info, result.message,
            sheet_id=sheet_id, extra={"command": describe(command), "changed": result.changed},
        ))
        for label, reason in result.errors.items():
            emit(make_sheet_event(
                EventType.formula_error, EventLevel.warning, reason,
                sheet_id=sheet_id, extra={"cell": label},
            ))
        return {"sheet_id": sheet_id, **result.to_dict()}

    def apply_text(
        self, sheet_id: str, text: str, selected_cell: str | None = None
    ) -> dict[str, Any]:
        """Interpret a chat message as a command and apply it.

        Unrecognised text is not an error: the reply carries ``ok: False``
        and a hint, and the sheet is left as it was.
        """
        command = parse_command(text, selected_cell)
        if command is None:
            with self._lock:
                self._get_sheet(sheet_id)
            emit_warning(
                EventType.command_rejected,
                f"Unrecognized command text: {text!r}",
                {"sheet_id": sheet_id},
                error_code=UNRECOGNIZED_TEXT,
            )
            return {"ok": False, "sheet_id": sheet_id, "message": UNRECOGNIZED_MESSAGE}
        return self.apply(sheet_id, command)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_cells(self, sheet_id: str) -> dict[str, Any]:
        """Return the sheet's populated cells, row-major.

        Each cell has ``ref``, ``raw`` (formula text or literal),
        ``display`` and ``type`` (``number``, ``text`` or ``formula``).
        """
        with self._lock:
            sheet = self._get_sheet(sheet_id)
            dirty = sheet_id in self._dirty
        cells = []
        for label in sheet.labels():
            cell = sheet.cells[label]
            content = cell.content
            raw = content.source if isinstance(content, Formula) else display_text(content)
            cells.append({
                "ref": label,
                "raw": raw,
                "display": display_text(cell.display),
                "type": content.kind,
            })
        return {**self._summary(sheet), "dirty": dirty, "cells": cells}

    def evaluate(self, sheet_id: str, formula: str) -> dict[str, Any]:
        """Evaluate formula text against a sheet without storing it."""
        with self._lock:
            sheet = self._get_sheet(sheet_id)
        value = evaluate(formula, sheet)
        return {"ok": True, "value": display_text(value), "kind": value.kind}

    @staticmethod
    def validate_formula(text: str) -> dict[str, Any]:
        """Parse-only formula validation."""
        return validate_formula(text)

    def tail_events(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        sheet_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Most-recent-first events from the project log."""
        sink = get_sink()
        if sink is None:
            return []
        return sink.read_global(
            level=level, event_type=event_type, sheet_id=sheet_id, limit=limit,
        )

    # ------------------------------------------------------------------
    # Persistence / export
    # ------------------------------------------------------------------

    def save(self, sheet_id: str) -> dict[str, Any]:
        """Write the open sheet to the store."""
        with self._lock:
            sheet = self._get_sheet(sheet_id)
            self._store_sheet(sheet)
        emit(make_sheet_event(
            EventType.sheet_saved, EventLevel.info,
            f"Saved sheet {sheet.name!r}", sheet_id=sheet_id,
        ))
        return {"ok": True, "id": sheet_id, "dirty": False}

    def export_csv(self, sheet_id: str) -> str:
        """CSV text of the sheet's display values."""
        with self._lock:
            sheet = self._get_sheet(sheet_id)
        text = to_csv(sheet)
        emit(make_sheet_event(
            EventType.csv_exported, EventLevel.info,
            f"Exported sheet {sheet.name!r} as CSV", sheet_id=sheet_id,
            extra={"bytes": len(text)},
        ))
        return text

    def import_csv(self, text: str, name: str) -> dict[str, Any]:
        """Create a new sheet from CSV text."""
        with self._lock:
            self._check_name_free(name)
            sheet = from_csv(text, self._new_id(name), name)
            self._sheets[sheet.sheet_id] = sheet
            self._store_sheet(sheet)
        emit(make_sheet_event(
            EventType.sheet_created, EventLevel.info,
            f"Imported sheet {name!r} from CSV", sheet_id=sheet.sheet_id,
            extra={"cells": len(sheet)},
        ))
        return {"ok": True, **self._summary(sheet)}

    def export_workbook(self) -> str:
        """JSON document holding every stored sheet."""
        with self._lock:
            sheets = [self._get_sheet(sid) for sid in self.store.list_ids()]
        return workbook_to_json(sheets)

    def import_workbook(self, text: str) -> dict[str, Any]:
        """Add the sheets of a workbook document under fresh ids."""
        created = []
        with self._lock:
            for sheet in workbook_from_json(text):
                name = sheet.name
                taken = set(self._names().values())
                if name in taken:
                    name = f"{sheet.name} (Imported)"
                    n = 2
                    while name in taken:
                        name = f"{sheet.name} (Imported {n})"
                        n += 1
                imported = sheet.duplicate(self._new_id(name), name)
                self._sheets[imported.sheet_id] = imported
                self._store_sheet(imported)
                created.append(self._summary(imported))
        logger.debug("Imported %d sheet(s) from workbook JSON", len(created))
        return {"ok": True, "sheets": created}
