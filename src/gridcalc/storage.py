"""Sheet persistence: plain-dict records and the stores that keep them.

A record is the serialisable form of a :class:`~gridcalc.sheet.Sheet`::

    {"id": "sheet1", "name": "Sheet1", "n_rows": 1000, "n_cols": 1000,
     "cells": [{"ref": "A1", "content": 10.0, "type": "number"},
               {"ref": "B1", "content": "=A1*2", "type": "formula"}]}

Only content is persisted; display values are recomputed on load.
"""

from __future__ import annotations

import logging
import math
import os
import re
import threading
from pathlib import Path
from typing import Any, Protocol

import yaml

from gridcalc.cell_graph import recompute_all
from gridcalc.errors import InvalidReference, SheetNotFound, StorageError
from gridcalc.refs import normalize_label
from gridcalc.sheet import DEFAULT_COLS, DEFAULT_ROWS, Sheet
from gridcalc.values import Cell, Formula, Number, Text

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def sheet_to_record(sheet: Sheet) -> dict[str, Any]:
    """Serialise *sheet* to a record, cells ordered row-major."""
    cells: list[dict[str, Any]] = []
    for label in sheet.labels():
        content = sheet.cells[label].content
        if isinstance(content, Formula):
            cells.append({"ref": label, "content": content.source, "type": "formula"})
        elif isinstance(content, Number):
            cells.append({"ref": label, "content": content.value, "type": "number"})
        else:
            cells.append({"ref": label, "content": content.value, "type": "text"})
    return {
        "id": sheet.sheet_id,
        "name": sheet.name,
        "n_rows": sheet.n_rows,
        "n_cols": sheet.n_cols,
        "cells": cells,
    }


def sheet_from_record(record: dict[str, Any]) -> Sheet:
    """Rebuild a sheet from a record and recompute every formula.

    Raises:
        StorageError: If the record is malformed.
    """
    if not isinstance(record, dict) or "id" not in record:
        raise StorageError("Sheet record must be a mapping with an 'id'")

    cells: dict[str, Cell] = {}
    for entry in record.get("cells") or []:
        try:
            label = normalize_label(str(entry["ref"]))
            kind = entry.get("type", "text")
            raw = entry["content"]
        except (KeyError, TypeError, InvalidReference) as exc:
            raise StorageError(f"Bad cell entry {entry!r}: {exc}") from exc

        if kind == "formula":
            cells[label] = Cell(content=Formula(source=str(raw)), display=Text(value=""))
        elif kind == "number":
            try:
                num = float(raw)
            except (TypeError, ValueError) as exc:
                raise StorageError(f"Bad number in {label}: {raw!r}") from exc
            if not math.isfinite(num):
                raise StorageError(f"Non-finite number in {label}: {raw!r}")
            cells[label] = Cell.literal(Number(value=num))
        elif kind == "text":
            cells[label] = Cell.literal(Text(value=str(raw)))
        else:
            raise StorageError(f"Unknown cell type {kind!r} in {label}")

    try:
        sheet = Sheet(
            str(record["id"]),
            record.get("name"),
            n_rows=int(record.get("n_rows", DEFAULT_ROWS)),
            n_cols=int(record.get("n_cols", DEFAULT_COLS)),
            cells=cells,
        )
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Bad sheet bounds in record {record['id']!r}: {exc}") from exc
    return recompute_all(sheet)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SheetStore(Protocol):
    """Storage handle passed to the service."""

    def save(self, record: dict[str, Any]) -> None: ...

    def load(self, sheet_id: str) -> dict[str, Any] | None: ...

    def delete(self, sheet_id: str) -> None: ...

    def list_ids(self) -> list[str]: ...


class MemorySheetStore:
    """In-process store; records are copied on save and on load."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, record: dict[str, Any]) -> None:
        with self._lock:
            self._records[record["id"]] = _copy_record(record)

    def load(self, sheet_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(sheet_id)
            return _copy_record(record) if record is not None else None

    def delete(self, sheet_id: str) -> None:
        with self._lock:
            if self._records.pop(sheet_id, None) is None:
                raise SheetNotFound(sheet_id)

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._records)


class YamlSheetStore:
    """One ``<id>.yaml`` file per sheet under *directory*.

    Writes go to a temporary file first and are moved into place with
    ``os.replace`` so readers never observe a partial record.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, sheet_id: str) -> Path:
        if not _SAFE_ID_RE.match(sheet_id):
            raise StorageError(f"Invalid sheet id: {sheet_id!r}")
        return self.directory / f"{sheet_id}.yaml"

    def save(self, record: dict[str, Any]) -> None:
        path = self._path(str(record["id"]))
        tmp_path = path.with_suffix(".yaml.tmp")
        tmp_path.write_text(yaml.safe_dump(record, default_flow_style=False, sort_keys=False))
        os.replace(str(tmp_path), str(path))
        logger.debug("Saved sheet %s to %s", record["id"], path)

    def load(self, sheet_id: str) -> dict[str, Any] | None:
        path = self._path(sheet_id)
        if not path.exists():
            return None
        try:
            record = yaml.safe_load(path.read_text())
        except yaml.YAMLError as exc:
            raise StorageError(f"Corrupt sheet file {path}: {exc}") from exc
        if not isinstance(record, dict):
            raise StorageError(f"Sheet file {path} does not hold a mapping")
        return record

    def delete(self, sheet_id: str) -> None:
        path = self._path(sheet_id)
        if not path.exists():
            raise SheetNotFound(sheet_id)
        path.unlink()

    def list_ids(self) -> list[str]:
        return sorted(
            p.stem for p in self.directory.glob("*.yaml") if _SAFE_ID_RE.match(p.stem)
        )


def _copy_record(record: dict[str, Any]) -> dict[str, Any]:
    out = dict(record)
    out["cells"] = [dict(c) for c in record.get("cells") or []]
    return out
