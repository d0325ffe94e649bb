"""CSV and workbook-JSON import/export."""

from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from typing import Any, Iterable

import polars as pl

from gridcalc.cell_graph import recompute_all
from gridcalc.errors import StorageError
from gridcalc.executor import cell_for_input
from gridcalc.refs import coord_to_label, index_to_col_letter, label_to_coord
from gridcalc.sheet import DEFAULT_COLS, DEFAULT_ROWS, Sheet
from gridcalc.storage import sheet_from_record, sheet_to_record
from gridcalc.values import Cell, display_text


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def to_csv(sheet: Sheet) -> str:
    """Render the full grid as CSV.

    The header row holds the column letters ``A..`` for every column in
    the sheet's bounds; each following row holds the display text of its
    cells, empty where a cell is absent.
    """
    if sheet.n_cols == 0:
        return ""

    grid: list[list[str | None]] = [[None] * sheet.n_rows for _ in range(sheet.n_cols)]
    for label, cell in sheet.cells.items():
        col, row = label_to_coord(label)
        if col < sheet.n_cols and row < sheet.n_rows:
            grid[col][row] = display_text(cell.display) or None
    columns = {index_to_col_letter(col): values for col, values in enumerate(grid)}

    df = pl.DataFrame(columns, schema={name: pl.String for name in columns})
    return df.write_csv(null_value="")


def from_csv(text: str, sheet_id: str, name: str | None = None) -> Sheet:
    """Build a sheet from CSV text.

    The first row is a header and is ignored.  Every other non-empty
    field is entered into the cell at its position, as if typed there;
    the grid grows to fit the data.
    """
    if not text.strip():
        return Sheet(sheet_id, name)

    df = pl.read_csv(
        io.BytesIO(text.encode("utf-8")),
        has_header=False,
        infer_schema_length=0,
        truncate_ragged_lines=True,
    )
    rows = df.rows()[1:]

    cells: dict[str, Cell] = {}
    for row_idx, row in enumerate(rows):
        for col_idx, field in enumerate(row):
            if field is None or field == "":
                continue
            cells[coord_to_label(col_idx, row_idx)] = cell_for_input(field)

    sheet = Sheet(
        sheet_id,
        name,
        n_rows=max(DEFAULT_ROWS, len(rows)),
        n_cols=max(DEFAULT_COLS, df.width),
        cells=cells,
    )
    return recompute_all(sheet)


# ---------------------------------------------------------------------------
# Workbook JSON
# ---------------------------------------------------------------------------


def workbook_to_json(sheets: Iterable[Sheet]) -> str:
    """Serialise several sheets into one workbook document."""
    doc: dict[str, Any] = {
        "sheets": [sheet_to_record(s) for s in sheets],
        "created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }
    return json.dumps(doc, indent=2)


def workbook_from_json(text: str) -> list[Sheet]:
    """Load the sheets of a workbook document.

    Raises:
        StorageError: If the document is not a workbook.
    """
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StorageError(f"Invalid workbook JSON: {exc}") from exc
    if not isinstance(doc, dict) or not isinstance(doc.get("sheets"), list):
        raise StorageError("Workbook JSON must hold a 'sheets' list")
    return [sheet_from_record(record) for record in doc["sheets"]]
