"""Command executor: applies one structured command to a sheet.

The executor is stateless.  ``apply_command`` never mutates its input;
it works on a copy, and after every command recomputes all formula
cells against the post-mutation snapshot before handing the new sheet
back, so stale display values are never exposed.

Rejected commands (bad primary reference, unknown command) raise before
anything is returned, leaving the caller's sheet untouched.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable

from gridcalc.cell_graph import CellGraph, recompute_with_errors
from gridcalc.commands import (
    ALL_RANGE,
    AddColumn,
    AddRow,
    Calculate,
    Command,
    Copy,
    DeleteCell,
    Format,
    Move,
    Replace,
    SetValue,
)
from gridcalc.errors import InvalidReference, UnsupportedCommand
from gridcalc.formulas.evaluator import aggregate
from gridcalc.refs import (
    expand_range,
    label_to_coord,
    normalize_label,
    offset_label,
    range_bounds,
    split_range,
)
from gridcalc.sheet import Sheet
from gridcalc.values import Cell, Formula, Number, Text, classify_literal, display_text

logger = logging.getLogger(__name__)


class CommandResult:
    """Outcome of one applied command.

    Attributes:
        sheet: The post-command sheet, formulas recomputed.
        message: Human-readable acknowledgement.
        value: Scalar result of a ``calculate`` query, else None.
        count: Number of cells modified by ``replace``, else None.
        changed: Labels written or removed by the command.
        errors: Formula cells that evaluated to ``#ERROR`` (label -> reason).
    """

    def __init__(
        self,
        sheet: Sheet,
        message: str,
        value: float | None = None,
        count: int | None = None,
        changed: list[str] | None = None,
        errors: dict[str, str] | None = None,
    ) -> None:
        self.sheet = sheet
        self.message = message
        self.value = value
        self.count = count
        self.changed = changed or []
        self.errors = errors or {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": True, "message": self.message, "changed": self.changed}
        if self.value is not None:
            out["value"] = self.value
        if self.count is not None:
            out["count"] = self.count
        if self.errors:
            out["errors"] = self.errors
        return out


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def apply_command(sheet: Sheet, command: Command) -> CommandResult:
    """Apply *command* to a copy of *sheet* and recompute formulas.

    Raises:
        InvalidReference: If the command's target cell or range is invalid.
        UnsupportedCommand: If *command* is not a known command model.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        cmd_type = getattr(command, "type", type(command).__name__)
        raise UnsupportedCommand(str(cmd_type))

    work = sheet.copy()
    result = handler(work, command)
    recomputed, errors = recompute_with_errors(result.sheet)
    result.sheet = recomputed
    result.errors = errors
    logger.debug("Applied %s to %s: %s", command.type, sheet.sheet_id, result.message)
    return result


def execute(sheet: Sheet, command: Command) -> Sheet:
    """Apply *command* and return only the updated sheet."""
    return apply_command(sheet, command).sheet


# ---------------------------------------------------------------------------
# Handlers (operate in place on the working copy)
# ---------------------------------------------------------------------------


def cell_for_input(raw: str | float | int) -> Cell:
    """Build the cell a user entry produces.

    Text starting with ``=`` becomes a formula whose display is filled in
    by the next recompute; other text is classified as number or text.
    Numeric payloads stay numbers only when finite.
    """
    if isinstance(raw, str):
        if raw.startswith("="):
            return Cell(content=Formula(source=raw), display=Text(value=""))
        return Cell.literal(classify_literal(raw))
    num = float(raw)
    if not math.isfinite(num):
        return Cell.literal(Text(value=str(raw)))
    return Cell.literal(Number(value=num))


def _set_value(sheet: Sheet, cmd: SetValue) -> CommandResult:
    label = normalize_label(cmd.cell)
    raw = cmd.value
    if raw == "":
        sheet.cells.pop(label, None)
        return CommandResult(sheet, f"Cleared {label}", changed=[label])
    sheet.cells[label] = cell_for_input(raw)
    return CommandResult(sheet, f"Set {label} to {raw}", changed=[label])


def _delete_cell(sheet: Sheet, cmd: DeleteCell) -> CommandResult:
    label = normalize_label(cmd.cell)
    if sheet.cells.pop(label, None) is None:
        return CommandResult(sheet, f"{label} is already empty")
    return CommandResult(sheet, f"Deleted {label}", changed=[label])


def _add_row(sheet: Sheet, cmd: AddRow) -> CommandResult:
    sheet.n_rows += 1
    return CommandResult(sheet, "Added new row")


def _add_column(sheet: Sheet, cmd: AddColumn) -> CommandResult:
    sheet.n_cols += 1
    return CommandResult(sheet, "Added new column")


def _calculate(sheet: Sheet, cmd: Calculate) -> CommandResult:
    func_name = calculation_kind(cmd.formula)
    value = calculate_range(sheet, cmd.range, func_name)
    return CommandResult(
        sheet,
        f"Calculation result: {display_text(Number(value=value))}",
        value=value,
    )


def _format(sheet: Sheet, cmd: Format) -> CommandResult:
    if cmd.range.strip().upper() != ALL_RANGE:
        split_range(cmd.range)
    logger.debug("Format %r on %s accepted (no data effect)", cmd.style, cmd.range)
    if not cmd.style:
        return CommandResult(sheet, "Applied formatting")
    return CommandResult(sheet, f"Applied {cmd.style} formatting")


def _copy(sheet: Sheet, cmd: Copy) -> CommandResult:
    written = copy_range(sheet, cmd.range, cmd.cell)
    return CommandResult(
        sheet, f"Copied {cmd.range.upper()} to {cmd.cell.upper()}", changed=written
    )


def _move(sheet: Sheet, cmd: Move) -> CommandResult:
    written = copy_range(sheet, cmd.range, cmd.cell)
    start, end = split_range(cmd.range)
    keep = set(written)
    removed = []
    for label in expand_range(start, end):
        if label not in keep and sheet.cells.pop(label, None) is not None:
            removed.append(label)
    return CommandResult(
        sheet, f"Moved {cmd.range.upper()} to {cmd.cell.upper()}", changed=written + removed
    )


def _replace(sheet: Sheet, cmd: Replace) -> CommandResult:
    modified = replace_in_range(sheet, cmd.find, cmd.replace_with, cmd.range)
    return CommandResult(
        sheet, f"Replaced {len(modified)} cells", count=len(modified), changed=modified
    )


_HANDLERS: dict[type, Callable[[Sheet, Any], CommandResult]] = {
    SetValue: _set_value,
    DeleteCell: _delete_cell,
    AddRow: _add_row,
    AddColumn: _add_column,
    Calculate: _calculate,
    Format: _format,
    Copy: _copy,
    Move: _move,
    Replace: _replace,
}


# ---------------------------------------------------------------------------
# Range operations
# ---------------------------------------------------------------------------


def calculation_kind(hint: str | None) -> str:
    """Pick the aggregate named in a free-form hint; SUM when none matches."""
    upper = (hint or "").upper()
    if "AVERAGE" in upper:
        return "AVERAGE"
    if "COUNT" in upper:
        return "COUNT"
    return "SUM"


def calculate_range(sheet: Sheet, range_text: str, func_name: str = "SUM") -> float:
    """Read-only aggregate over a range; an empty or invalid range yields 0."""
    try:
        start, end = split_range(range_text)
    except InvalidReference:
        return 0.0
    values = CellGraph(sheet).resolve_range(start, end)
    return aggregate(func_name, values)


def copy_range(sheet: Sheet, source_range: str, dest: str) -> list[str]:
    """Copy cell *content* from a range to the block anchored at *dest*.

    Formula text is copied verbatim (references are not shifted).
    Sources are read from the pre-copy mapping, so overlapping blocks
    copy correctly.  Absent sources leave their destination untouched.

    Returns:
        Destination labels written, row-major.
    """
    start, end = split_range(source_range)
    dest_label = normalize_label(dest)
    c0, r0, _, _ = range_bounds(start, end)
    dst_col, dst_row = label_to_coord(dest_label)
    d_col, d_row = dst_col - c0, dst_row - r0

    originals = {
        label: sheet.cells[label]
        for label in expand_range(start, end)
        if label in sheet.cells
    }
    written: list[str] = []
    for label, cell in originals.items():
        target = offset_label(label, d_col, d_row)
        sheet.cells[target] = Cell(content=cell.content, display=cell.display)
        written.append(target)
    return written


def replace_in_range(sheet: Sheet, find: str, replace_with: str, range_text: str) -> list[str]:
    """Replace every occurrence of *find* in literal text cells.

    Args:
        range_text: A range, or ``ALL`` for the whole mapping.

    Returns:
        Labels of the cells modified (one entry per cell, not per occurrence).
    """
    if not find:
        return []
    if range_text.strip().upper() == ALL_RANGE:
        labels = sheet.labels()
    else:
        start, end = split_range(range_text)
        labels = [label for label in expand_range(start, end) if label in sheet.cells]

    modified: list[str] = []
    for label in labels:
        cell = sheet.cells[label]
        if isinstance(cell.content, Text) and find in cell.content.value:
            sheet.cells[label] = Cell.literal(
                Text(value=cell.content.value.replace(find, replace_with))
            )
            modified.append(label)
    return modified


