"""Tests for applying structured commands to sheets."""

from __future__ import annotations

import pytest

from gridcalc.commands import (
    AddColumn,
    AddRow,
    Calculate,
    Copy,
    DeleteCell,
    Format,
    Move,
    Replace,
    SetValue,
)
from gridcalc.errors import InvalidReference, UnsupportedCommand
from gridcalc.executor import apply_command, calculate_range, execute
from gridcalc.sheet import Sheet
from gridcalc.values import ERROR, Formula, Number, Text, display_text


def _empty() -> Sheet:
    return Sheet("s1", "Sheet1", n_rows=100, n_cols=26)


def _with(*commands) -> Sheet:
    sheet = _empty()
    for cmd in commands:
        sheet = execute(sheet, cmd)
    return sheet


def _display(sheet: Sheet, label: str) -> str:
    cell = sheet.get(label)
    return display_text(cell.display) if cell is not None else ""


# ────────────────────────────────────────────────────────────────
# SetValue / DeleteCell
# ────────────────────────────────────────────────────────────────


class TestSetValue:
    def test_number_text_and_formula(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="10"),
            SetValue(cell="A2", value="hello"),
            SetValue(cell="A3", value="=A1*2"),
        )
        assert sheet.cells["A1"].content == Number(value=10)
        assert sheet.cells["A2"].content == Text(value="hello")
        assert sheet.cells["A3"].content == Formula(source="=A1*2")
        assert _display(sheet, "A3") == "20"

    def test_numeric_payload(self) -> None:
        sheet = _with(SetValue(cell="b2", value=2.5))
        assert sheet.cells["B2"].content == Number(value=2.5)

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_payload_is_text(self, value: float) -> None:
        sheet = _with(SetValue(cell="A1", value=value), SetValue(cell="A2", value="=A1+1"))
        assert sheet.cells["A1"].content == Text(value=str(value))
        assert _display(sheet, "A1") == str(value)
        assert _display(sheet, "A2") == "1"

    def test_empty_value_clears(self) -> None:
        sheet = _with(SetValue(cell="A1", value="5"), SetValue(cell="A1", value=""))
        assert "A1" not in sheet

    def test_recompute_after_every_command(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="10"),
            SetValue(cell="B1", value="20"),
            SetValue(cell="C1", value="=SUM(A1:B1)"),
        )
        assert _display(sheet, "C1") == "30"
        sheet = execute(sheet, SetValue(cell="A1", value="100"))
        assert _display(sheet, "C1") == "120"

    def test_formula_before_inputs(self) -> None:
        sheet = _with(SetValue(cell="C1", value="=A1+B1"))
        assert _display(sheet, "C1") == "0"
        sheet = execute(sheet, SetValue(cell="A1", value="4"))
        assert _display(sheet, "C1") == "4"

    def test_invalid_cell_rejected(self) -> None:
        sheet = _with(SetValue(cell="A1", value="1"))
        with pytest.raises(InvalidReference):
            apply_command(sheet, SetValue(cell="1A", value="2"))
        assert _display(sheet, "A1") == "1"

    def test_input_sheet_is_not_mutated(self) -> None:
        sheet = _with(SetValue(cell="A1", value="1"))
        apply_command(sheet, SetValue(cell="A1", value="2"))
        assert _display(sheet, "A1") == "1"

    def test_result_reports_errors(self) -> None:
        result = apply_command(_empty(), SetValue(cell="A1", value="=1/0"))
        assert result.sheet.cells["A1"].display == ERROR
        assert "A1" in result.errors
        assert result.changed == ["A1"]


class TestDeleteCell:
    def test_delete(self) -> None:
        sheet = _with(SetValue(cell="A1", value="1"), DeleteCell(cell="a1"))
        assert "A1" not in sheet

    def test_delete_absent_is_noop(self) -> None:
        result = apply_command(_empty(), DeleteCell(cell="A1"))
        assert "already empty" in result.message
        assert result.changed == []

    def test_delete_updates_dependants(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="7"),
            SetValue(cell="B1", value="=A1+1"),
            DeleteCell(cell="A1"),
        )
        assert _display(sheet, "B1") == "1"

    def test_delete_invalid(self) -> None:
        with pytest.raises(InvalidReference):
            apply_command(_empty(), DeleteCell(cell="A0"))


# ────────────────────────────────────────────────────────────────
# Bounds / Format / Calculate
# ────────────────────────────────────────────────────────────────


class TestBounds:
    def test_add_row_and_column(self) -> None:
        sheet = _with(AddRow(), AddColumn(), AddColumn())
        assert sheet.n_rows == 101
        assert sheet.n_cols == 28

    def test_cells_outside_bounds_still_written(self) -> None:
        sheet = _with(SetValue(cell="ZZ500", value="3"))
        assert _display(sheet, "ZZ500") == "3"
        assert not sheet.in_bounds("ZZ500")


class TestFormat:
    def test_format_has_no_data_effect(self) -> None:
        sheet = _with(SetValue(cell="A1", value="1"))
        result = apply_command(sheet, Format(range="A1:B2", style="bold"))
        assert result.message == "Applied bold formatting"
        assert result.sheet.cells == sheet.cells

    def test_format_invalid_range(self) -> None:
        with pytest.raises(InvalidReference):
            apply_command(_empty(), Format(range="A1:", style="bold"))

    def test_format_whole_sheet(self) -> None:
        sheet = _with(SetValue(cell="A1", value="1"))
        result = apply_command(sheet, Format(range="all", style="italic"))
        assert result.message == "Applied italic formatting"
        assert result.sheet.cells == sheet.cells


class TestCalculate:
    CELLS = (
        SetValue(cell="A1", value="10"),
        SetValue(cell="A2", value="20"),
        SetValue(cell="A3", value="text"),
    )

    def test_sum_default(self) -> None:
        result = apply_command(_with(*self.CELLS), Calculate(range="A1:A3"))
        assert result.value == 30
        assert result.message == "Calculation result: 30"

    def test_average_hint(self) -> None:
        result = apply_command(_with(*self.CELLS), Calculate(range="A1:A3", formula="AVERAGE(A1:A3)"))
        assert result.value == 15

    def test_count_hint(self) -> None:
        result = apply_command(_with(*self.CELLS), Calculate(range="A1:A3", formula="count"))
        assert result.value == 3

    def test_empty_range(self) -> None:
        result = apply_command(_empty(), Calculate(range="B1:B5", formula="AVERAGE"))
        assert result.value == 0

    def test_invalid_range_is_zero(self) -> None:
        assert calculate_range(_with(*self.CELLS), "nonsense") == 0

    def test_calculate_is_read_only(self) -> None:
        sheet = _with(*self.CELLS)
        result = apply_command(sheet, Calculate(range="A1:A2"))
        assert result.sheet.cells == sheet.cells


# ────────────────────────────────────────────────────────────────
# Copy / Move
# ────────────────────────────────────────────────────────────────


class TestCopy:
    def test_copy_keeps_formula_text(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="5"),
            SetValue(cell="A2", value="10"),
            SetValue(cell="B1", value="=A1+A2"),
            Copy(range="B1", cell="C1"),
        )
        assert sheet.cells["C1"].content == Formula(source="=A1+A2")
        assert _display(sheet, "C1") == "15"

    def test_copy_block(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="B1", value="2"),
            SetValue(cell="A2", value="3"),
            Copy(range="A1:B2", cell="D5"),
        )
        assert _display(sheet, "D5") == "1"
        assert _display(sheet, "E5") == "2"
        assert _display(sheet, "D6") == "3"
        assert "E6" not in sheet
        assert _display(sheet, "A1") == "1"

    def test_copy_reversed_range(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="B2", value="4"),
            Copy(range="B2:A1", cell="C1"),
        )
        assert _display(sheet, "C1") == "1"
        assert _display(sheet, "D2") == "4"

    def test_absent_source_leaves_destination(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="D2", value="keep"),
            Copy(range="A1:A2", cell="D1"),
        )
        assert _display(sheet, "D1") == "1"
        assert _display(sheet, "D2") == "keep"

    def test_overlapping_copy(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="A2", value="2"),
            SetValue(cell="A3", value="3"),
            Copy(range="A1:A3", cell="A2"),
        )
        assert [_display(sheet, f"A{i}") for i in range(1, 5)] == ["1", "1", "2", "3"]

    def test_invalid_destination(self) -> None:
        with pytest.raises(InvalidReference):
            apply_command(_empty(), Copy(range="A1", cell="??"))


class TestMove:
    def test_move_clears_source(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="A2", value="2"),
            Move(range="A1:A2", cell="C1"),
        )
        assert "A1" not in sheet and "A2" not in sheet
        assert _display(sheet, "C1") == "1"
        assert _display(sheet, "C2") == "2"

    def test_move_overlapping(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="1"),
            SetValue(cell="A2", value="2"),
            Move(range="A1:A2", cell="A2"),
        )
        assert "A1" not in sheet
        assert _display(sheet, "A2") == "1"
        assert _display(sheet, "A3") == "2"

    def test_move_updates_formulas_reading_old_cells(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="9"),
            SetValue(cell="B1", value="=A1"),
            Move(range="A1", cell="A5"),
        )
        assert _display(sheet, "B1") == "0"


# ────────────────────────────────────────────────────────────────
# Replace
# ────────────────────────────────────────────────────────────────


class TestReplace:
    def test_replace_all(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="foo bar"),
            SetValue(cell="A2", value="foo"),
        )
        result = apply_command(sheet, Replace(find="foo", replace_with="baz"))
        assert result.count == 2
        assert _display(result.sheet, "A1") == "baz bar"
        assert _display(result.sheet, "A2") == "baz"

    def test_replace_counts_cells_not_occurrences(self) -> None:
        sheet = _with(SetValue(cell="A1", value="aaa"))
        result = apply_command(sheet, Replace(find="a", replace_with="b"))
        assert result.count == 1
        assert _display(result.sheet, "A1") == "bbb"

    def test_replace_within_range(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="x"),
            SetValue(cell="B5", value="x"),
        )
        result = apply_command(sheet, Replace(find="x", replace_with="y", range="A1:A3"))
        assert result.count == 1
        assert _display(result.sheet, "B5") == "x"

    def test_replace_skips_numbers_and_formulas(self) -> None:
        sheet = _with(
            SetValue(cell="A1", value="11"),
            SetValue(cell="A2", value="=A1+1"),
        )
        result = apply_command(sheet, Replace(find="1", replace_with="2"))
        assert result.count == 0
        assert _display(result.sheet, "A2") == "12"

    def test_replacement_stays_text(self) -> None:
        sheet = _with(SetValue(cell="A1", value="n5"))
        result = apply_command(sheet, Replace(find="n", replace_with=""))
        assert result.sheet.cells["A1"].content == Text(value="5")

    def test_empty_find_is_noop(self) -> None:
        sheet = _with(SetValue(cell="A1", value="abc"))
        result = apply_command(sheet, Replace(find=""))
        assert result.count == 0

    def test_invalid_range(self) -> None:
        with pytest.raises(InvalidReference):
            apply_command(_empty(), Replace(find="a", range="A1:B2:C3"))


class TestUnsupported:
    def test_unknown_command_object(self) -> None:
        class Sort:
            type = "sort"

        with pytest.raises(UnsupportedCommand):
            apply_command(_empty(), Sort())  # type: ignore[arg-type]
