"""Tests for command payload validation and the free-text command parser."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from gridcalc.command_parser import parse_command
from gridcalc.commands import (
    ALL_RANGE,
    COMMAND_TYPES,
    AddColumn,
    AddRow,
    Calculate,
    Copy,
    DeleteCell,
    Format,
    Move,
    Replace,
    SetValue,
    describe,
    parse_command_payload,
)
from gridcalc.errors import UnsupportedCommand


# ────────────────────────────────────────────────────────────────
# Structured payloads
# ────────────────────────────────────────────────────────────────


class TestPayloads:
    def test_set_value(self) -> None:
        cmd = parse_command_payload({"type": "set_value", "cell": "A1", "value": "10"})
        assert cmd == SetValue(cell="A1", value="10")

    def test_every_type_round_trips_through_describe(self) -> None:
        commands = [
            SetValue(cell="A1", value=3),
            DeleteCell(cell="A1"),
            AddRow(),
            AddColumn(),
            Calculate(range="A1:A3", formula="SUM"),
            Format(range="A1", style="bold"),
            Copy(range="A1:B2", cell="C1"),
            Move(range="A1", cell="B1"),
            Replace(find="a", replace_with="b"),
        ]
        assert [c.type for c in commands] == list(COMMAND_TYPES)
        for cmd in commands:
            assert parse_command_payload(describe(cmd)) == cmd

    def test_replace_defaults_to_all(self) -> None:
        cmd = parse_command_payload({"type": "replace", "find": "x"})
        assert cmd.range == ALL_RANGE
        assert cmd.replace_with == ""

    @pytest.mark.parametrize("payload", [{}, {"type": "sort"}, {"type": "chart", "range": "A1"}])
    def test_unknown_type(self, payload: dict) -> None:
        with pytest.raises(UnsupportedCommand):
            parse_command_payload(payload)

    def test_missing_field(self) -> None:
        with pytest.raises(ValidationError):
            parse_command_payload({"type": "copy", "range": "A1"})


# ────────────────────────────────────────────────────────────────
# Free-text phrases
# ────────────────────────────────────────────────────────────────


class TestParseCommand:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("set A1 to 100", SetValue(cell="A1", value="100")),
            ("A1 = 100", SetValue(cell="A1", value="100")),
            ("b2=hello world", SetValue(cell="B2", value="hello world")),
            ("set C3 to =A1+B1", SetValue(cell="C3", value="=A1+B1")),
            ("put 'Hello' in B2", SetValue(cell="B2", value="Hello")),
            ("put 42 in c1", SetValue(cell="C1", value="42")),
        ],
    )
    def test_set_value(self, text: str, expected: SetValue) -> None:
        assert parse_command(text) == expected

    @pytest.mark.parametrize("text", ["delete A1", "clear cell a1", "empty A1"])
    def test_delete(self, text: str) -> None:
        assert parse_command(text) == DeleteCell(cell="A1")

    def test_add_row_and_column(self) -> None:
        assert parse_command("add row") == AddRow()
        assert parse_command("Insert new row") == AddRow()
        assert parse_command("add column") == AddColumn()
        assert parse_command("insert new column") == AddColumn()

    @pytest.mark.parametrize(
        "text", ["sum A1:A10", "calculate sum of A1 to A10", "add up a1:a10", "sum of A1 to A10"]
    )
    def test_sum(self, text: str) -> None:
        assert parse_command(text) == Calculate(range="A1:A10", formula="SUM(A1:A10)")

    def test_average_and_count(self) -> None:
        assert parse_command("average B1:B4") == Calculate(
            range="B1:B4", formula="AVERAGE(B1:B4)"
        )
        assert parse_command("count cells in A1:C3") == Calculate(
            range="A1:C3", formula="COUNT(A1:C3)"
        )

    def test_format(self) -> None:
        assert parse_command("make A1 bold") == Format(range="A1", style="bold")
        assert parse_command("bold A1:B2") == Format(range="A1:B2", style="bold")
        assert parse_command("format A1:A3 as currency") == Format(
            range="A1:A3", style="currency"
        )

    def test_replace(self) -> None:
        assert parse_command("replace 'foo' with 'bar'") == Replace(
            find="foo", replace_with="bar", range=ALL_RANGE
        )
        assert parse_command('replace "a" with "" in a1:b3') == Replace(
            find="a", replace_with="", range="A1:B3"
        )

    def test_copy_and_move(self) -> None:
        assert parse_command("copy A1:B2 to D1") == Copy(range="A1:B2", cell="D1")
        assert parse_command("copy a1 to b1") == Copy(range="A1", cell="B1")
        assert parse_command("move A1 to C1") == Move(range="A1", cell="C1")

    def test_formula_uses_selected_cell(self) -> None:
        assert parse_command("=A1+B1", selected_cell="c1") == SetValue(cell="C1", value="=A1+B1")
        assert parse_command("=A1+B1") is None

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "hello there", "sort A1:A10", "filter column A", "make a chart of A1:B5"],
    )
    def test_unrecognised(self, text: str) -> None:
        assert parse_command(text) is None
