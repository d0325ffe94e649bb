"""Structured commands accepted by the executor.

Each command is a pydantic model tagged by ``type``; ``Command`` is the
discriminated union over all of them.  Commands are transient: produced
by a command source (UI edit, HTTP request, free-text parser), consumed
once, never persisted.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from gridcalc.errors import UnsupportedCommand

ALL_RANGE = "ALL"


class SetValue(BaseModel):
    type: Literal["set_value"] = "set_value"
    cell: str
    value: str | float | int = ""


class DeleteCell(BaseModel):
    type: Literal["delete_cell"] = "delete_cell"
    cell: str


class AddRow(BaseModel):
    type: Literal["add_row"] = "add_row"


class AddColumn(BaseModel):
    type: Literal["add_column"] = "add_column"


class Calculate(BaseModel):
    type: Literal["calculate"] = "calculate"
    range: str
    formula: str | None = None


class Format(BaseModel):
    """Styling request; accepted and logged, with no effect on cell data.

    ``range`` may be ``ALL`` for the whole sheet.
    """

    type: Literal["format"] = "format"
    range: str
    style: str = ""


class Copy(BaseModel):
    type: Literal["copy"] = "copy"
    range: str
    cell: str


class Move(BaseModel):
    type: Literal["move"] = "move"
    range: str
    cell: str


class Replace(BaseModel):
    type: Literal["replace"] = "replace"
    find: str
    replace_with: str = ""
    range: str = ALL_RANGE


Command = Annotated[
    Union[SetValue, DeleteCell, AddRow, AddColumn, Calculate, Format, Copy, Move, Replace],
    Field(discriminator="type"),
]

COMMAND_TYPES: tuple[str, ...] = (
    "set_value",
    "delete_cell",
    "add_row",
    "add_column",
    "calculate",
    "format",
    "copy",
    "move",
    "replace",
)

_command_adapter: TypeAdapter = TypeAdapter(Command)


def parse_command_payload(payload: dict[str, Any]) -> Command:
    """Validate a raw mapping into a :data:`Command`.

    Raises:
        UnsupportedCommand: If ``type`` is missing or not a known tag.
        pydantic.ValidationError: If a known command has bad fields.
    """
    cmd_type = payload.get("type") if isinstance(payload, dict) else None
    if cmd_type not in COMMAND_TYPES:
        raise UnsupportedCommand(str(cmd_type))
    return _command_adapter.validate_python(payload)


def describe(command: Command) -> dict[str, Any]:
    """Plain-dict form of a command, used for event context."""
    return command.model_dump()


__all__ = [
    "ALL_RANGE",
    "AddColumn",
    "AddRow",
    "COMMAND_TYPES",
    "Calculate",
    "Command",
    "Copy",
    "DeleteCell",
    "Format",
    "Move",
    "Replace",
    "SetValue",
    "describe",
    "parse_command_payload",
]
