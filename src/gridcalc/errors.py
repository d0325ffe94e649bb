"""Error types raised by the sheet engine and its collaborators.

Formula evaluation failures are *values* (``ErrorValue``), not
exceptions; the classes here cover rejected commands, bad references,
parse failures and storage problems.
"""

from __future__ import annotations


class GridcalcError(Exception):
    """Base class for all gridcalc errors."""


class InvalidReference(GridcalcError, ValueError):
    """A cell label or range does not match the A1 reference grammar.

    Attributes:
        label: The offending label text.
    """

    def __init__(self, label: str, message: str | None = None) -> None:
        self.label = label
        super().__init__(message or f"Invalid cell reference: {label!r}")


class UnsupportedCommand(GridcalcError):
    """The executor does not recognise the command tag.

    Attributes:
        command_type: The unrecognised tag (or type name).
    """

    def __init__(self, command_type: str) -> None:
        self.command_type = command_type
        super().__init__(f"Unsupported command: {command_type!r}")


class FormulaError(GridcalcError):
    """Base class for formula parsing and evaluation failures."""


class FormulaParseError(FormulaError):
    """Syntax error in a formula expression.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class CircularReferenceError(FormulaError):
    """Raised inside evaluation when a cell re-enters the active call chain.

    Attributes:
        cycle_path: Labels on the cycle, first label repeated at the end.
    """

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"Circular cell reference: {' -> '.join(cycle_path)}")

    @property
    def origin(self) -> str:
        """The cell at which the cycle was entered."""
        return self.cycle_path[0]


class StorageError(GridcalcError):
    """A persisted sheet record is malformed or cannot be written."""


class SheetNotFound(StorageError, KeyError):
    """No sheet exists under the requested id."""

    def __init__(self, sheet_id: str) -> None:
        self.sheet_id = sheet_id
        super().__init__(f"Sheet {sheet_id!r} not found")

    def __str__(self) -> str:
        return self.args[0]
