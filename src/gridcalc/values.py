"""Cell values and cell content as closed tagged variants.

``CellValue`` is what a cell *displays* (number, text or the ``#ERROR``
marker).  ``CellContent`` is what a cell *holds* (number, text or a
formula's source text).  Both are pydantic discriminated unions keyed by
``kind`` so every consumer can match exhaustively.
"""

from __future__ import annotations

import math
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

ERROR_TEXT = "#ERROR"


class Number(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: float


class Text(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str


class ErrorValue(BaseModel):
    """The ``#ERROR`` marker.  Stored and displayed like any other value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"

    def __str__(self) -> str:
        return ERROR_TEXT


class Formula(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["formula"] = "formula"
    source: str


CellValue = Annotated[Union[Number, Text, ErrorValue], Field(discriminator="kind")]
CellContent = Annotated[Union[Number, Text, Formula], Field(discriminator="kind")]

ERROR = ErrorValue()


class Cell(BaseModel):
    """One populated cell: its content plus the cached display value."""

    model_config = ConfigDict(frozen=True)

    content: CellContent
    display: CellValue

    @classmethod
    def literal(cls, content: Number | Text) -> Cell:
        return cls(content=content, display=content)

    @property
    def is_formula(self) -> bool:
        return isinstance(self.content, Formula)


# ---------------------------------------------------------------------------
# Classification / conversion helpers
# ---------------------------------------------------------------------------


def parse_number(text: str) -> float | None:
    """Return the finite float that *text* spells, or None.

    Leading/trailing whitespace is ignored.  ``"nan"``, ``"inf"`` and
    the like are rejected.
    """
    s = text.strip()
    if not s:
        return None
    try:
        num = float(s)
    except ValueError:
        return None
    if not math.isfinite(num):
        return None
    return num


def classify_literal(text: str) -> Number | Text:
    """Classify non-formula input as a number when it parses as one."""
    num = parse_number(text)
    if num is not None:
        return Number(value=num)
    return Text(value=text)


def numeric_value(value: Number | Text | ErrorValue | None) -> float:
    """Numeric reading of a value for arithmetic substitution.

    Absent cells and errors read as 0; text reads as its numeric
    conversion when it has one, else 0.
    """
    if isinstance(value, Number):
        return value.value
    if isinstance(value, Text):
        num = parse_number(value.value)
        return num if num is not None else 0.0
    return 0.0


def display_text(value: Number | Text | ErrorValue | None) -> str:
    """Render a value for display or export."""
    if value is None:
        return ""
    if isinstance(value, ErrorValue):
        return ERROR_TEXT
    if isinstance(value, Text):
        return value.value
    num = value.value
    if math.isfinite(num) and num == int(num) and abs(num) < 1e15:
        return str(int(num))
    return f"{num:.10g}"
