"""Free-text command source: turns chat phrases into structured commands.

Recognised phrasings (case-insensitive)::

    set A1 to 100 | A1 = 100 | put 'hello' in B2
    delete A1 | clear cell A1 | empty B2
    add row | insert new column
    sum A1:A10 | calculate sum of A1 to A10 | add up A1:A10
    average A1:A10 | count cells in A1:A10
    make A1 bold | bold A1:B2 | format A1:A3 as currency
    replace 'old' with 'new' [in A1:B10]
    copy A1:B2 to D1 | move A1 to C1
    =A1+B1            (applies to the selected cell)

Anything else yields ``None``.
"""

from __future__ import annotations

import re

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

_CELL = r"[a-z]+\d+"
_RANGE = rf"{_CELL}(?::{_CELL})?"
_SPAN = rf"({_CELL})(?:\s*:\s*|\s+to\s+)({_CELL})"

_COPY_RE = re.compile(rf"^(copy|move)\s+({_RANGE})\s+to\s+({_CELL})$", re.I)
_REPLACE_RE = re.compile(
    rf"""^replace\s+['"](.+?)['"]\s+with\s+['"](.*?)['"](?:\s+in\s+({_CELL}:{_CELL}))?$""",
    re.I,
)
_SUM_RE = re.compile(rf"^(?:calculate\s+)?(?:sum|add\s+up)(?:\s+of)?\s+{_SPAN}$", re.I)
_AVG_RE = re.compile(rf"^(?:calculate\s+)?average(?:\s+of)?\s+{_SPAN}$", re.I)
_COUNT_RE = re.compile(rf"^count(?:\s+cells)?(?:\s+in)?\s+{_SPAN}$", re.I)
_DELETE_RE = re.compile(rf"^(?:delete|clear|empty)\s+(?:cell\s+)?({_CELL})$", re.I)
_ADD_ROW_RE = re.compile(r"^(?:add|insert)(?:\s+new)?\s+row$", re.I)
_ADD_COL_RE = re.compile(r"^(?:add|insert)(?:\s+new)?\s+column$", re.I)
_FORMAT_RE = re.compile(
    rf"^(?:make\s+({_RANGE})\s+(bold|italic|underline)"
    rf"|format\s+({_RANGE})\s+as\s+(currency|percentage|date)"
    rf"|(bold|italic|underline)\s+({_RANGE}))$",
    re.I,
)
_PUT_RE = re.compile(rf"""^put\s+['"]?(.+?)['"]?\s+in\s+({_CELL})$""", re.I)
_SET_RE = re.compile(rf"^(?:set\s+)?({_CELL})(?:\s+to\s+|\s*=\s*)(.+)$", re.I)


def _strip_quotes(value: str) -> str:
    return value.strip().strip("'\"")


def parse_command(text: str, selected_cell: str | None = None) -> Command | None:
    """Translate one chat phrase into a command, or None if unrecognised.

    Args:
        text: The user's message.
        selected_cell: Target for a bare ``=formula`` message.
    """
    s = text.strip()
    if not s:
        return None

    if s.startswith("="):
        if not selected_cell:
            return None
        return SetValue(cell=selected_cell.upper(), value=s)

    m = _COPY_RE.match(s)
    if m:
        cls = Copy if m.group(1).lower() == "copy" else Move
        return cls(range=m.group(2).upper(), cell=m.group(3).upper())

    m = _REPLACE_RE.match(s)
    if m:
        return Replace(
            find=m.group(1),
            replace_with=m.group(2),
            range=m.group(3).upper() if m.group(3) else ALL_RANGE,
        )

    for pattern, func in ((_SUM_RE, "SUM"), (_AVG_RE, "AVERAGE"), (_COUNT_RE, "COUNT")):
        m = pattern.match(s)
        if m:
            rng = f"{m.group(1).upper()}:{m.group(2).upper()}"
            return Calculate(range=rng, formula=f"{func}({rng})")

    m = _DELETE_RE.match(s)
    if m:
        return DeleteCell(cell=m.group(1).upper())

    if _ADD_ROW_RE.match(s):
        return AddRow()
    if _ADD_COL_RE.match(s):
        return AddColumn()

    m = _FORMAT_RE.match(s)
    if m:
        rng = m.group(1) or m.group(3) or m.group(6)
        style = m.group(2) or m.group(4) or m.group(5)
        return Format(range=rng.upper(), style=style.lower())

    m = _PUT_RE.match(s)
    if m:
        return SetValue(cell=m.group(2).upper(), value=_strip_quotes(m.group(1)))

    m = _SET_RE.match(s)
    if m:
        value = m.group(2).strip()
        if not value.startswith("="):
            value = _strip_quotes(value)
        return SetValue(cell=m.group(1).upper(), value=value)

    return None
