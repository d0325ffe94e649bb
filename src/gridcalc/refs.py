"""A1-style cell reference helpers.

Converts between labels (``"AA12"``) and 0-based ``(col, row)``
coordinates, and expands rectangular ranges into row-major label lists.
Coordinate-space only: nothing here knows about sheet bounds.
"""

from __future__ import annotations

import re

from gridcalc.errors import InvalidReference

_LABEL_RE = re.compile(r"^([A-Za-z]+)([1-9][0-9]*)$")


# ---------------------------------------------------------------------------
# Column letters
# ---------------------------------------------------------------------------


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    if not letters or not letters.isalpha() or not letters.isascii():
        raise InvalidReference(letters, f"Invalid column letters: {letters!r}")
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    if idx < 0:
        raise InvalidReference(str(idx), f"Negative column index: {idx}")
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


# ---------------------------------------------------------------------------
# Single labels
# ---------------------------------------------------------------------------


def label_to_coord(label: str) -> tuple[int, int]:
    """Parse ``'B3'`` -> ``(col, row)`` = ``(1, 2)``.

    Raises:
        InvalidReference: If *label* does not match ``[A-Za-z]+[1-9][0-9]*``.
    """
    if not isinstance(label, str):
        raise InvalidReference(repr(label))
    m = _LABEL_RE.match(label.strip())
    if not m:
        raise InvalidReference(label)
    col = col_letter_to_index(m.group(1))
    row = int(m.group(2)) - 1
    return col, row


def coord_to_label(col: int, row: int) -> str:
    """Build a label from 0-based ``(col, row)``."""
    if row < 0:
        raise InvalidReference(f"({col}, {row})", f"Negative row index: {row}")
    return f"{index_to_col_letter(col)}{row + 1}"


def normalize_label(label: str) -> str:
    """Validate *label* and return its canonical upper-case form."""
    col, row = label_to_coord(label)
    return coord_to_label(col, row)


def is_label(text: str) -> bool:
    """Return True if *text* is a syntactically valid cell label."""
    return isinstance(text, str) and _LABEL_RE.match(text.strip()) is not None


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


def split_range(text: str) -> tuple[str, str]:
    """Split ``"A1:B3"`` into its corners; a bare label is a 1x1 range.

    Both corners are validated and upper-cased.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidReference(str(text), "Empty range")
    parts = text.split(":")
    if len(parts) == 1:
        label = normalize_label(parts[0])
        return label, label
    if len(parts) != 2:
        raise InvalidReference(text, f"Invalid range: {text!r}")
    return normalize_label(parts[0]), normalize_label(parts[1])


def range_bounds(start: str, end: str) -> tuple[int, int, int, int]:
    """Return normalised ``(c0, r0, c1, r1)`` with ``c0 <= c1`` and ``r0 <= r1``."""
    c0, r0 = label_to_coord(start)
    c1, r1 = label_to_coord(end)
    if c0 > c1:
        c0, c1 = c1, c0
    if r0 > r1:
        r0, r1 = r1, r0
    return c0, r0, c1, r1


def expand_range(start: str, end: str) -> list[str]:
    """Expand a rectangular range into a flat list of labels (row-major).

    Corners may be given in any order; each axis is normalised
    independently.

    Args:
        start: One corner, e.g. ``"A1"``.
        end: The opposite corner, e.g. ``"C3"``.

    Returns:
        Labels from top-left to bottom-right, outer loop over rows.
    """
    c0, r0, c1, r1 = range_bounds(start, end)
    labels: list[str] = []
    for r in range(r0, r1 + 1):
        for c in range(c0, c1 + 1):
            labels.append(coord_to_label(c, r))
    return labels


def expand_range_text(text: str) -> list[str]:
    """Expand ``"A1:B2"`` (or a single label) into labels, row-major."""
    start, end = split_range(text)
    return expand_range(start, end)


def offset_label(label: str, d_col: int, d_row: int) -> str:
    """Shift *label* by ``(d_col, d_row)``.

    Raises:
        InvalidReference: If the shifted coordinate would be negative.
    """
    col, row = label_to_coord(label)
    if col + d_col < 0 or row + d_row < 0:
        raise InvalidReference(label, f"Offset moves {label!r} off the grid")
    return coord_to_label(col + d_col, row + d_row)
