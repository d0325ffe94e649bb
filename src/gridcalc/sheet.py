"""Sheet: a sparse mapping from cell label to :class:`Cell` plus grid bounds."""

from __future__ import annotations

from typing import Iterator

from gridcalc.refs import label_to_coord, normalize_label
from gridcalc.values import Cell

DEFAULT_ROWS = 1000
DEFAULT_COLS = 1000


class Sheet:
    """One open document.

    Parameters
    ----------
    sheet_id : str
        Identity assigned by the persistence collaborator.
    name : str
        Display name shown on the sheet tab.
    n_rows, n_cols : int
        Logical grid bounds.  References beyond them are implicitly
        empty, never an error.
    cells : dict[str, Cell] | None
        Initial populated cells keyed by label.
    """

    def __init__(
        self,
        sheet_id: str,
        name: str | None = None,
        n_rows: int = DEFAULT_ROWS,
        n_cols: int = DEFAULT_COLS,
        cells: dict[str, Cell] | None = None,
    ) -> None:
        if n_rows < 0 or n_cols < 0:
            raise ValueError("Sheet bounds must be non-negative")
        self.sheet_id = sheet_id
        self.name = name or sheet_id
        self.n_rows = n_rows
        self.n_cols = n_cols
        self.cells: dict[str, Cell] = {}
        for label, cell in (cells or {}).items():
            self.cells[normalize_label(label)] = cell

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, label: str) -> Cell | None:
        """Return the cell at *label*, or None when absent."""
        return self.cells.get(label.upper())

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and label.upper() in self.cells

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[str]:
        return iter(self.cells)

    def labels(self) -> list[str]:
        """Populated labels, row-major."""
        return sorted(self.cells, key=_row_major_key)

    def in_bounds(self, label: str) -> bool:
        col, row = label_to_coord(label)
        return col < self.n_cols and row < self.n_rows

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def copy(self) -> Sheet:
        """Shallow copy: a new mapping sharing the (immutable) cells."""
        return Sheet(
            self.sheet_id,
            self.name,
            n_rows=self.n_rows,
            n_cols=self.n_cols,
            cells=dict(self.cells),
        )

    def duplicate(self, sheet_id: str, name: str | None = None) -> Sheet:
        """Copy this sheet under a new identity."""
        dup = self.copy()
        dup.sheet_id = sheet_id
        dup.name = name or f"{self.name} (Copy)"
        return dup

    def __repr__(self) -> str:
        return (
            f"Sheet(sheet_id={self.sheet_id!r}, name={self.name!r}, "
            f"n_rows={self.n_rows}, n_cols={self.n_cols}, cells={len(self.cells)})"
        )


def _row_major_key(label: str) -> tuple[int, int]:
    col, row = label_to_coord(label)
    return row, col
