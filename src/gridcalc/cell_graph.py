"""On-demand memoized cell formula evaluator.

Evaluates formulas lazily against a snapshot of the cell mapping: a cell
is computed only when referenced, and the result is cached for the
duration of one evaluation pass.  The snapshot is never mutated.

Dependencies are walked with an explicit work-stack, so a formula is
evaluated only after every formula cell it reads has a cached value and
chain length is not limited by the interpreter's recursion depth.

Cycle policy: the cells on the active chain are tracked; reaching one
of them again marks every cell from that point up the chain as
``#ERROR``.  Formulas outside the cycle read those cells as ordinary
error values.
"""

from __future__ import annotations

import logging
from typing import Iterator, Mapping

from lark import Tree

from gridcalc.errors import CircularReferenceError, FormulaError
from gridcalc.formulas.evaluator import evaluate_tree
from gridcalc.formulas.parser import extract_ranges, extract_refs, parse_formula
from gridcalc.refs import expand_range, label_to_coord, range_bounds
from gridcalc.sheet import Sheet
from gridcalc.values import ERROR, Cell, CellValue, Formula, Number

logger = logging.getLogger(__name__)


class CellGraph:
    """Memoized evaluator for the formulas of one snapshot.

    Usage::

        cg = CellGraph(sheet)
        value = cg.evaluate_cell("C1")

        # Or evaluate all formula cells:
        results = cg.evaluate_all()

    Parameters
    ----------
    snapshot : Sheet | Mapping[str, Cell]
        The cell mapping to read.  Keys are canonical upper-case labels.
    """

    def __init__(self, snapshot: Sheet | Mapping[str, Cell]) -> None:
        self._cells: Mapping[str, Cell] = (
            snapshot.cells if isinstance(snapshot, Sheet) else snapshot
        )
        self._cache: dict[str, CellValue | None] = {}
        self._trees: dict[str, Tree | FormulaError] = {}
        self._eval_stack: list[str] = []
        self._in_progress: set[str] = set()
        self._errors: dict[str, str] = {}

    # ------------------------------------------------------------------
    # CellResolver protocol implementation
    # ------------------------------------------------------------------

    def resolve_cell(self, label: str) -> CellValue | None:
        return self.evaluate_cell(label)

    def resolve_range(self, start: str, end: str) -> list[CellValue]:
        """Values of the populated cells in a range, row-major."""
        values: list[CellValue] = []
        for label in self._populated_in_range(start, end):
            val = self.evaluate_cell(label)
            if val is not None:
                values.append(val)
        return values

    def _populated_in_range(self, start: str, end: str) -> list[str]:
        """Populated labels inside a range, row-major.

        Absent cells contribute nothing to any aggregate, so when the
        range is larger than the populated mapping only the populated
        labels are visited.
        """
        c0, r0, c1, r1 = range_bounds(start, end)
        area = (c1 - c0 + 1) * (r1 - r0 + 1)
        if area <= len(self._cells):
            return [label for label in expand_range(start, end) if label in self._cells]
        inside = []
        for label in self._cells:
            col, row = label_to_coord(label)
            if c0 <= col <= c1 and r0 <= row <= r1:
                inside.append((row, col, label))
        return [label for _, _, label in sorted(inside)]

    # ------------------------------------------------------------------
    # Core evaluation
    # ------------------------------------------------------------------

    def evaluate_cell(self, label: str) -> CellValue | None:
        """Evaluate a single cell, with memoization and cycle detection.

        Returns:
            The cell's value, or None if the cell is absent.
        """
        label = label.upper()
        if label in self._cache:
            return self._cache[label]

        cell = self._cells.get(label)
        if cell is None:
            return None
        if not isinstance(cell.content, Formula):
            self._cache[label] = cell.content
            return cell.content

        if label in self._in_progress:
            self._mark_cycle(label)
        else:
            self._evaluate_chain(label)
        return self._cache[label]

    def _evaluate_chain(self, root: str) -> None:
        """Evaluate *root* after every formula cell it depends on."""
        pending: list[tuple[str, Iterator[str]]] = []

        def enter(label: str) -> None:
            self._in_progress.add(label)
            self._eval_stack.append(label)
            pending.append((label, iter(self._formula_deps(label))))

        enter(root)
        while pending:
            label, deps = pending[-1]
            for dep in deps:
                if dep in self._cache:
                    continue
                if dep in self._in_progress:
                    self._mark_cycle(dep)
                    continue
                enter(dep)
                break
            else:
                pending.pop()
                self._eval_stack.pop()
                self._in_progress.discard(label)
                if label not in self._cache:
                    self._cache[label] = self._compute(label)

    def _mark_cycle(self, label: str) -> None:
        start = self._eval_stack.index(label)
        members = self._eval_stack[start:]
        exc = CircularReferenceError(members + [label])
        logger.debug("%s", exc)
        for member in members:
            self._cache[member] = ERROR
            self._errors[member] = str(exc)

    def _tree(self, label: str) -> Tree | FormulaError:
        if label not in self._trees:
            content = self._cells[label].content
            try:
                self._trees[label] = parse_formula(content.source)
            except FormulaError as exc:
                self._trees[label] = exc
        return self._trees[label]

    def _formula_deps(self, label: str) -> list[str]:
        tree = self._tree(label)
        if isinstance(tree, FormulaError):
            return []
        return self._tree_deps(tree)

    def _tree_deps(self, tree: Tree) -> list[str]:
        """Formula cells read by *tree*, directly or through a range."""
        labels = sorted(extract_refs(tree))
        for start, end in extract_ranges(tree):
            labels.extend(self._populated_in_range(start, end))
        return [
            label for label in dict.fromkeys(labels)
            if label in self._cells and isinstance(self._cells[label].content, Formula)
        ]

    def _compute(self, label: str) -> CellValue:
        tree = self._tree(label)
        if isinstance(tree, FormulaError):
            self._errors[label] = str(tree)
            return ERROR
        return self._evaluate_tree(tree, label, self._cells[label].content.source)

    def _evaluate_tree(self, tree: Tree, label: str | None, source: str) -> CellValue:
        try:
            return Number(value=evaluate_tree(tree, self))
        except (FormulaError, ArithmeticError, RecursionError) as exc:
            if label is not None:
                self._errors[label] = str(exc)
            logger.debug("Formula %r evaluated to #ERROR: %s", source, exc)
            return ERROR

    def evaluate_source(self, source: str) -> CellValue:
        """Evaluate formula text that is not stored in any cell.

        Cycles among the referenced cells are still detected; they read
        as error values here.
        """
        try:
            tree = parse_formula(source)
        except FormulaError as exc:
            logger.debug("Formula %r evaluated to #ERROR: %s", source, exc)
            return ERROR
        for dep in self._tree_deps(tree):
            self.evaluate_cell(dep)
        return self._evaluate_tree(tree, None, source)

    def evaluate_all(self) -> dict[str, CellValue]:
        """Evaluate every formula cell in the snapshot.

        Returns:
            Dict of label -> computed value for formula cells.
        """
        results: dict[str, CellValue] = {}
        for label, cell in self._cells.items():
            if isinstance(cell.content, Formula):
                val = self.evaluate_cell(label)
                results[label] = val if val is not None else ERROR
        return results

    def get_errors(self) -> dict[str, str]:
        """Return evaluation errors collected during this pass (label -> message)."""
        return dict(self._errors)

    def invalidate(self) -> None:
        """Clear all cached values and errors."""
        self._cache.clear()
        self._in_progress.clear()
        self._eval_stack.clear()
        self._errors.clear()


# ---------------------------------------------------------------------------
# Pure entry points
# ---------------------------------------------------------------------------


def evaluate(formula_text: str, snapshot: Sheet | Mapping[str, Cell]) -> CellValue:
    """Evaluate *formula_text* against *snapshot* without mutating it.

    Evaluation failures of any kind yield the ``#ERROR`` value.
    """
    return CellGraph(snapshot).evaluate_source(formula_text)


def recompute_all(sheet: Sheet) -> Sheet:
    """Return a copy of *sheet* whose formula cells carry fresh display values."""
    return recompute_with_errors(sheet)[0]


def recompute_with_errors(sheet: Sheet) -> tuple[Sheet, dict[str, str]]:
    """Like :func:`recompute_all`, also returning per-cell error messages."""
    graph = CellGraph(sheet)
    results = graph.evaluate_all()
    out = sheet.copy()
    for label, value in results.items():
        cell = out.cells[label]
        if cell.display != value:
            out.cells[label] = Cell(content=cell.content, display=value)
    errors = graph.get_errors()
    if errors:
        logger.debug("Recompute of %s left %d error cell(s)", sheet.sheet_id, len(errors))
    return out, errors
