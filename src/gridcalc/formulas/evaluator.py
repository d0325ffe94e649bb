"""Tree-walking evaluator for parsed formula expressions.

Cell values are pulled through a resolver callback so that the caller
(normally :class:`gridcalc.cell_graph.CellGraph`) controls recursion,
memoization and cycle detection.
"""

from __future__ import annotations

import math
from typing import Protocol

from lark import Token, Tree

from gridcalc.errors import FormulaError
from gridcalc.formulas.parser import range_corners
from gridcalc.values import CellValue, Number, Text, numeric_value


# ---------------------------------------------------------------------------
# Resolver protocol
# ---------------------------------------------------------------------------


class CellResolver(Protocol):
    """Protocol for resolving cell references during evaluation."""

    def resolve_cell(self, label: str) -> CellValue | None:
        """Resolve a cell's value (may trigger recursive evaluation)."""
        ...

    def resolve_range(self, start: str, end: str) -> list[CellValue]:
        """Resolve the populated cells of a range, row-major."""
        ...


def evaluate_tree(tree: Tree, resolver: CellResolver) -> float:
    """Evaluate a parsed formula tree to a finite number.

    Args:
        tree: Parse tree from ``parse_formula()``.
        resolver: Source of cell values.

    Returns:
        The computed value.

    Raises:
        FormulaError: On a non-finite result or an unknown node.
        ZeroDivisionError: On division by zero.
        CircularReferenceError: Propagated from the resolver.
    """
    result = _eval(tree, resolver)
    if not math.isfinite(result):
        raise FormulaError(f"Formula produced a non-finite result: {result}")
    return result


def _eval(node: Tree | Token, resolver: CellResolver) -> float:
    if isinstance(node, Token):
        if node.type == "NUMBER":
            return float(node)
        raise FormulaError(f"Unexpected token: {node!r}")

    rule = node.data

    # Start rule just wraps expr
    if rule == "start":
        return _eval(node.children[0], resolver)

    # Arithmetic
    if rule == "add":
        return _eval(node.children[0], resolver) + _eval(node.children[1], resolver)
    if rule == "sub":
        return _eval(node.children[0], resolver) - _eval(node.children[1], resolver)
    if rule == "mul":
        return _eval(node.children[0], resolver) * _eval(node.children[1], resolver)
    if rule == "div":
        left = _eval(node.children[0], resolver)
        right = _eval(node.children[1], resolver)
        if right == 0:
            raise ZeroDivisionError("Division by zero in formula")
        return left / right
    if rule == "neg":
        return -_eval(node.children[0], resolver)
    if rule == "pos":
        return _eval(node.children[0], resolver)

    # Literals
    if rule == "number":
        return float(node.children[0])

    # Cell reference: absent, text and error cells read as numbers (0 fallback)
    if rule == "cell_ref":
        label = str(node.children[0]).upper()
        return numeric_value(resolver.resolve_cell(label))

    if rule == "aggregate":
        func_name = str(node.children[0]).upper()
        start, end = range_corners(node.children[1])
        values = resolver.resolve_range(start, end)
        return aggregate(func_name, values)

    raise FormulaError(f"Unknown node type: {rule}")


# ---------- Aggregates ----------


def _fn_sum(values: list[CellValue]) -> float:
    return float(sum(v.value for v in values if isinstance(v, Number)))


def _fn_average(values: list[CellValue]) -> float:
    nums = [v.value for v in values if isinstance(v, Number)]
    if not nums:
        return 0.0
    return sum(nums) / len(nums)


def _fn_count(values: list[CellValue]) -> float:
    # Errors are present but neither numeric nor text.
    count = sum(
        1 for v in values
        if isinstance(v, Number) or (isinstance(v, Text) and v.value != "")
    )
    return float(count)


_AGGREGATES = {
    "SUM": _fn_sum,
    "AVERAGE": _fn_average,
    "COUNT": _fn_count,
}


def aggregate(func_name: str, values: list[CellValue]) -> float:
    """Fold *values* with the named aggregate (``SUM``/``AVERAGE``/``COUNT``)."""
    fn = _AGGREGATES.get(func_name.upper())
    if fn is None:
        raise FormulaError(f"Unknown aggregate: {func_name!r}")
    return fn(values)


def aggregate_names() -> list[str]:
    return list(_AGGREGATES)
