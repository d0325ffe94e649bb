"""Lark-based parser for cell formulas.

Supports:
- In-sheet cell references: ``F2``, ``aa10`` (case-insensitive)
- Aggregates over a range: ``SUM(A1:B3)``, ``average(C2)``, ``COUNT(A1:A9)``
- Arithmetic: ``+ - * /``, unary sign, parentheses, decimal literals

Nothing else is accepted: there are no names, strings, comparisons or
other functions, so formula text never reaches a general-purpose
evaluator.
"""

from __future__ import annotations

from lark import Lark, Token, Tree, Visitor
from lark.exceptions import LarkError

from gridcalc.errors import FormulaParseError

# LALR(1) grammar.  Operator precedence (lowest to highest):
#   1. Addition/subtraction: + -
#   2. Multiplication/division: * /
#   3. Unary plus/minus: + -
#   4. Atoms: number, aggregate call, cell reference, parenthesized expr
GRAMMAR = r"""
start: "=" expr

?expr: addition

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div

?unary: atom
    | "-" unary  -> neg
    | "+" unary  -> pos

?atom: NUMBER                         -> number
    | AGG_FUNC "(" ref_range ")"      -> aggregate
    | CELL_REF                        -> cell_ref
    | "(" expr ")"

ref_range: CELL_REF (":" CELL_REF)?

// Aggregate keyword; never the prefix of a longer identifier such as SUM1.
AGG_FUNC.2: /(sum|average|count)(?![A-Za-z0-9_])/i

// Cell ref: letters then a 1-based row number (A1, aa10, XFD1048576).
CELL_REF: /[A-Za-z]+[1-9][0-9]*/

%import common.NUMBER
%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


def parse_formula(text: str) -> Tree:
    """Parse a formula string (must start with ``=``) into a Lark Tree.

    Args:
        text: The formula text, e.g. ``"=SUM(A1:A3) / 2"``.

    Returns:
        A Lark parse tree.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not text.startswith("="):
        raise FormulaParseError("Formula must start with '='", position=0)
    try:
        return _parser.parse(text)
    except LarkError as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(str(exc).splitlines()[0], position=pos) from exc


def range_corners(node: Tree) -> tuple[str, str]:
    """Return the upper-cased corners of a ``ref_range`` node."""
    labels = [str(tok).upper() for tok in node.children]
    if len(labels) == 1:
        return labels[0], labels[0]
    return labels[0], labels[1]


class _RefCollector(Visitor):
    """Visitor that collects cell references and ranges from a parse tree."""

    def __init__(self) -> None:
        self.cell_refs: set[str] = set()
        self.ranges: list[tuple[str, str]] = []

    def cell_ref(self, tree: Tree) -> None:
        token = tree.children[0]
        if isinstance(token, Token):
            self.cell_refs.add(str(token).upper())

    def ref_range(self, tree: Tree) -> None:
        self.ranges.append(range_corners(tree))


def extract_refs(tree: Tree) -> set[str]:
    """Extract bare cell references (outside aggregates) from a parse tree."""
    collector = _RefCollector()
    collector.visit(tree)
    return collector.cell_refs


def extract_ranges(tree: Tree) -> list[tuple[str, str]]:
    """Extract aggregate ranges as ``(start, end)`` corner pairs."""
    collector = _RefCollector()
    collector.visit(tree)
    return collector.ranges


def validate_formula(text: str) -> dict:
    """Lightweight parse-only validation (no evaluation).

    Returns:
        Dict with ``valid`` bool and, when invalid, ``message`` and
        optionally ``position``; when valid, the referenced ``refs``.
    """
    if not text.strip().startswith("="):
        return {"valid": False, "message": "Formula must start with '='"}
    try:
        tree = parse_formula(text)
    except FormulaParseError as exc:
        result: dict = {"valid": False, "message": str(exc)}
        if exc.position is not None:
            result["position"] = exc.position
        return result
    refs = extract_refs(tree)
    for start, end in extract_ranges(tree):
        refs.update((start, end))
    return {"valid": True, "refs": sorted(refs)}
