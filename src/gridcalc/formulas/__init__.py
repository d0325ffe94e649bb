"""Cell formula parsing and evaluation.

Public API::

    from gridcalc.formulas import parse_formula, extract_refs, evaluate_tree
"""

from gridcalc.formulas.evaluator import (
    CellResolver,
    aggregate,
    aggregate_names,
    evaluate_tree,
)
from gridcalc.formulas.parser import (
    extract_ranges,
    extract_refs,
    parse_formula,
    validate_formula,
)

__all__ = [
    "CellResolver",
    "aggregate",
    "aggregate_names",
    "evaluate_tree",
    "extract_ranges",
    "extract_refs",
    "parse_formula",
    "validate_formula",
]
