"""Sheet cell engine: type inference, formulas, dependency tracking"""

from .classifier import classify, coerce, parse_input
from .references import CellRange, make_address, normalize_address, split_address
from .formula import evaluate, formula_references, parse_formula
from .dependencies import DependencyGraph, EvaluationPlan
from .grid import Grid
from .export import export_csv, export_xlsx

__all__ = [
    "classify",
    "coerce",
    "parse_input",
    "CellRange",
    "make_address",
    "normalize_address",
    "split_address",
    "evaluate",
    "formula_references",
    "parse_formula",
    "DependencyGraph",
    "EvaluationPlan",
    "Grid",
    "export_csv",
    "export_xlsx",
]
