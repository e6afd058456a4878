"""smarttable.calc - Formula evaluation engine for smarttable grids."""

from smarttable.calc._errors import (
    CircularReference,
    DivisionByZero,
    EmptyFormula,
    FormulaError,
    InvalidCharacters,
    InvalidExpression,
    InvalidOperatorSequence,
    InvalidRow,
    MaxDepthExceeded,
    NonNumericReference,
    NotAString,
    NotFinite,
    ReferencedCellError,
    UnexpectedToken,
    UnknownColumn,
    UnmatchedParentheses,
)
from smarttable.calc._evaluator import FormulaEvaluator
from smarttable.calc._expression import evaluate_expression, validate_expression
from smarttable.calc._graph import DependencyGraph
from smarttable.calc._parser import extract_dependencies, is_formula
from smarttable.calc._protocol import ERROR_PREFIX, CalcEngine, FormulaResult

__all__ = [
    "CalcEngine",
    "CircularReference",
    "DependencyGraph",
    "DivisionByZero",
    "ERROR_PREFIX",
    "EmptyFormula",
    "FormulaError",
    "FormulaEvaluator",
    "FormulaResult",
    "InvalidCharacters",
    "InvalidExpression",
    "InvalidOperatorSequence",
    "InvalidRow",
    "MaxDepthExceeded",
    "NonNumericReference",
    "NotAString",
    "NotFinite",
    "ReferencedCellError",
    "UnexpectedToken",
    "UnknownColumn",
    "UnmatchedParentheses",
    "evaluate_expression",
    "extract_dependencies",
    "is_formula",
    "validate_expression",
]
