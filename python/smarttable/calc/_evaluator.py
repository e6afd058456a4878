"""FormulaEvaluator: reference resolution and formula evaluation for a table.

Formulas are plain text beginning with ``=``.  Evaluating one:

1. strips the ``=`` and checks the body is not blank,
2. rejects the formula if its own cell is already on the evaluation path,
3. validates every referenced cell (column exists, row in range),
4. substitutes each reference with its numeric value, recursing into
   referenced formulas with the path extended by the current cell,
5. evaluates the remaining arithmetic with
   :func:`~smarttable.calc._expression.evaluate_expression`.

Nothing is cached: every call re-evaluates from the loaded snapshot.
"""

from __future__ import annotations

import logging
import math
import re
import sys
from collections.abc import Iterable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from smarttable._utils import parse_number
from smarttable.calc._errors import (
    CircularReference,
    EmptyFormula,
    FormulaError,
    InvalidRow,
    MaxDepthExceeded,
    NonNumericReference,
    NotAString,
    ReferencedCellError,
    UnknownColumn,
)
from smarttable.calc._expression import Number, evaluate_expression
from smarttable.calc._graph import DependencyGraph
from smarttable.calc._parser import (
    CELL_REF_RE,
    cell_sort_key,
    extract_dependencies,
    formula_body,
    is_formula,
    split_cell_id,
)
from smarttable.calc._protocol import FormulaResult

if TYPE_CHECKING:
    from smarttable._table import Table

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 100
DEFAULT_PRECISION = 6

# Python frames used per reference level (_evaluate, _compute,
# _resolve_references, _replace, _resolve_reference, plus slack) and
# frames held back for the caller and the arithmetic parser.
_FRAMES_PER_LEVEL = 8
_RESERVED_FRAMES = 200


def recursion_safe_depth() -> int:
    """Deepest reference chain the interpreter's recursion limit allows."""
    return max(1, (sys.getrecursionlimit() - _RESERVED_FRAMES) // _FRAMES_PER_LEVEL)


def format_number(value: Number) -> str:
    """Positional (non-exponent) text for a number, parenthesized if negative.

    ``1e-07`` becomes ``0.0000001`` and ``-2`` becomes ``(-2)`` so the result
    always passes expression validation when spliced after an operator.
    """
    if isinstance(value, int):
        text = str(value)
    else:
        text = format(Decimal(repr(value)), "f")
    if text.startswith("-"):
        return f"({text})"
    return text


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Evaluates cell formulas against a snapshot of a :class:`~smarttable.Table`.

    Usage::

        evaluator = FormulaEvaluator()
        evaluator.load(table)
        evaluator.evaluate_formula("=B1*2", "C1")
        evaluator.resolve_cell_value(table["C1"], "C1")
    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        precision: int = DEFAULT_PRECISION,
    ) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")
        if precision < 0:
            raise ValueError("precision must be >= 0")
        self.max_depth = max_depth
        self.precision = precision
        self._data: dict[str, dict[int, Any]] = {}
        self._row_count = 0
        self._loaded = False

    def load(self, table: Table) -> None:
        """Snapshot the table's grid.  Later table edits need another load()."""
        self._data = table.snapshot()
        self._row_count = table.row_count
        self._loaded = True

    @classmethod
    def from_table(cls, table: Table, **kwargs: Any) -> FormulaEvaluator:
        evaluator = cls(**kwargs)
        evaluator.load(table)
        return evaluator

    @property
    def effective_max_depth(self) -> int:
        """``max_depth`` capped to what the interpreter stack can hold."""
        return min(self.max_depth, recursion_safe_depth())

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError("Call load() before evaluating formulas")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    @staticmethod
    def is_formula(value: Any) -> bool:
        return is_formula(value)

    @staticmethod
    def extract_dependencies(formula: str) -> list[str]:
        return extract_dependencies(formula)

    def evaluate_formula(
        self,
        formula: Any,
        cell_id: str,
        evaluation_path: Iterable[str] = (),
    ) -> FormulaResult:
        """Evaluate *formula* as if it were stored in *cell_id*.

        Never raises :class:`FormulaError`; failures come back as a result
        with ``is_error=True``.  ``dependencies`` is filled in once the
        referenced cells have been validated, even if a later step fails.
        """
        self._require_loaded()
        dependencies: tuple[str, ...] | None = None
        try:
            body, path, dependencies = self._prepare(formula, cell_id, tuple(evaluation_path))
            value = self._compute(body, path)
        except FormulaError as exc:
            return self._error_result(formula, cell_id, exc, dependencies)
        except RecursionError:
            exc = MaxDepthExceeded(self.effective_max_depth)
            return self._error_result(formula, cell_id, exc, dependencies)
        return FormulaResult(value=value, dependencies=dependencies)

    @staticmethod
    def _error_result(
        formula: Any,
        cell_id: str,
        exc: FormulaError,
        dependencies: tuple[str, ...] | None,
    ) -> FormulaResult:
        logger.debug("Formula %r in %s failed: %s (%s)", formula, cell_id, exc, exc.kind)
        return FormulaResult(
            value="",
            is_error=True,
            error=str(exc),
            dependencies=dependencies,
            kind=exc.kind,
        )

    def resolve_cell_value(self, value: Any, cell_id: str) -> Any:
        """Display value: non-formulas unchanged, formulas evaluated or ``#ERROR: ...``."""
        if not is_formula(value):
            return value
        return self.evaluate_formula(value, cell_id).display

    def get_dependent_cells(self, cell_id: str) -> list[str]:
        """Formula cells whose references include *cell_id*."""
        self._require_loaded()
        return DependencyGraph.from_grid(self._data).dependents_of(cell_id)

    def affected_cells(self, cell_ids: Iterable[str]) -> list[str]:
        """Formula cells needing re-display after *cell_ids* change (transitive)."""
        self._require_loaded()
        return DependencyGraph.from_grid(self._data).affected_cells(set(cell_ids))

    def calculate(self) -> dict[str, Any]:
        """Resolve every formula cell in the snapshot.

        Returns dict of cell_id -> display value, column-major.
        """
        self._require_loaded()
        results: dict[str, Any] = {}
        cells = [
            (f"{column}{row}", value)
            for column, rows in self._data.items()
            for row, value in rows.items()
            if is_formula(value)
        ]
        for cell_id, value in sorted(cells, key=lambda item: cell_sort_key(item[0])):
            results[cell_id] = self.resolve_cell_value(value, cell_id)
        return results

    # ------------------------------------------------------------------
    # Evaluation (raises FormulaError)
    # ------------------------------------------------------------------

    def _evaluate(self, formula: Any, cell_id: str, path: tuple[str, ...]) -> Number:
        body, path, _ = self._prepare(formula, cell_id, path)
        return self._compute(body, path)

    def _prepare(
        self, formula: Any, cell_id: str, path: tuple[str, ...],
    ) -> tuple[str, tuple[str, ...], tuple[str, ...]]:
        """Steps up to reference validation: returns (body, extended path, deps)."""
        if not isinstance(formula, str):
            raise NotAString(formula)

        body = formula_body(formula)
        if not body.strip():
            raise EmptyFormula()

        if cell_id in path:
            raise CircularReference(cell_id)
        max_depth = self.effective_max_depth
        if len(path) >= max_depth:
            raise MaxDepthExceeded(max_depth)
        path = path + (cell_id,)

        # Pre-validate so a bad reference is reported before any recursion
        dependencies = extract_dependencies(body)
        for dep in dependencies:
            self._check_reference(*split_cell_id(dep))
        return body, path, tuple(dependencies)

    def _compute(self, body: str, path: tuple[str, ...]) -> Number:
        expression = self._resolve_references(body, path)
        return evaluate_expression(expression, self.precision)

    def _check_reference(self, column: str, row: int) -> None:
        if column not in self._data:
            raise UnknownColumn(column)
        if row < 1 or row > self._row_count:
            raise InvalidRow(row, self._row_count)

    def _resolve_references(self, expression: str, path: tuple[str, ...]) -> str:
        """Replace each cell reference in *expression* with its numeric text.

        Substitution runs once over the original text, so inserted numbers
        are never rescanned as references.
        """

        def _replace(m: re.Match[str]) -> str:
            column, row = m.group(1), int(m.group(2))
            return self._resolve_reference(column, row, path)

        return CELL_REF_RE.sub(_replace, expression)

    def _resolve_reference(self, column: str, row: int, path: tuple[str, ...]) -> str:
        ref = f"{column}{row}"
        if ref in path:
            raise CircularReference(ref)
        self._check_reference(column, row)

        raw = self._data[column].get(row)

        if raw is None:
            return "0"
        if isinstance(raw, bool):
            raise NonNumericReference(ref, raw)
        if isinstance(raw, (int, float)):
            if not math.isfinite(raw):
                raise NonNumericReference(ref, raw)
            return format_number(raw)
        if not isinstance(raw, str):
            raise NonNumericReference(ref, raw)

        if is_formula(raw):
            try:
                value = self._evaluate(raw, ref, path)
            except FormulaError as exc:
                raise ReferencedCellError(ref, exc) from exc
            return format_number(value)

        text = raw.strip()
        if not text:
            return "0"
        num = parse_number(text)
        if num is None:
            raise NonNumericReference(ref, raw)
        return format_number(num)
