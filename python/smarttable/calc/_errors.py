"""Typed formula errors.

Every failure the engine can report is a :class:`FormulaError` subclass with a
stable ``kind`` string.  They are raised internally and converted into a
:class:`~smarttable.calc.FormulaResult` by ``FormulaEvaluator.evaluate_formula``;
they never escape the public evaluate/resolve calls.
"""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formula evaluation failures."""

    kind = "FormulaError"

    def __init__(self, message: str = "Invalid formula") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidExpression(FormulaError):
    kind = "InvalidExpression"

    def __init__(self, message: str = "Invalid mathematical expression") -> None:
        super().__init__(message)


class NotAString(FormulaError):
    kind = "NotAString"

    def __init__(self, value: object = None) -> None:
        super().__init__("Formula must be a string")
        self.value = value


class EmptyFormula(FormulaError):
    kind = "EmptyFormula"

    def __init__(self) -> None:
        super().__init__("Empty formula")


class CircularReference(FormulaError):
    kind = "CircularReference"

    def __init__(self, cell_id: str) -> None:
        super().__init__(f"Circular reference detected involving {cell_id}")
        self.cell_id = cell_id


class UnknownColumn(FormulaError):
    kind = "UnknownColumn"

    def __init__(self, column: str) -> None:
        super().__init__(f"Column '{column}' does not exist")
        self.column = column


class InvalidRow(FormulaError):
    kind = "InvalidRow"

    def __init__(self, row: int, row_count: int) -> None:
        super().__init__(
            f"Invalid row number: {row}. Must be between 1 and {row_count}"
        )
        self.row = row
        self.row_count = row_count


class NonNumericReference(FormulaError):
    kind = "NonNumericReference"

    def __init__(self, cell_id: str, raw: object) -> None:
        super().__init__(f'Cell {cell_id} contains non-numeric value: "{raw}"')
        self.cell_id = cell_id
        self.raw = raw


class ReferencedCellError(FormulaError):
    """A referenced formula cell failed; wraps the inner error."""

    kind = "ReferencedCellError"

    def __init__(self, cell_id: str, inner: FormulaError) -> None:
        super().__init__(f"Error in cell {cell_id}: {inner}")
        self.cell_id = cell_id
        self.inner = inner

    @property
    def root_cause(self) -> FormulaError:
        """The innermost non-wrapping error in the reference chain."""
        err: FormulaError = self.inner
        while isinstance(err, ReferencedCellError):
            err = err.inner
        return err


class MaxDepthExceeded(FormulaError):
    kind = "MaxDepthExceeded"

    def __init__(self, max_depth: int) -> None:
        super().__init__(f"Reference chain exceeds maximum depth of {max_depth}")
        self.max_depth = max_depth


class InvalidCharacters(FormulaError):
    kind = "InvalidCharacters"

    def __init__(self) -> None:
        super().__init__(
            "Invalid characters in expression. "
            "Use only numbers and operators (+, -, *, /)"
        )


class InvalidOperatorSequence(FormulaError):
    kind = "InvalidOperatorSequence"

    def __init__(self) -> None:
        super().__init__("Invalid operator sequence")


class UnmatchedParentheses(FormulaError):
    kind = "UnmatchedParentheses"

    def __init__(self) -> None:
        super().__init__("Unmatched parentheses")


class DivisionByZero(FormulaError):
    kind = "DivisionByZero"

    def __init__(self) -> None:
        super().__init__("Division by zero")


class UnexpectedToken(InvalidExpression):
    kind = "UnexpectedToken"

    def __init__(self, token: str, position: int | None = None) -> None:
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Unexpected token: {token}{where}")
        self.token = token
        self.position = position


class NotFinite(FormulaError):
    kind = "NotFinite"

    def __init__(self) -> None:
        super().__init__("Result is not finite (infinity or NaN)")
