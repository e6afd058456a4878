"""CalcEngine protocol and result dataclasses."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from smarttable._table import Table

ERROR_PREFIX = "#ERROR: "


@dataclass(frozen=True)
class FormulaResult:
    """Outcome of evaluating one formula.

    On success ``value`` holds the rounded number.  On failure ``value`` is
    ``""``, ``is_error`` is True and ``error`` carries the message.
    ``dependencies`` is None when evaluation failed before references were
    validated.
    """

    value: float | int | str
    is_error: bool = False
    error: str | None = None
    dependencies: tuple[str, ...] | None = None
    kind: str | None = None  # FormulaError.kind of the failure

    @property
    def display(self) -> float | int | str:
        """Value as shown in the grid: the number, or ``#ERROR: <message>``."""
        if self.is_error:
            return f"{ERROR_PREFIX}{self.error}"
        return self.value


@runtime_checkable
class CalcEngine(Protocol):
    """Contract between the grid collaborator and a formula engine."""

    def load(self, table: Table) -> None:
        """Take an immutable snapshot of the table's grid."""
        ...

    def is_formula(self, value: Any) -> bool:
        ...

    def extract_dependencies(self, formula: str) -> list[str]:
        ...

    def evaluate_formula(
        self,
        formula: Any,
        cell_id: str,
        evaluation_path: Iterable[str] = (),
    ) -> FormulaResult:
        """Evaluate a formula as if stored at *cell_id*.  Never raises FormulaError."""
        ...

    def resolve_cell_value(self, value: Any, cell_id: str) -> Any:
        """Display value: non-formulas pass through, formulas are evaluated."""
        ...

    def get_dependent_cells(self, cell_id: str) -> list[str]:
        """Formula cells that reference *cell_id* directly."""
        ...
