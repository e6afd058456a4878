"""Table - the grid the formula engine reads from.

Owns the column -> row -> value matrix, the column configuration and the row
count.  All structural mutations go through methods here so stored formula
text can be rewritten once, at mutation time, to match the new coordinates.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from smarttable._config import TableLimits
from smarttable._utils import column_letters, is_column_id, parse_number
from smarttable.calc._evaluator import FormulaEvaluator
from smarttable.calc._parser import (
    is_formula,
    references_column,
    references_row,
    shift_row_references,
    split_cell_id,
)

logger = logging.getLogger(__name__)

ColumnType = Literal["text", "number"]
CellValue = int | float | str

DELETED_COLUMN_SENTINEL = "#ERROR: Reference to deleted column {column}"
DELETED_ROW_SENTINEL = "#ERROR: Reference to deleted row {row}"


class ColumnConfig(BaseModel):
    """Identifier, display label and advisory type of one column."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., pattern=r"^[A-Z]+$", description="Column letters")
    label: str = Field(..., min_length=1, max_length=50, description="Header label")
    type: ColumnType = Field("text", description="Editor input type")


class Table:
    """A small spreadsheet grid with formula-aware row/column mutations.

    Usage::

        table = Table(
            {"A": {1: "Widget"}, "B": {1: 3}, "C": {1: "=B1*2"}},
            columns=[ColumnConfig(id="A", label="Name"), ...],
            row_count=1,
        )
        table.add_row()
        table["B2"] = 4
        table.evaluator().resolve_cell_value(table["C1"], "C1")
    """

    __slots__ = ("_data", "_columns", "_row_count", "_limits")

    def __init__(
        self,
        data: Mapping[str, Mapping[int, CellValue]] | None = None,
        columns: Iterable[ColumnConfig] | None = None,
        row_count: int | None = None,
        limits: TableLimits | None = None,
    ) -> None:
        self._limits = limits or TableLimits()
        self._data: dict[str, dict[int, CellValue]] = {
            col: dict(rows) for col, rows in (data or {}).items()
        }
        for col in self._data:
            if not is_column_id(col):
                raise ValueError(f"Invalid column identifier: {col!r}")
        if columns is None:
            columns = [ColumnConfig(id=col, label=f"Column {col}") for col in self._data]
        self._columns: list[ColumnConfig] = list(columns)
        for column in self._columns:
            self._data.setdefault(column.id, {})
        known = {c.id for c in self._columns}
        for col in self._data:
            if col not in known:
                self._columns.append(ColumnConfig(id=col, label=f"Column {col}"))
        if row_count is None:
            row_count = max(
                (row for rows in self._data.values() for row in rows), default=1,
            )
        if row_count < 0:
            raise ValueError("row_count must be >= 0")
        self._row_count = row_count

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def data(self) -> dict[str, dict[int, CellValue]]:
        return self._data

    @property
    def columns(self) -> list[ColumnConfig]:
        return list(self._columns)

    @property
    def column_ids(self) -> list[str]:
        return [c.id for c in self._columns]

    @property
    def row_count(self) -> int:
        return self._row_count

    @property
    def limits(self) -> TableLimits:
        return self._limits

    def column(self, column_id: str) -> ColumnConfig:
        for column in self._columns:
            if column.id == column_id:
                return column
        raise KeyError(f"Column '{column_id}' does not exist")

    def __getitem__(self, cell_id: str) -> CellValue:
        """``table['B2']`` -> stored value, ``""`` when empty."""
        column, row = split_cell_id(cell_id)
        if column not in self._data:
            raise KeyError(f"Column '{column}' does not exist")
        return self._data[column].get(row, "")

    def __setitem__(self, cell_id: str, value: CellValue) -> None:
        """``table['B2'] = 4`` - raw write, no editor validation."""
        column, row = split_cell_id(cell_id)
        if column not in self._data:
            raise KeyError(f"Column '{column}' does not exist")
        if row < 1 or row > self._row_count:
            raise IndexError(f"Row {row} is outside 1..{self._row_count}")
        self._data[column][row] = value

    def __contains__(self, cell_id: str) -> bool:
        try:
            column, row = split_cell_id(cell_id)
        except ValueError:
            return False
        return column in self._data and 1 <= row <= self._row_count

    def iter_cells(self) -> Iterator[tuple[str, CellValue]]:
        """Yield ``(cell_id, value)`` for every stored cell, column by column."""
        for column in self.column_ids:
            for row in sorted(self._data[column]):
                yield f"{column}{row}", self._data[column][row]

    def snapshot(self) -> dict[str, dict[int, CellValue]]:
        """Deep copy of the grid; what evaluators load."""
        return copy.deepcopy(self._data)

    def evaluator(self, **kwargs: Any) -> FormulaEvaluator:
        """A :class:`FormulaEvaluator` loaded with the current grid."""
        kwargs.setdefault("max_depth", self._limits.max_cells)
        return FormulaEvaluator.from_table(self, **kwargs)

    # ------------------------------------------------------------------
    # Cell editing
    # ------------------------------------------------------------------

    def set_cell_input(self, cell_id: str, raw: str) -> CellValue:
        """Commit text typed into the editor, coerced by the column type.

        Formulas are stored as text in either column type.  In a ``number``
        column an empty entry stays empty and anything else must parse as a
        number.  Returns the stored value.
        """
        column_id, _ = split_cell_id(cell_id)
        column = self.column(column_id)
        text = raw.strip()
        value: CellValue = text
        if column.type == "number" and text and not is_formula(text):
            number = parse_number(text)
            if number is None:
                raise ValueError(
                    f"Column '{column.label}' expects a number, got {text!r}"
                )
            value = int(number) if number.is_integer() else number
        self[cell_id] = value
        return value

    # ------------------------------------------------------------------
    # Row operations
    # ------------------------------------------------------------------

    @property
    def can_add_row(self) -> bool:
        return self._row_count < self._limits.max_rows

    @property
    def can_remove_row(self) -> bool:
        return self._row_count > self._limits.min_rows

    def add_row(self) -> int:
        """Append an empty row and return its index."""
        return self.insert_row(self._row_count + 1)

    def insert_row(self, index: int) -> int:
        """Insert an empty row before *index*, shifting later rows down.

        Formula references to rows ``>= index`` are incremented.
        """
        if not self.can_add_row:
            logger.warning("Cannot add row: maximum of %d rows allowed", self._limits.max_rows)
            raise ValueError(f"Maximum of {self._limits.max_rows} rows allowed")
        if index < 1 or index > self._row_count + 1:
            raise IndexError(f"Row {index} is outside 1..{self._row_count + 1}")

        for column in list(self._data):
            shifted: dict[int, CellValue] = {}
            for row, value in self._data[column].items():
                shifted[row + 1 if row >= index else row] = value
            shifted[index] = ""
            self._data[column] = shifted
        self._row_count += 1

        if index <= self._row_count - 1:
            self._rewrite_formulas(lambda f: shift_row_references(f, index, 1))
        return index

    def remove_row(self) -> None:
        """Remove the last row."""
        self.remove_row_at(self._row_count)

    def remove_row_at(self, index: int) -> None:
        """Remove row *index*; later rows shift up.

        Formulas referencing the removed row are replaced by an error sentinel;
        references to later rows are decremented.
        """
        if not self.can_remove_row:
            logger.warning("Cannot remove row: minimum of %d row required", self._limits.min_rows)
            raise ValueError(f"Minimum of {self._limits.min_rows} row required")
        if index < 1 or index > self._row_count:
            raise IndexError(f"Row {index} is outside 1..{self._row_count}")

        for column in list(self._data):
            kept: dict[int, CellValue] = {}
            for row, value in self._data[column].items():
                if row == index:
                    continue
                kept[row - 1 if row > index else row] = value
            self._data[column] = kept
        self._row_count -= 1

        sentinel = DELETED_ROW_SENTINEL.format(row=index)
        invalidated = self._rewrite_formulas(
            lambda f: sentinel
            if references_row(f, index)
            else shift_row_references(f, index + 1, -1)
        )
        logger.debug("Removed row %d; %d formula(s) invalidated", index, invalidated)

    # ------------------------------------------------------------------
    # Column operations
    # ------------------------------------------------------------------

    @property
    def can_add_column(self) -> bool:
        return len(self._columns) < self._limits.max_columns

    @property
    def can_remove_column(self) -> bool:
        return len(self._columns) > self._limits.min_columns

    def next_column_id(self) -> str:
        """First identifier in A, B, ..., Z, AA, ... not already in use."""
        existing = set(self._data)
        for i in range(self._limits.max_columns):
            column_id = column_letters(i)
            if column_id not in existing:
                return column_id
        raise ValueError("Maximum number of columns reached")

    def add_column(self, label: str = "", type: ColumnType = "text") -> ColumnConfig:
        """Append a column filled with empty cells."""
        if not self.can_add_column:
            logger.warning(
                "Cannot add column: maximum of %d columns allowed", self._limits.max_columns,
            )
            raise ValueError(f"Maximum of {self._limits.max_columns} columns allowed")
        column_id = self.next_column_id()
        label = label.strip() or f"Column {column_id}"
        self._check_label(label)
        config = ColumnConfig(id=column_id, label=label, type=type)
        self._columns.append(config)
        self._data[column_id] = {row: "" for row in range(1, self._row_count + 1)}
        return config

    def remove_column(self) -> None:
        """Remove the last column."""
        if not self._columns:
            raise ValueError("Table has no columns")
        self.remove_column_at(self._columns[-1].id)

    def remove_column_at(self, column_id: str) -> None:
        """Remove *column_id*.  Remaining columns keep their identifiers.

        Formulas referencing the removed column are replaced by an error
        sentinel.
        """
        if not self.can_remove_column:
            logger.warning(
                "Cannot remove column: minimum of %d column required", self._limits.min_columns,
            )
            raise ValueError(f"Minimum of {self._limits.min_columns} column required")
        self.column(column_id)  # KeyError if unknown

        self._columns = [c for c in self._columns if c.id != column_id]
        del self._data[column_id]

        sentinel = DELETED_COLUMN_SENTINEL.format(column=column_id)
        invalidated = self._rewrite_formulas(
            lambda f: sentinel if references_column(f, column_id) else f
        )
        logger.debug("Removed column %s; %d formula(s) invalidated", column_id, invalidated)

    def update_column(
        self,
        column_id: str,
        label: str | None = None,
        type: ColumnType | None = None,
    ) -> ColumnConfig:
        config = self.column(column_id)
        if label is not None:
            label = label.strip()
            self._check_label(label)
            config.label = label
        if type is not None:
            config.type = type
        return config

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_label(self, label: str) -> None:
        if not label:
            raise ValueError("Column label is required")
        if len(label) > self._limits.max_label_length:
            raise ValueError(
                f"Column label must be {self._limits.max_label_length} characters or less"
            )

    def _rewrite_formulas(self, rewrite: Callable[[str], str]) -> int:
        """Apply *rewrite* to every stored formula; return how many became sentinels."""
        invalidated = 0
        for rows in self._data.values():
            for row, value in rows.items():
                if is_formula(value):
                    new_value = rewrite(value)
                    if not is_formula(new_value):
                        invalidated += 1
                    rows[row] = new_value
        return invalidated

    def __repr__(self) -> str:
        return f"<Table columns={self.column_ids} rows={self._row_count}>"
