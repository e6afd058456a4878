"""Formula classification, reference extraction and reference rewriting."""

from __future__ import annotations

import re
from typing import Any

from smarttable._utils import column_index

# ---------------------------------------------------------------------------
# Regex patterns for cell reference extraction
# ---------------------------------------------------------------------------

# Whole-token cell ref: A1, B12, AA3 (uppercase only, no sheet prefix, no $).
# A ref touching a "." (A1.5, .A1) is not a ref, so it fails as text.
CELL_REF_RE = re.compile(r"(?<!\.)\b([A-Z]+)(\d+)\b(?!\.)")

_CELL_ID_RE = re.compile(r"^([A-Z]+)(\d+)$")


def is_formula(value: Any) -> bool:
    """True iff *value* is text whose first character is ``=``."""
    return isinstance(value, str) and value.startswith("=")


def formula_body(formula: str) -> str:
    """Strip a single leading ``=`` if present."""
    return formula[1:] if formula.startswith("=") else formula


def split_cell_id(cell_id: str) -> tuple[str, int]:
    """Split ``"B12"`` into ``("B", 12)``.

    Raises ValueError for anything that is not ``[A-Z]+[0-9]+``.
    """
    m = _CELL_ID_RE.match(cell_id)
    if not m:
        raise ValueError(f"Invalid cell identifier: {cell_id!r}")
    return m.group(1), int(m.group(2))


def cell_sort_key(cell_id: str) -> tuple[int, int]:
    """Sort key ordering cell ids column-major: A1, A2, ..., B1, ..."""
    column, row = split_cell_id(cell_id)
    return column_index(column), row


# ---------------------------------------------------------------------------
# Dependency extraction
# ---------------------------------------------------------------------------


def extract_dependencies(formula: str) -> list[str]:
    """Extract referenced cell ids in first-occurrence order, without duplicates.

    Accepts the body with or without the leading ``=``.  Row numbers are
    canonicalized (``A01`` -> ``A1``).  No existence checks are made here.
    """
    refs: list[str] = []
    seen: set[str] = set()
    for m in CELL_REF_RE.finditer(formula):
        cell_id = f"{m.group(1)}{int(m.group(2))}"
        if cell_id not in seen:
            refs.append(cell_id)
            seen.add(cell_id)
    return refs


def references_column(formula: str, column: str) -> bool:
    """True if *formula* contains a reference into *column*."""
    return any(m.group(1) == column for m in CELL_REF_RE.finditer(formula))


def references_row(formula: str, row: int) -> bool:
    """True if *formula* contains a reference into *row*."""
    return any(int(m.group(2)) == row for m in CELL_REF_RE.finditer(formula))


# ---------------------------------------------------------------------------
# Reference rewriting (row insertion / removal)
# ---------------------------------------------------------------------------


def shift_row_references(formula: str, start: int, delta: int) -> str:
    """Add *delta* to every referenced row number ``>= start``.

    Used when a row is inserted (delta=+1) or removed (delta=-1, with
    ``start`` one past the removed row).
    """

    def _shift(m: re.Match[str]) -> str:
        row = int(m.group(2))
        if row >= start:
            row += delta
        return f"{m.group(1)}{row}"

    return CELL_REF_RE.sub(_shift, formula)
