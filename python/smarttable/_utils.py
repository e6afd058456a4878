"""Column-letter and number-text helpers shared by the table and the formula engine."""

from __future__ import annotations

import math
import re

_COLUMN_RE = re.compile(r"^[A-Z]+$")
# Plain decimal literal with optional exponent; no "_", "inf" or "nan"
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def column_letters(index: int) -> str:
    """Convert a 0-based column index to letters: 0 -> A, 25 -> Z, 26 -> AA."""
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    result = ""
    while index >= 0:
        result = chr(ord("A") + index % 26) + result
        index = index // 26 - 1
    return result


def column_index(letters: str) -> int:
    """Convert column letters back to a 0-based index: A -> 0, AA -> 26."""
    if not _COLUMN_RE.match(letters):
        raise ValueError(f"Invalid column identifier: {letters!r}")
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def is_column_id(value: str) -> bool:
    return bool(_COLUMN_RE.match(value))


def parse_number(text: str) -> float | None:
    """Parse stripped text as a finite decimal number, or return None.

    Narrower than ``float()``: ``1_000``, ``inf`` and ``nan`` are not numbers.
    """
    if not _NUMBER_RE.match(text):
        return None
    value = float(text)
    if not math.isfinite(value):
        return None
    return value
