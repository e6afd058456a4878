"""Arithmetic expression validation and evaluation.

Operates on the numeric-only text left after cell references have been
substituted.  The grammar is deliberately small::

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('-' | '+') unary | primary
    primary := NUMBER | '(' expr ')'

A hand-written recursive descent parser is used instead of ``eval``.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal

from smarttable.calc._errors import (
    DivisionByZero,
    EmptyFormula,
    InvalidCharacters,
    InvalidExpression,
    InvalidOperatorSequence,
    NotFinite,
    UnexpectedToken,
    UnmatchedParentheses,
)

_ALLOWED_RE = re.compile(r"^[0-9+\-*/().]+$")
_OPERATOR_RUN_RE = re.compile(r"[+\-*/]{2,}")
# A literal zero denominator: "/0" not continuing into "/05" or "/0.5"
_LITERAL_DIV_ZERO_RE = re.compile(r"/0(?![0-9.])")
_TOKEN_RE = re.compile(r"\d+\.?\d*|\.\d+|[+\-*/()]")
_WHITESPACE_RE = re.compile(r"\s+")
# Wide enough to quantize any finite double to the requested places
_ROUNDING_CONTEXT = Context(prec=400)

Number = int | float


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_expression(expression: str) -> str:
    """Check a substituted expression and return it with whitespace removed.

    Raises the matching FormulaError for disallowed characters, operator runs
    such as ``5++3`` or ``3*-2``, unbalanced parentheses and a literal
    ``/0`` denominator.
    """
    clean = _WHITESPACE_RE.sub("", expression)
    if not clean:
        raise EmptyFormula()
    if not _ALLOWED_RE.match(clean):
        raise InvalidCharacters()
    if _OPERATOR_RUN_RE.search(clean):
        raise InvalidOperatorSequence()
    if clean.count("(") != clean.count(")"):
        raise UnmatchedParentheses()
    if _LITERAL_DIV_ZERO_RE.search(clean):
        raise DivisionByZero()
    return clean


# ---------------------------------------------------------------------------
# Recursive descent evaluation
# ---------------------------------------------------------------------------


def _tokenize(expression: str) -> list[tuple[str, int]]:
    tokens: list[tuple[str, int]] = []
    pos = 0
    while pos < len(expression):
        m = _TOKEN_RE.match(expression, pos)
        if not m:
            raise UnexpectedToken(repr(expression[pos]), pos)
        tokens.append((m.group(), pos))
        pos = m.end()
    return tokens


class _Parser:
    __slots__ = ("_tokens", "_pos")

    def __init__(self, tokens: list[tuple[str, int]]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> str | None:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos][0]
        return None

    def _unexpected(self) -> UnexpectedToken:
        if self._pos >= len(self._tokens):
            return UnexpectedToken("end of expression")
        token, pos = self._tokens[self._pos]
        return UnexpectedToken(repr(token), pos)

    def parse(self) -> float:
        value = self._expr()
        if self._peek() is not None:
            raise self._unexpected()
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            op = self._tokens[self._pos][0]
            self._pos += 1
            right = self._term()
            value = value + right if op == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._unary()
        while self._peek() in ("*", "/"):
            op = self._tokens[self._pos][0]
            self._pos += 1
            right = self._unary()
            if op == "*":
                value = value * right
            else:
                # Catches computed zero denominators such as 5/(2-2)
                if right == 0:
                    raise DivisionByZero()
                value = value / right
        return value

    def _unary(self) -> float:
        token = self._peek()
        if token == "-":
            self._pos += 1
            return -self._unary()
        if token == "+":
            self._pos += 1
            return self._unary()
        return self._primary()

    def _primary(self) -> float:
        token = self._peek()
        if token is None:
            raise self._unexpected()
        if token == "(":
            self._pos += 1
            value = self._expr()
            if self._peek() != ")":
                raise self._unexpected()
            self._pos += 1
            return value
        if token[0].isdigit() or token[0] == ".":
            self._pos += 1
            return float(token)
        raise self._unexpected()


def round_result(value: float, precision: int = 6) -> Number:
    """Round half away from zero to *precision* places.

    Integral results come back as ``int`` so ``=2+3`` yields ``5``, not ``5.0``.
    """
    quantum = Decimal(1).scaleb(-precision)
    rounded = float(Decimal(repr(value)).quantize(
        quantum, rounding=ROUND_HALF_UP, context=_ROUNDING_CONTEXT,
    ))
    if rounded == int(rounded):
        return int(rounded)
    return rounded


def evaluate_expression(expression: str, precision: int = 6) -> Number:
    """Validate and evaluate a numeric-only expression.

    Returns the result rounded to *precision* decimal places.
    """
    clean = validate_expression(expression)
    try:
        result = _Parser(_tokenize(clean)).parse()
    except RecursionError:
        raise InvalidExpression("Expression is nested too deeply") from None
    if not math.isfinite(result):
        raise NotFinite()
    return round_result(result, precision)
