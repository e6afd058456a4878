"""Tests for smarttable.calc FormulaEvaluator."""

from __future__ import annotations

import logging

import pytest

from smarttable import ColumnConfig, Table, TableLimits
from smarttable.calc import CalcEngine, FormulaEvaluator, FormulaResult
from smarttable.calc._evaluator import recursion_safe_depth


def _make_table(**overrides: dict[int, object]) -> Table:
    """A: names, B: ages, C: salaries, D: sparse bonuses; 3 rows."""
    data: dict[str, dict[int, object]] = {
        "A": {1: "John", 2: "Jane", 3: "Bob"},
        "B": {1: 25, 2: 30, 3: 35},
        "C": {1: 1000, 2: 2000, 3: 3000},
        "D": {1: "", 2: 15, 3: ""},
    }
    data.update(overrides)
    columns = [
        ColumnConfig(id="A", label="Name", type="text"),
        ColumnConfig(id="B", label="Age", type="number"),
        ColumnConfig(id="C", label="Salary", type="number"),
        ColumnConfig(id="D", label="Bonus", type="number"),
    ]
    return Table(data, columns=columns, row_count=3)


def _evaluator(**overrides: dict[int, object]) -> FormulaEvaluator:
    ev = FormulaEvaluator()
    ev.load(_make_table(**overrides))
    return ev


class TestLoad:
    def test_requires_load(self) -> None:
        ev = FormulaEvaluator()
        with pytest.raises(RuntimeError, match="load"):
            ev.evaluate_formula("=1+1", "A1")

    def test_snapshot_is_isolated(self) -> None:
        table = _make_table()
        ev = FormulaEvaluator.from_table(table)
        table["B1"] = 100
        assert ev.evaluate_formula("=B1", "E1").value == 25

    def test_loads_table_snapshot(self, monkeypatch: pytest.MonkeyPatch) -> None:
        table = _make_table()
        monkeypatch.setattr(Table, "snapshot", lambda self: {"B": {1: 7}})
        ev = FormulaEvaluator.from_table(table)
        assert ev.evaluate_formula("=B1*2", "E1").value == 14
        assert ev.evaluate_formula("=C1", "E1").kind == "UnknownColumn"

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_evaluator(), CalcEngine)

    @pytest.mark.parametrize("kwargs", [{"max_depth": 0}, {"precision": -1}])
    def test_invalid_settings(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ValueError):
            FormulaEvaluator(**kwargs)


class TestArithmetic:
    @pytest.mark.parametrize(
        ("formula", "expected"),
        [
            ("=5+3", 8),
            ("=2+3*4", 14),
            ("=(2+3)*4", 20),
            ("=(10+5)*2-8/4", 28),
            ("=-5+10", 5),
            ("=3.14*2", 6.28),
            ("= 5 + 3 * 2 ", 11),
        ],
    )
    def test_literal_formulas(self, formula: str, expected: float) -> None:
        result = _evaluator().evaluate_formula(formula, "A1")
        assert not result.is_error
        assert result.value == expected
        assert result.dependencies == ()

    def test_floating_point_rounding(self) -> None:
        result = _evaluator().evaluate_formula("=0.1+0.2", "A1")
        assert result.value == pytest.approx(0.3)


class TestReferences:
    def test_single_reference(self) -> None:
        result = _evaluator().evaluate_formula("=B1", "E1")
        assert result.value == 25

    def test_multiple_references(self) -> None:
        assert _evaluator().evaluate_formula("=B1+C1", "E1").value == 1025
        assert _evaluator().evaluate_formula("=B1*C1/1000", "E1").value == 25

    def test_empty_cell_is_zero(self) -> None:
        assert _evaluator().evaluate_formula("=D1+5", "E1").value == 5

    def test_missing_row_entry_is_zero(self) -> None:
        ev = _evaluator(D={2: 15})
        assert ev.evaluate_formula("=D3+1", "E1").value == 1

    def test_numeric_text(self) -> None:
        ev = _evaluator(A={1: " 12.5 ", 2: "x", 3: "y"})
        assert ev.evaluate_formula("=A1*2", "E1").value == 25

    @pytest.mark.parametrize("text", ["1_000", "inf", "nan", "0x10", "1e999"])
    def test_only_plain_decimal_text_is_numeric(self, text: str) -> None:
        result = _evaluator(E={1: text}).evaluate_formula("=E1*2", "F1")
        assert result.kind == "NonNumericReference"
        assert f'"{text}"' in result.error

    def test_exponent_text_is_numeric(self) -> None:
        assert _evaluator(E={1: "-1.5e2"}).evaluate_formula("=E1+1", "F1").value == -149

    @pytest.mark.parametrize(
        ("formula", "value"), [("=E1.5", 10), ("=E2.5", -2), ("=.E1", 10), ("=1.E1", 10)],
    )
    def test_reference_touching_dot_is_rejected(self, formula: str, value: int) -> None:
        ev = _evaluator(E={1: value, 2: value})
        result = ev.evaluate_formula(formula, "F1")
        assert result.kind == "InvalidCharacters"
        assert result.dependencies == ()

    def test_decimal_next_to_operator_and_reference(self) -> None:
        assert _evaluator(E={1: 10}).evaluate_formula("=.5+E1", "F1").value == 10.5

    def test_negative_reference_is_parenthesized(self) -> None:
        ev = _evaluator(D={1: -2, 2: 15, 3: ""})
        assert ev.evaluate_formula("=B1*D1", "E1").value == -50

    def test_tiny_reference_not_exponent(self) -> None:
        ev = _evaluator(D={1: 1e-7, 2: 15, 3: ""})
        assert ev.evaluate_formula("=D1*10000000", "E1").value == 1

    def test_substituted_numbers_not_rescanned(self) -> None:
        # C1 -> 1000; "1000" must not be re-read as part of a reference
        result = _evaluator().evaluate_formula("=C1+B2", "E1")
        assert result.value == 1030


class TestNestedFormulas:
    def test_chain(self) -> None:
        ev = _evaluator(D={1: "=B1*2", 2: "=D1+1", 3: "=D2*10"})
        assert ev.evaluate_formula("=D3", "E1").value == 510

    def test_diamond(self) -> None:
        ev = _evaluator(D={1: "=B1+1", 2: "=B1*2", 3: "=D1+D2"})
        assert ev.evaluate_formula("=D3+D1", "E1").value == 102

    def test_error_propagates_with_cell_name(self) -> None:
        ev = _evaluator(D={1: "=A1+1", 2: 15, 3: ""})
        result = ev.evaluate_formula("=D1*2", "E1")
        assert result.is_error
        assert result.kind == "ReferencedCellError"
        assert result.error == 'Error in cell D1: Cell A1 contains non-numeric value: "John"'
        assert result.dependencies == ("D1",)


class TestReferenceErrors:
    def test_non_numeric_text(self) -> None:
        result = _evaluator().evaluate_formula("=A1+5", "B1")
        assert result.is_error
        assert result.kind == "NonNumericReference"
        assert "A1" in result.error
        assert '"John"' in result.error
        assert "non-numeric value" in result.error

    def test_unknown_column(self) -> None:
        result = _evaluator().evaluate_formula("=Z1+5", "A1")
        assert result.kind == "UnknownColumn"
        assert "Column 'Z' does not exist" in result.error
        assert result.dependencies is None

    def test_row_too_high(self) -> None:
        result = _evaluator().evaluate_formula("=A99+5", "A1")
        assert result.kind == "InvalidRow"
        assert "Invalid row number: 99" in result.error

    def test_row_zero(self) -> None:
        result = _evaluator().evaluate_formula("=A0+5", "A1")
        assert result.kind == "InvalidRow"
        assert "Invalid row number: 0" in result.error

    def test_bad_reference_reported_before_substitution(self) -> None:
        # A1 would fail as non-numeric, but Z1 is validated first
        result = _evaluator().evaluate_formula("=A1+Z1", "E1")
        assert result.kind == "UnknownColumn"

    def test_invalid_reference_format(self) -> None:
        result = _evaluator().evaluate_formula("=1A+5", "A1")
        assert result.is_error
        assert result.kind == "InvalidCharacters"

    def test_deleted_column_sentinel_is_non_numeric(self) -> None:
        ev = _evaluator(D={1: "#ERROR: Reference to deleted column E", 2: 15, 3: ""})
        result = ev.evaluate_formula("=D1+1", "B1")
        assert result.kind == "NonNumericReference"


class TestCircularReferences:
    def test_self_reference(self) -> None:
        result = _evaluator().evaluate_formula("=A1+5", "A1")
        assert result.kind == "CircularReference"
        assert "Circular reference detected involving A1" in result.error

    def test_two_cell_cycle(self) -> None:
        ev = _evaluator(A={1: "=B1"}, B={1: "=A1"})
        result = ev.evaluate_formula("=B1", "A1")
        assert result.is_error
        assert "Circular reference" in result.error

    @pytest.mark.parametrize("length", [2, 3, 4])
    def test_cycle_of_length_n(self, length: int) -> None:
        columns = "ABCD"[:length]
        overrides = {
            col: {1: f"={columns[(i + 1) % length]}1"} for i, col in enumerate(columns)
        }
        ev = _evaluator(**overrides)
        result = ev.evaluate_formula(overrides["A"][1], "A1")
        assert result.is_error
        assert "Circular reference detected involving A1" in result.error

    def test_cycle_root_cause(self) -> None:
        from smarttable.calc import CircularReference, ReferencedCellError

        ev = _evaluator(A={1: "=B1"}, B={1: "=C1"}, C={1: "=A1"})
        with pytest.raises(ReferencedCellError) as info:
            ev._evaluate("=B1", "A1", ())  # noqa: SLF001
        assert isinstance(info.value.root_cause, CircularReference)

    def test_explicit_evaluation_path(self) -> None:
        result = _evaluator().evaluate_formula("=B1", "E1", evaluation_path=["B1"])
        assert result.kind == "CircularReference"

    def test_same_cell_twice_is_not_a_cycle(self) -> None:
        ev = _evaluator(D={1: "=B1*2", 2: 15, 3: ""})
        assert ev.evaluate_formula("=D1+D1", "E1").value == 100


class TestMaxDepth:
    def test_long_acyclic_chain_capped(self) -> None:
        table = Table({"A": {i: f"=A{i + 1}" for i in range(1, 10)} | {10: 1}}, row_count=10)
        shallow = FormulaEvaluator(max_depth=5)
        shallow.load(table)
        result = shallow.evaluate_formula(table["A1"], "A1")
        assert result.is_error
        assert "maximum depth of 5" in result.error

        deep = FormulaEvaluator.from_table(table)
        assert deep.evaluate_formula(table["A1"], "A1").value == 1

    @staticmethod
    def _chain_table(length: int) -> Table:
        column = {i: f"=A{i + 1}+1" for i in range(1, length)} | {length: 1}
        return Table({"A": column}, row_count=length, limits=TableLimits(max_rows=length))

    def test_chain_beyond_stack_is_error_result(self) -> None:
        table = self._chain_table(400)
        ev = table.evaluator()
        assert ev.max_depth == table.limits.max_cells == 4000
        assert ev.effective_max_depth == recursion_safe_depth()
        result = ev.evaluate_formula(table["A1"], "A1")
        assert result.is_error
        assert result.kind == "ReferencedCellError"
        assert result.error.endswith(
            f"Reference chain exceeds maximum depth of {recursion_safe_depth()}"
        )

    def test_large_max_depth_resolves_to_error_text(self) -> None:
        table = self._chain_table(400)
        ev = FormulaEvaluator.from_table(table, max_depth=1000)
        display = ev.resolve_cell_value(table["A1"], "A1")
        assert display.startswith("#ERROR: Error in cell A2")
        assert "maximum depth" in display

    def test_chain_within_stack_evaluates(self) -> None:
        table = self._chain_table(50)
        assert table.evaluator().evaluate_formula(table["A1"], "A1").value == 50

    def test_recursion_error_becomes_result(self, monkeypatch: pytest.MonkeyPatch) -> None:
        ev = _evaluator()

        def _overflow(body: str, path: tuple[str, ...]) -> int:
            raise RecursionError("maximum recursion depth exceeded")

        monkeypatch.setattr(ev, "_compute", _overflow)
        result = ev.evaluate_formula("=B1+1", "E1")
        assert result.is_error
        assert result.kind == "MaxDepthExceeded"
        assert result.dependencies == ("B1",)


class TestMalformed:
    @pytest.mark.parametrize(
        ("formula", "kind", "fragment"),
        [
            ("=", "EmptyFormula", "Empty formula"),
            ("=   ", "EmptyFormula", "Empty formula"),
            ("=(5+3", "UnmatchedParentheses", "Unmatched parentheses"),
            ("=5+3)", "UnmatchedParentheses", "Unmatched parentheses"),
            ("=5++3", "InvalidOperatorSequence", "Invalid operator sequence"),
            ("=5+a", "InvalidCharacters", "Invalid characters"),
            ("=5/0", "DivisionByZero", "Division by zero"),
            ("=5/(2-2)", "DivisionByZero", "Division by zero"),
            ("=5+", "UnexpectedToken", "Unexpected token"),
            ("=SUM(B1:B3)", "InvalidCharacters", "Invalid characters"),
        ],
    )
    def test_errors_not_exceptions(self, formula: str, kind: str, fragment: str) -> None:
        result = _evaluator().evaluate_formula(formula, "E1")
        assert result.is_error
        assert result.value == ""
        assert result.kind == kind
        assert fragment in result.error

    def test_empty_formula_has_no_dependencies(self) -> None:
        assert _evaluator().evaluate_formula("=", "A1").dependencies is None

    def test_division_by_empty_reference(self) -> None:
        result = _evaluator().evaluate_formula("=B1/D1", "E1")
        assert result.kind == "DivisionByZero"
        assert result.dependencies == ("B1", "D1")

    @pytest.mark.parametrize("value", [123, None, 1.5, ["=1"]])
    def test_not_a_string(self, value: object) -> None:
        result = _evaluator().evaluate_formula(value, "A1")
        assert result.is_error
        assert result.kind == "NotAString"
        assert "Formula must be a string" in result.error

    def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="smarttable.calc._evaluator"):
            _evaluator().evaluate_formula("=5/0", "E1")
        assert "DivisionByZero" in caplog.text


class TestDependencies:
    def test_single(self) -> None:
        assert _evaluator().evaluate_formula("=B1+5", "C1").dependencies == ("B1",)

    def test_ordered(self) -> None:
        result = _evaluator().evaluate_formula("=B1+B2+B3", "D1")
        assert result.dependencies == ("B1", "B2", "B3")

    def test_deduplicated(self) -> None:
        assert _evaluator().evaluate_formula("=B1+B1*2", "C1").dependencies == ("B1",)

    def test_extract_dependencies_exposed(self) -> None:
        assert _evaluator().extract_dependencies("=B1+B1*2") == ["B1"]


class TestDependentCells:
    def test_direct_dependents(self) -> None:
        ev = _evaluator(A={1: 10}, B={1: "=A1*2"}, C={1: "=A1+B1"}, D={1: "=C2+5"})
        dependents = ev.get_dependent_cells("A1")
        assert "B1" in dependents
        assert "C1" in dependents
        assert "D1" not in dependents

    def test_exact_set(self) -> None:
        ev = _evaluator(A={1: 10}, B={1: "=A1*2"}, C={1: "=A1+B1"}, D={1: "=C2+5"})
        assert set(ev.get_dependent_cells("B1")) == {"C1"}
        assert ev.get_dependent_cells("C3") == []

    def test_transitive_affected_cells(self) -> None:
        ev = _evaluator(A={1: 10}, B={1: "=A1*2"}, C={1: "=B1+1"}, D={1: "=C1+5"})
        assert ev.affected_cells(["A1"]) == ["B1", "C1", "D1"]


class TestResolveCellValue:
    @pytest.mark.parametrize("value", [123, 4.5, "hello", ""])
    def test_non_formula_passthrough(self, value: object) -> None:
        assert _evaluator().resolve_cell_value(value, "A1") == value

    def test_formula_result(self) -> None:
        assert _evaluator().resolve_cell_value("=5+3", "A1") == 8

    def test_error_display(self) -> None:
        display = _evaluator().resolve_cell_value("=5/0", "A1")
        assert display == "#ERROR: Division by zero"

    def test_result_display_property(self) -> None:
        ok = FormulaResult(value=3)
        bad = FormulaResult(value="", is_error=True, error="Empty formula")
        assert ok.display == 3
        assert bad.display == "#ERROR: Empty formula"


class TestCalculate:
    def test_real_world_scenario(self) -> None:
        table = Table(
            {
                "A": {1: "Product A", 2: "Product B", 3: "Product C"},
                "B": {1: 100, 2: 200, 3: 150},
                "C": {1: 10.5, 2: 15.25, 3: 8.75},
                "D": {1: "=B1*C1", 2: "=B2*C2", 3: "=B3*C3"},
                "E": {1: "=D1+D2+D3", 2: "=B1+B2+B3", 3: "=E1/0"},
            },
            row_count=3,
        )
        results = table.evaluator().calculate()
        assert results == {
            "D1": 1050,
            "D2": 3050,
            "D3": 1312.5,
            "E1": 5412.5,
            "E2": 450,
            "E3": "#ERROR: Division by zero",
        }
