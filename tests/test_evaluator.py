"""Tests for the stack-based formula evaluator."""

from __future__ import annotations

import math

import pytest

from sheetcalc.formulas import (
    ErrorKind,
    EvaluationOutcome,
    FormulaDivideByZeroError,
    FormulaEvaluator,
    FormulaOperandError,
    FormulaOperatorError,
    Operator,
    compute,
    evaluate_formula,
    is_cell_reference,
    is_number,
    precedence,
    resolve_cell,
)
from sheetcalc.sheet import Cell, SheetMemory


# ────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────


@pytest.fixture
def memory() -> SheetMemory:
    """A small sheet with plain values, a formula cell and error cells."""
    mem = SheetMemory(n_rows=20, n_cols=5)
    mem.set_cell("A1", ["5"], value=5)
    mem.set_cell("A2", ["2", "*", "A1"], value=10)
    mem.set_cell("A3", ["A1", "/", "0"], value=math.inf, error="divide by zero")
    mem.set_cell("B1", [], error="invalid formula")
    mem.set_cell("B2", ["7"], value=7, error="empty formula")
    return mem


class DictCellStore:
    """Minimal in-memory cell store that accepts any label it holds."""

    def __init__(self, cells: dict[str, Cell]) -> None:
        self.cells = cells
        self.lookups: list[str] = []

    def is_valid_cell_label(self, label: str) -> bool:
        return label in self.cells

    def get_cell_by_label(self, label: str) -> Cell:
        self.lookups.append(label)
        return self.cells[label]


# ────────────────────────────────────────────────────────────────
# Classifiers
# ────────────────────────────────────────────────────────────────


class TestClassifiers:
    @pytest.mark.parametrize("token", ["5", "0", "-2.5", "+3", ".5", "5.", "1e3", "2.5E-2"])
    def test_numbers(self, token: str) -> None:
        assert is_number(token)

    @pytest.mark.parametrize(
        "token", ["", " ", "abc", "A1", "+", "(", "nan", "inf", "1e999", "1_000", "--1", "1.2.3"]
    )
    def test_non_numbers(self, token: str) -> None:
        assert not is_number(token)

    def test_cell_reference_follows_label_grammar(self) -> None:
        assert is_cell_reference("A1")
        assert is_cell_reference("AB12")
        assert not is_cell_reference("a1")
        assert not is_cell_reference("1A")
        assert not is_cell_reference("ABCD1")
        assert not is_cell_reference("+")

    def test_precedence_table(self) -> None:
        assert precedence("+") == 1
        assert precedence("-") == 1
        assert precedence("*") == 2
        assert precedence("/") == 2
        assert precedence("(") == 0
        assert precedence("^") == 0

    def test_operator_from_symbol(self) -> None:
        assert Operator.from_symbol("*") is Operator.mul
        assert Operator.from_symbol("%") is None


# ────────────────────────────────────────────────────────────────
# Compute step
# ────────────────────────────────────────────────────────────────


class TestCompute:
    def test_applies_top_operator(self) -> None:
        operands = [1.0, 6.0, 3.0]
        operators = ["+", "/"]
        compute(operands, operators)
        assert operands == [1.0, 2.0]
        assert operators == ["+"]

    def test_subtraction_order(self) -> None:
        operands = [10.0, 4.0]
        compute(operands, ["-"])
        assert operands == [6.0]

    def test_too_few_operands(self) -> None:
        operators = ["+"]
        with pytest.raises(FormulaOperandError):
            compute([1.0], operators)
        # The operator is consumed before the operand check.
        assert operators == []

    def test_unknown_operator(self) -> None:
        operands = [1.0, 2.0]
        with pytest.raises(FormulaOperatorError) as exc_info:
            compute(operands, ["%"])
        assert exc_info.value.symbol == "%"
        assert exc_info.value.kind is ErrorKind.invalid_operator
        assert operands == []

    def test_divide_by_zero(self) -> None:
        operands = [1.0, 0.0]
        with pytest.raises(FormulaDivideByZeroError):
            compute(operands, ["/"])
        assert operands == []


# ────────────────────────────────────────────────────────────────
# Cell resolution
# ────────────────────────────────────────────────────────────────


class TestResolveCell:
    def test_value(self, memory: SheetMemory) -> None:
        assert resolve_cell("A2", memory) == (10.0, "")

    def test_outside_sheet_is_invalid_cell(self, memory: SheetMemory) -> None:
        assert resolve_cell("Z1", memory) == (0.0, "invalid cell")
        assert resolve_cell("A0", memory) == (0.0, "invalid cell")

    def test_unset_cell_is_invalid_cell(self, memory: SheetMemory) -> None:
        assert resolve_cell("C3", memory) == (0.0, "invalid cell")

    def test_genuine_error_propagates(self, memory: SheetMemory) -> None:
        assert resolve_cell("A3", memory) == (0.0, "divide by zero")

    def test_error_checked_before_emptiness(self, memory: SheetMemory) -> None:
        """B1 has no formula but its stored error wins over 'invalid cell'."""
        assert resolve_cell("B1", memory) == (0.0, "invalid formula")

    def test_empty_formula_marker_is_not_an_error(self, memory: SheetMemory) -> None:
        assert resolve_cell("B2", memory) == (7.0, "")

    def test_custom_store(self) -> None:
        store = DictCellStore({"X1": Cell(label="X1", formula=["4"], value=4)})
        assert resolve_cell("X1", store) == (4.0, "")
        assert store.lookups == ["X1"]


# ────────────────────────────────────────────────────────────────
# Empty and single-token formulas
# ────────────────────────────────────────────────────────────────


class TestShortFormulas:
    def test_empty_formula(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula([], memory)
        assert outcome.error == "empty formula"
        assert outcome.result == 0
        assert outcome.kind is ErrorKind.empty_formula

    def test_single_number(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["5"], memory)
        assert outcome.result == 5
        assert outcome.error == ""
        assert outcome.ok

    def test_single_negative_number(self, memory: SheetMemory) -> None:
        assert evaluate_formula(["-2.5"], memory).result == -2.5

    def test_single_operator_is_invalid(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["+"], memory)
        assert outcome.error == "invalid formula"
        assert outcome.result == 0

    def test_single_lowercase_label_is_invalid(self, memory: SheetMemory) -> None:
        assert evaluate_formula(["a1"], memory).error == "invalid formula"

    def test_single_cell_reference(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["A2"], memory)
        assert outcome.result == 10
        assert outcome.ok

    def test_single_cell_reference_error(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["A3"], memory)
        assert outcome.error == "divide by zero"
        assert outcome.result == 0

    def test_single_unset_cell(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["D4"], memory)
        assert outcome.error == "invalid cell"
        assert outcome.result == 0


# ────────────────────────────────────────────────────────────────
# Arithmetic
# ────────────────────────────────────────────────────────────────


class TestArithmetic:
    @pytest.mark.parametrize(
        ("formula", "expected"),
        [
            (["3", "+", "4"], 7),
            (["(", "1", "+", "2", ")", "*", "3"], 9),
            (["3", "*", "4", "+", "2"], 14),
            (["2", "+", "3", "*", "4"], 14),
            (["10", "-", "4", "-", "3"], 3),
            (["8", "/", "4", "/", "2"], 1),
            (["7", "/", "2"], 3.5),
            (["2", "*", "(", "3", "+", "(", "4", "-", "1", ")", ")"], 12),
            (["(", "(", "2", ")", ")"], 2),
            (["1.5", "*", "-2"], -3),
        ],
    )
    def test_evaluates(self, memory: SheetMemory, formula: list[str], expected: float) -> None:
        outcome = evaluate_formula(formula, memory)
        assert outcome.error == ""
        assert outcome.result == pytest.approx(expected)

    def test_cell_references(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["(", "A1", "+", "A2", ")", "/", "3"], memory)
        assert outcome.ok
        assert outcome.result == 5

    def test_stray_close_paren_is_ignored(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["1", "+", "2", ")"], memory)
        assert outcome.ok
        assert outcome.result == 3

    def test_formula_not_modified(self, memory: SheetMemory) -> None:
        formula = ["(", "1", "+", "A1", ")", "*", "2"]
        snapshot = list(formula)
        evaluate_formula(formula, memory)
        assert formula == snapshot

    def test_accepts_tuple(self, memory: SheetMemory) -> None:
        assert evaluate_formula(("6", "/", "3"), memory).result == 2


# ────────────────────────────────────────────────────────────────
# Errors and the failure policy
# ────────────────────────────────────────────────────────────────


class TestFailurePolicy:
    def test_divide_by_zero(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["5", "/", "0"], memory)
        assert outcome.error == "divide by zero"
        assert outcome.result == math.inf

    def test_divide_by_zero_overrides_salvage(self, memory: SheetMemory) -> None:
        """One operand is left after the failed division; inf still wins."""
        outcome = evaluate_formula(["1", "+", "5", "/", "0"], memory)
        assert outcome.error == "divide by zero"
        assert outcome.result == math.inf

    def test_divide_by_zero_expression(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["4", "/", "(", "2", "-", "2", ")"], memory)
        assert outcome.error == "divide by zero"
        assert outcome.result == math.inf

    def test_missing_parentheses(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["(", "1", "+", "2"], memory)
        assert outcome.error == "missing parentheses"
        assert outcome.kind is ErrorKind.missing_parentheses
        # The sum was computed before the dangling "(" was reached.
        assert outcome.result == 3

    def test_missing_parentheses_wins_over_invalid_operator(self, memory: SheetMemory) -> None:
        """Computing the dangling "(" fails as an operator; the first error is kept."""
        outcome = evaluate_formula(["1", "+", "(", "2"], memory)
        assert outcome.error == "missing parentheses"
        assert outcome.result == 0

    def test_trailing_operator_salvages_operand(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["1", "+"], memory)
        assert outcome.error == "invalid formula"
        assert outcome.result == 1

    def test_two_operands_without_operator(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["1", "2"], memory)
        assert outcome.error == "invalid formula"
        assert outcome.result == 0

    def test_empty_parentheses(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["(", ")"], memory)
        assert outcome.error == "invalid formula"
        assert outcome.result == 0

    def test_invalid_operator(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["2", "^", "3"], memory)
        assert outcome.error == "invalid operator"
        assert outcome.result == 0

    def test_unknown_operator_ranks_lowest(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["(", "1", "+", "2", ")", "*", "4", "%", "5"], memory)
        # "*" is applied before "%" is pushed; "%" then fails on 12 and 5.
        assert outcome.error == "invalid operator"
        assert outcome.result == 0

    def test_cell_error_propagates_verbatim(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["A3", "*", "2"], memory)
        assert outcome.error == "divide by zero"
        # Propagated, not computed: no infinity.
        assert outcome.result == 0

    def test_cell_error_aborts_without_salvage(self, memory: SheetMemory) -> None:
        outcome = evaluate_formula(["1", "+", "E20"], memory)
        assert outcome.error == "invalid cell"
        assert outcome.result == 0

    def test_custom_cell_error_kind(self) -> None:
        store = DictCellStore({"X1": Cell(label="X1", formula=["1"], error="#REF!")})
        outcome = evaluate_formula(["X1", "+", "1"], store)
        assert outcome.error == "#REF!"
        assert outcome.kind is ErrorKind.cell_error

    def test_abort_stops_scanning(self) -> None:
        store = DictCellStore({
            "X1": Cell(label="X1", formula=[], error="invalid cell"),
            "X2": Cell(label="X2", formula=["2"], value=2),
        })
        evaluate_formula(["X1", "+", "X2"], store)
        assert store.lookups == ["X1"]


# ────────────────────────────────────────────────────────────────
# Outcome + stateful evaluator
# ────────────────────────────────────────────────────────────────


class TestEvaluationOutcome:
    def test_defaults(self) -> None:
        outcome = EvaluationOutcome()
        assert outcome.result == 0.0
        assert outcome.error == ""
        assert outcome.ok
        assert outcome.kind is None

    def test_failure_constructor(self) -> None:
        outcome = EvaluationOutcome.failure(ErrorKind.invalid_formula, partial=4.0)
        assert outcome.error == "invalid formula"
        assert outcome.result == 4.0
        assert not outcome.ok

    def test_frozen(self) -> None:
        outcome = EvaluationOutcome.success(1.0)
        with pytest.raises(Exception):
            outcome.result = 2.0  # type: ignore[misc]


class TestFormulaEvaluator:
    def test_initial_state(self, memory: SheetMemory) -> None:
        evaluator = FormulaEvaluator(memory)
        assert evaluator.result == 0
        assert evaluator.error == ""

    def test_accessors(self, memory: SheetMemory) -> None:
        evaluator = FormulaEvaluator(memory)
        outcome = evaluator.evaluate(["3", "+", "4"])
        assert evaluator.result == 7
        assert evaluator.error == ""
        assert evaluator.outcome is outcome

    def test_idempotent(self, memory: SheetMemory) -> None:
        evaluator = FormulaEvaluator(memory)
        formula = ["(", "A1", "+", "1"]
        first = evaluator.evaluate(formula)
        second = evaluator.evaluate(formula)
        assert first == second
        assert second.error == "missing parentheses"
        assert second.result == 6

    def test_no_state_leaks_between_calls(self, memory: SheetMemory) -> None:
        evaluator = FormulaEvaluator(memory)
        evaluator.evaluate(["5", "/", "0"])
        assert evaluator.result == math.inf
        evaluator.evaluate(["(", "1"])
        assert evaluator.error == "missing parentheses"
        evaluator.evaluate(["2", "+", "3"])
        assert evaluator.result == 5
        assert evaluator.error == ""

    def test_error_then_empty(self, memory: SheetMemory) -> None:
        evaluator = FormulaEvaluator(memory)
        evaluator.evaluate(["A2"])
        assert evaluator.result == 10
        evaluator.evaluate([])
        assert evaluator.result == 0
        assert evaluator.error == "empty formula"
