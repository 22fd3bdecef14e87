"""Operator-precedence evaluator for tokenized arithmetic formulas.

Evaluates a token sequence in one left-to-right pass with an operand
stack and an operator stack (shunting-yard), resolving cell references
through a :class:`~sheetcalc.sheet.CellStore`.

Errors never escape :func:`evaluate_formula`: every failure is reported
through the returned :class:`EvaluationOutcome`.
"""

from __future__ import annotations

import math
import re
from enum import Enum
from typing import Sequence

from sheetcalc.formulas.errors import (
    ErrorKind,
    FormulaDivideByZeroError,
    FormulaError,
    FormulaOperandError,
    FormulaOperatorError,
)
from sheetcalc.formulas.outcome import EvaluationOutcome
from sheetcalc.logging.events import emit_evaluation
from sheetcalc.sheet import EMPTY_FORMULA_ERROR, CellStore, is_cell_label

OPEN_PAREN = "("
CLOSE_PAREN = ")"

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class Operator(str, Enum):
    """Binary operators understood by the compute step."""

    add = "+"
    sub = "-"
    mul = "*"
    div = "/"

    @property
    def precedence(self) -> int:
        if self in (Operator.mul, Operator.div):
            return 2
        return 1

    @classmethod
    def from_symbol(cls, symbol: str) -> Operator | None:
        try:
            return cls(symbol)
        except ValueError:
            return None


# ---------------------------------------------------------------------------
# Token classifiers
# ---------------------------------------------------------------------------


def is_number(token: str) -> bool:
    """True if *token* is a finite decimal literal (``3``, ``-2.5``, ``1e3``)."""
    if not _NUMBER_RE.match(token):
        return False
    return math.isfinite(float(token))


def is_cell_reference(token: str) -> bool:
    """True if *token* follows the cell-label grammar of the sheet."""
    return is_cell_label(token)


def precedence(symbol: str) -> int:
    """Rank of an operator symbol; unknown symbols (and ``(``) rank 0."""
    op = Operator.from_symbol(symbol)
    return op.precedence if op is not None else 0


# ---------------------------------------------------------------------------
# Cell resolution
# ---------------------------------------------------------------------------


def resolve_cell(token: str, memory: CellStore) -> tuple[float, str]:
    """Resolve a cell reference to ``(value, error)``.

    Returns:
        ``(0, "invalid cell")`` for a label the store rejects,
        ``(0, <cell error>)`` when the cell carries a genuine error,
        ``(0, "invalid cell")`` when the cell has no formula,
        ``(value, "")`` otherwise.
    """
    if not memory.is_valid_cell_label(token):
        return 0.0, ErrorKind.invalid_cell.value

    cell = memory.get_cell_by_label(token)
    formula = cell.get_formula()
    error = cell.get_error()

    # A genuine error wins over emptiness.
    if error and error != EMPTY_FORMULA_ERROR:
        return 0.0, error

    if len(formula) == 0:
        return 0.0, ErrorKind.invalid_cell.value

    return float(cell.get_value()), ""


# ---------------------------------------------------------------------------
# Compute step
# ---------------------------------------------------------------------------


def compute(operands: list[float], operators: list[str]) -> None:
    """Apply the top operator to the top two operands, in place.

    Raises:
        FormulaOperandError: Fewer than two operands are available.
        FormulaDivideByZeroError: Division by zero.
        FormulaOperatorError: The operator is not one of ``+ - * /``.
    """
    symbol = operators.pop()
    if len(operands) < 2:
        raise FormulaOperandError()
    b = operands.pop()
    a = operands.pop()

    op = Operator.from_symbol(symbol)
    if op is None:
        raise FormulaOperatorError(symbol)
    if op is Operator.add:
        operands.append(a + b)
    elif op is Operator.sub:
        operands.append(a - b)
    elif op is Operator.mul:
        operands.append(a * b)
    elif op is Operator.div:
        if b == 0:
            raise FormulaDivideByZeroError()
        operands.append(a / b)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def evaluate_formula(formula: Sequence[str], memory: CellStore) -> EvaluationOutcome:
    """Evaluate a tokenized formula.

    Args:
        formula: Tokens in source order, e.g. ``["(", "A1", "+", "2", ")"]``.
            Not modified.
        memory: Cell storage used to resolve cell references.

    Returns:
        The outcome.  On failure ``error`` is set; ``result`` still carries
        the single remaining operand when exactly one is left, or ``inf``
        after a division by zero.
    """
    if len(formula) == 0:
        return EvaluationOutcome.failure(ErrorKind.empty_formula)

    if len(formula) == 1:
        return _evaluate_single(formula[0], memory)

    return _Evaluation(memory).run(formula)


def _evaluate_single(token: str, memory: CellStore) -> EvaluationOutcome:
    if is_number(token):
        return EvaluationOutcome.success(float(token))
    if is_cell_reference(token):
        value, error = resolve_cell(token, memory)
        if error:
            return EvaluationOutcome.failure(error)
        return EvaluationOutcome.success(value)
    return EvaluationOutcome.failure(ErrorKind.invalid_formula)


class _Evaluation:
    """Stacks and first-recorded error for a single multi-token evaluation."""

    def __init__(self, memory: CellStore) -> None:
        self._memory = memory
        self.operands: list[float] = []
        self.operators: list[str] = []
        self.error = ""

    def record(self, error: str | ErrorKind) -> None:
        """Record *error* unless an earlier one is already recorded."""
        if not self.error:
            self.error = error.value if isinstance(error, ErrorKind) else error

    def run(self, formula: Sequence[str]) -> EvaluationOutcome:
        try:
            for token in formula:
                if is_number(token):
                    self.operands.append(float(token))
                elif is_cell_reference(token):
                    value, error = resolve_cell(token, self._memory)
                    if error:
                        return EvaluationOutcome.failure(error)
                    self.operands.append(value)
                elif token == OPEN_PAREN:
                    self.operators.append(token)
                elif token == CLOSE_PAREN:
                    while self.operators and self.operators[-1] != OPEN_PAREN:
                        self._compute()
                    if self.operators:
                        self.operators.pop()
                else:
                    while self.operators and precedence(self.operators[-1]) >= precedence(token):
                        self._compute()
                    self.operators.append(token)

            while self.operators:
                if self.operators[-1] == OPEN_PAREN:
                    self.record(ErrorKind.missing_parentheses)
                self._compute()

            if len(self.operands) != 1:
                raise FormulaOperandError()
            return EvaluationOutcome.success(self.operands.pop())

        except FormulaDivideByZeroError:
            return EvaluationOutcome.failure(ErrorKind.divide_by_zero, partial=math.inf)
        except FormulaError:
            self.record(ErrorKind.invalid_formula)
            partial = self.operands[0] if len(self.operands) == 1 else 0.0
            return EvaluationOutcome.failure(self.error, partial=partial)

    def _compute(self) -> None:
        try:
            compute(self.operands, self.operators)
        except FormulaError as exc:
            if not isinstance(exc, FormulaDivideByZeroError):
                self.record(exc.kind)
            raise


class FormulaEvaluator:
    """Evaluator bound to one cell store, exposing the last outcome.

    Usage::

        evaluator = FormulaEvaluator(memory)
        evaluator.evaluate(["3", "+", "4"])
        evaluator.result   # 7.0
        evaluator.error    # ""

    Each :meth:`evaluate` call replaces the previous outcome; nothing else
    carries over between calls.
    """

    def __init__(self, memory: CellStore) -> None:
        self._memory = memory
        self._outcome = EvaluationOutcome()

    def evaluate(self, formula: Sequence[str]) -> EvaluationOutcome:
        self._outcome = evaluate_formula(formula, self._memory)
        emit_evaluation(formula, self._outcome)
        return self._outcome

    @property
    def outcome(self) -> EvaluationOutcome:
        return self._outcome

    @property
    def result(self) -> float:
        return self._outcome.result

    @property
    def error(self) -> str:
        return self._outcome.error
