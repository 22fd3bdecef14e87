"""Error kinds and exception types for formula tokenizing and evaluation."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of evaluation error kinds.

    Values are the exact error strings reported by an evaluation outcome.
    ``cell_error`` stands for an error string propagated verbatim from a
    referenced cell that matches none of the other kinds.
    """

    empty_formula = "empty formula"
    invalid_formula = "invalid formula"
    invalid_cell = "invalid cell"
    invalid_operator = "invalid operator"
    missing_parentheses = "missing parentheses"
    divide_by_zero = "divide by zero"
    cell_error = "cell error"


class FormulaError(Exception):
    """Base class for all formula-related errors.

    Attributes:
        kind: The error kind this failure reports.
    """

    kind: ErrorKind = ErrorKind.invalid_formula

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind.value)


class FormulaOperandError(FormulaError):
    """Not enough operands on the stack for a binary operator."""

    kind = ErrorKind.invalid_formula


class FormulaOperatorError(FormulaError):
    """Operator symbol outside ``+ - * /``.

    Attributes:
        symbol: The offending operator token.
    """

    kind = ErrorKind.invalid_operator

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(f"Invalid operator: {symbol!r}")


class FormulaDivideByZeroError(FormulaError):
    """Division with a zero divisor."""

    kind = ErrorKind.divide_by_zero


class FormulaParseError(FormulaError):
    """Raw formula text that cannot be split into tokens.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)

