"""Stack-based evaluation of tokenized arithmetic formulas.

Public API::

    from sheetcalc.formulas import tokenize, evaluate_formula, FormulaEvaluator
"""

from sheetcalc.formulas.errors import (
    ErrorKind,
    FormulaDivideByZeroError,
    FormulaError,
    FormulaOperandError,
    FormulaOperatorError,
    FormulaParseError,
)
from sheetcalc.formulas.evaluator import (
    FormulaEvaluator,
    Operator,
    compute,
    evaluate_formula,
    is_cell_reference,
    is_number,
    precedence,
    resolve_cell,
)
from sheetcalc.formulas.outcome import EvaluationOutcome
from sheetcalc.formulas.tokenizer import tokenize

__all__ = [
    "ErrorKind",
    "EvaluationOutcome",
    "FormulaDivideByZeroError",
    "FormulaError",
    "FormulaEvaluator",
    "FormulaOperandError",
    "FormulaOperatorError",
    "FormulaParseError",
    "Operator",
    "compute",
    "evaluate_formula",
    "is_cell_reference",
    "is_number",
    "precedence",
    "resolve_cell",
    "tokenize",
]
