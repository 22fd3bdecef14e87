"""Lark-based tokenizer turning raw formula text into evaluator tokens.

Supports:
- Decimal numbers: ``3``, ``2.5``, ``.5``, ``1e3``
- Cell labels: ``A1``, ``aa10`` (one to three letters, normalised to uppercase)
- Operators ``+ - * /`` and parentheses
- An optional leading ``=``

Signs are always emitted as separate operator tokens; the evaluator has
no unary operators, so ``-5`` tokenizes to ``["-", "5"]``.
"""

from __future__ import annotations

from lark import Lark, Token
from lark.exceptions import LarkError, UnexpectedInput

from sheetcalc.formulas.errors import FormulaParseError

GRAMMAR = r"""
start: EQUALS? _item*

_item: NUMBER | CELL | OPERATOR | LPAREN | RPAREN

EQUALS: "="
NUMBER: /(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?/
CELL: /[A-Za-z]{1,3}[0-9]+/
OPERATOR: "+" | "-" | "*" | "/"
LPAREN: "("
RPAREN: ")"

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start", keep_all_tokens=True)


def tokenize(text: str) -> list[str]:
    """Split formula text into an ordered token list.

    Args:
        text: The formula text, e.g. ``"=(A1 + 2) * 3"``.

    Returns:
        Tokens in source order, e.g. ``["(", "A1", "+", "2", ")", "*", "3"]``.

    Raises:
        FormulaParseError: If the text contains characters that are not
            part of any token.
    """
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as exc:
        raise FormulaParseError(str(exc).splitlines()[0], position=exc.column) from exc
    except LarkError as exc:
        raise FormulaParseError(str(exc)) from exc

    tokens: list[str] = []
    for tok in tree.children:
        if not isinstance(tok, Token) or tok.type == "EQUALS":
            continue
        tokens.append(str(tok).upper() if tok.type == "CELL" else str(tok))
    return tokens
