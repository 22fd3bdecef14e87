"""In-memory cell storage consulted by the formula evaluator.

The evaluator only needs the narrow :class:`CellStore` capability:
label validation and cell lookup.  :class:`SheetMemory` is the bundled
dict-backed implementation; it holds a snapshot of cells as given and
never recalculates them.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

# A1-style label: one to three uppercase column letters, then a row number.
_ADDR_RE = re.compile(r"^([A-Z]{1,3})(\d+)$")

EMPTY_FORMULA_ERROR = "empty formula"


class SheetError(Exception):
    """A sheet snapshot file that cannot be loaded."""


def is_cell_label(token: str) -> bool:
    """Return True if *token* has the shape of a cell label (e.g. ``B12``).

    Labels are case sensitive: ``b12`` is not a label.
    """
    return bool(_ADDR_RE.match(token))


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def parse_addr(addr: str) -> tuple[int, int]:
    """Parse 'A1' -> (row_0based, col_0based).

    Raises ValueError on bad address.
    """
    m = _ADDR_RE.match(addr)
    if not m:
        raise ValueError(f"Invalid cell address: {addr!r}")
    col = col_letter_to_index(m.group(1))
    row = int(m.group(2)) - 1
    return row, col


# ---------------------------------------------------------------------------
# Cell + storage protocol
# ---------------------------------------------------------------------------


class Cell(BaseModel):
    """One stored cell: its formula tokens, last value and last error."""

    label: str
    formula: list[str] = Field(default_factory=list)
    value: float = 0.0
    error: str = ""

    @field_validator("formula", mode="before")
    @classmethod
    def _coerce_tokens(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [str(t) for t in v]
        return v

    def get_formula(self) -> list[str]:
        return list(self.formula)

    def get_error(self) -> str:
        return self.error

    def get_value(self) -> float:
        return self.value


class CellStore(Protocol):
    """Capability the evaluator needs from cell storage."""

    def is_valid_cell_label(self, label: str) -> bool:
        """Check that *label* names a cell this store can hold."""
        ...

    def get_cell_by_label(self, label: str) -> Cell:
        """Return the cell stored under *label* (empty cell if unset)."""
        ...


class SheetMemory:
    """Dict-backed :class:`CellStore` with fixed sheet dimensions.

    Usage::

        memory = SheetMemory(n_rows=200, n_cols=40)
        memory.set_cell("A1", ["1", "+", "2"], value=3)
        FormulaEvaluator(memory).evaluate(["A1", "*", "2"])
    """

    def __init__(self, n_rows: int = 200, n_cols: int = 40) -> None:
        if n_rows < 1 or n_cols < 1:
            raise ValueError(f"Sheet dimensions must be positive, got {n_rows}x{n_cols}")
        self.n_rows = n_rows
        self.n_cols = n_cols
        self._cells: dict[str, Cell] = {}

    def is_valid_cell_label(self, label: str) -> bool:
        try:
            row, col = parse_addr(label)
        except ValueError:
            return False
        return 0 <= row < self.n_rows and 0 <= col < self.n_cols

    def get_cell_by_label(self, label: str) -> Cell:
        cell = self._cells.get(label)
        if cell is None:
            # Unset cells read as empty, carrying the empty-formula marker.
            return Cell(label=label, error=EMPTY_FORMULA_ERROR)
        return cell

    def set_cell(
        self,
        label: str,
        formula: list[str],
        value: float = 0.0,
        error: str = "",
    ) -> Cell:
        """Store a cell snapshot under *label*.

        Raises:
            ValueError: If *label* is outside this sheet.
        """
        if not self.is_valid_cell_label(label):
            raise ValueError(
                f"Invalid cell label {label!r} for a {self.n_rows}x{self.n_cols} sheet"
            )
        cell = Cell(label=label, formula=formula, value=value, error=error)
        self._cells[label] = cell
        return cell

    def __len__(self) -> int:
        return len(self._cells)


# ---------------------------------------------------------------------------
# YAML snapshot loading
# ---------------------------------------------------------------------------


def load_sheet(path: Path, n_rows: int = 200, n_cols: int = 40) -> SheetMemory:
    """Load a sheet snapshot from a YAML file.

    The file holds a ``cells`` mapping of label to cell dict.  A cell's
    ``formula`` may be raw text (tokenized on load) or a list of tokens;
    ``value`` and ``error`` are stored as given.

    Raises:
        SheetError: If the file is missing, malformed, or names a bad cell.
    """
    # Local import to avoid circular dependency
    from sheetcalc.formulas.errors import FormulaParseError
    from sheetcalc.formulas.tokenizer import tokenize

    if not path.exists():
        raise SheetError(f"Sheet file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise SheetError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise SheetError(f"Sheet file {path} must contain a mapping")

    cells = raw.get("cells") or {}
    if not isinstance(cells, dict):
        raise SheetError(f"'cells' in {path} must be a mapping of label to cell")

    try:
        memory = SheetMemory(
            n_rows=int(raw.get("n_rows", n_rows)),
            n_cols=int(raw.get("n_cols", n_cols)),
        )
    except (TypeError, ValueError) as exc:
        raise SheetError(f"Invalid sheet dimensions in {path}: {exc}") from exc
    for label, spec in cells.items():
        label = str(label).upper()
        if not isinstance(spec, dict):
            spec = {"formula": spec}
        formula = spec.get("formula", [])
        try:
            if isinstance(formula, str):
                formula = tokenize(formula)
            elif not isinstance(formula, list):
                formula = [str(formula)]
            memory.set_cell(
                label,
                formula,
                value=spec.get("value", 0.0),
                error=spec.get("error", "") or "",
            )
        except (FormulaParseError, ValidationError, ValueError) as exc:
            raise SheetError(f"Cell {label} in {path}: {exc}") from exc
    return memory
