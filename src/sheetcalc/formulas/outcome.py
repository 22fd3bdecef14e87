"""Result type returned by one formula evaluation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from sheetcalc.formulas.errors import ErrorKind


class EvaluationOutcome(BaseModel):
    """Numeric result and error message of one evaluation.

    An empty ``error`` means success.  A non-empty ``error`` does not make
    ``result`` meaningless: when an evaluation aborts with exactly one
    operand left, that operand is kept as a best-effort result, and a
    division by zero reports ``+inf``.
    """

    model_config = ConfigDict(frozen=True)

    result: float = 0.0
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def kind(self) -> ErrorKind | None:
        """The error kind, or ``None`` on success.

        Error strings propagated from a referenced cell that match no
        known kind map to ``ErrorKind.cell_error``.
        """
        if not self.error:
            return None
        try:
            return ErrorKind(self.error)
        except ValueError:
            return ErrorKind.cell_error

    @classmethod
    def success(cls, value: float) -> EvaluationOutcome:
        return cls(result=value)

    @classmethod
    def failure(cls, error: str | ErrorKind, partial: float = 0.0) -> EvaluationOutcome:
        message = error.value if isinstance(error, ErrorKind) else error
        return cls(result=partial, error=message)
