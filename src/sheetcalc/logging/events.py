"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import math
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from sheetcalc.formulas.outcome import EvaluationOutcome


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Evaluation
    evaluate_completed = "evaluate_completed"
    evaluate_failed = "evaluate_failed"

    # Sheet snapshots
    sheet_loaded = "sheet_loaded"
    sheet_load_failed = "sheet_load_failed"


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long string values truncated.

    Formulas can be arbitrarily long; anything over 256 characters is cut
    and marked ``...[truncated]``.  Nested dicts and lists are processed
    recursively.
    """
    return {k: _truncate_value(v) for k, v in context.items()}


def _truncate_value(v: Any) -> Any:
    if isinstance(v, dict):
        return truncate_context(v)
    if isinstance(v, list):
        return [_truncate_value(item) for item in v]
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.evaluate_completed.value: {"formula"},
    EventType.evaluate_failed.value: {"formula"},
    EventType.sheet_loaded.value: {"sheet_path"},
    EventType.sheet_load_failed.value: {"sheet_path"},
}


def _validate_attribution(event: SheetcalcEvent) -> SheetcalcEvent:
    """Check required context keys; downgrade to warning if missing."""
    required = _EVENT_REQUIRED_KEYS.get(event.event_type.value, set())
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return event.model_copy(update={"level": EventLevel.warning, "context": ctx})
    return event


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SheetcalcEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def make_evaluation_event(
    formula: Sequence[str],
    outcome: EvaluationOutcome,
) -> SheetcalcEvent:
    """Build the event describing one evaluation.

    Failures are logged at warning level with the error kind as
    ``error_code``; the (possibly salvaged) result is kept in the context.
    JSON has no infinity, so a non-finite result is logged as a string.
    """
    result: float | str = outcome.result
    if not math.isfinite(outcome.result):
        result = str(outcome.result)
    ctx: dict[str, Any] = {
        "formula": " ".join(formula),
        "token_count": len(formula),
        "result": result,
    }
    if outcome.ok:
        return SheetcalcEvent(
            level=EventLevel.info,
            event_type=EventType.evaluate_completed,
            message=f"Evaluated to {outcome.result}",
            context=ctx,
        )
    ctx["error"] = outcome.error
    return SheetcalcEvent(
        level=EventLevel.warning,
        event_type=EventType.evaluate_failed,
        message=f"Evaluation failed: {outcome.error}",
        context=ctx,
        error_code=outcome.kind.name if outcome.kind is not None else None,
    )


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_project_dir`` is called.
_sink: Any = None  # EventSink | None
_project_dir: Any = None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    This should be called early in a CLI command.  If it is never called,
    ``emit()`` silently discards events.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from the project
    config (``sheetcalc.yaml``) to configure the sink.
    """
    global _sink, _project_dir
    from pathlib import Path

    from sheetcalc.logging.sink import EventSink
    from sheetcalc.project import load_project_config

    _project_dir = Path(project_dir)

    fsync = False
    tail_bytes = None
    try:
        cfg = load_project_config(_project_dir)
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except (OSError, ValueError) as exc:
        _stderr_warning(f"could not read logging config: {exc}")

    _sink = EventSink(_project_dir, fsync=fsync, tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Detach the module-level sink so that ``emit()`` discards events again."""
    global _sink, _project_dir
    _sink = None
    _project_dir = None


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[sheetcalc] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: SheetcalcEvent) -> None:
    """Write an event to the project event log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Applies context truncation and attribution validation before writing.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": truncate_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_evaluation(formula: Sequence[str], outcome: EvaluationOutcome) -> None:
    """Convenience: emit the event for one evaluation."""
    if _get_sink() is None:
        return
    try:
        event = make_evaluation_event(formula, outcome)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")
        return
    emit(event)


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        SheetcalcEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        )
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        SheetcalcEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )
