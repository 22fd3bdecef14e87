"""Command-line interface for sheetcalc-core."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

import click

from sheetcalc import __core_api_version__, __version__


@click.group()
@click.version_option(
    version=f"{__version__} (core_api={__core_api_version__})",
    prog_name="sheetcalc",
)
def main() -> None:
    """sheetcalc -- evaluate spreadsheet arithmetic formulas."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


_MAX_PLAIN_INT = 1e15


def _format_value(value: float, precision: int) -> str:
    """Format a result for display: integral floats without a fraction.

    Magnitudes from 1e15 up always use *precision* significant digits.
    """
    if math.isfinite(value) and abs(value) < _MAX_PLAIN_INT and value == int(value):
        return str(int(value))
    return f"{value:.{precision}g}"


def _json_value(value: float) -> float | str:
    return value if math.isfinite(value) else str(value)


def _load_memory(sheet_path: Path | None, project_dir: Path | None, config: dict[str, Any]):
    """Build the cell store for an evaluation.

    An explicit ``--sheet`` wins; otherwise a project's ``sheet.yaml`` is
    used when present; otherwise the sheet is empty.
    """
    from sheetcalc.logging.events import EventType, emit_error, emit_info
    from sheetcalc.sheet import SheetError, SheetMemory, load_sheet

    n_rows = int(config["sheet_rows"])
    n_cols = int(config["sheet_cols"])

    if sheet_path is None and project_dir is not None:
        candidate = project_dir / "sheet.yaml"
        if candidate.exists():
            sheet_path = candidate
    if sheet_path is None:
        return SheetMemory(n_rows=n_rows, n_cols=n_cols)

    try:
        memory = load_sheet(sheet_path, n_rows=n_rows, n_cols=n_cols)
    except SheetError as e:
        emit_error(
            EventType.sheet_load_failed,
            str(e),
            {"sheet_path": str(sheet_path)},
        )
        raise click.ClickException(str(e))
    emit_info(
        EventType.sheet_loaded,
        f"Loaded {len(memory)} cells",
        {"sheet_path": str(sheet_path), "cell_count": len(memory)},
    )
    return memory


# ---------------------------------------------------------------------------
# Eval
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("formula")
@click.option("--sheet", "sheet_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML sheet snapshot used to resolve cell references.")
@click.option("--project", "project", default=None, type=click.Path(exists=True, file_okay=False), help="Project directory (config, default sheet, event log).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(formula: str, sheet_path: str | None, project: str | None, as_json: bool) -> None:
    """Evaluate FORMULA, e.g. "(A1 + 2) * 3".

    Exits with status 2 when the formula evaluates to an error.
    """
    from sheetcalc.formulas import FormulaEvaluator, FormulaParseError, tokenize
    from sheetcalc.logging.events import set_project_dir
    from sheetcalc.project import DEFAULT_CONFIG, load_project_config

    project_dir = Path(project) if project else None
    config: dict[str, Any] = dict(DEFAULT_CONFIG)
    if project_dir is not None:
        try:
            config = load_project_config(project_dir)
        except ValueError as e:
            raise click.ClickException(str(e))
        set_project_dir(project_dir)

    try:
        tokens = tokenize(formula)
    except FormulaParseError as e:
        raise click.ClickException(str(e))

    memory = _load_memory(Path(sheet_path) if sheet_path else None, project_dir, config)
    outcome = FormulaEvaluator(memory).evaluate(tokens)
    precision = int(config["display_precision"])

    if as_json:
        click.echo(json.dumps({
            "tokens": tokens,
            "result": _json_value(outcome.result),
            "error": outcome.error,
            "kind": outcome.kind.name if outcome.kind is not None else None,
        }, indent=2))
    elif outcome.ok:
        click.echo(_format_value(outcome.result, precision))
    else:
        click.echo(f"error: {outcome.error}")
        if outcome.result != 0:
            click.echo(f"partial result: {_format_value(outcome.result, precision)}")

    if not outcome.ok:
        raise SystemExit(2)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@main.command("tokens")
@click.argument("formula")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def tokens_cmd(formula: str, as_json: bool) -> None:
    """Show how FORMULA is split into tokens."""
    from sheetcalc.formulas import FormulaParseError, tokenize

    try:
        tokens = tokenize(formula)
    except FormulaParseError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(tokens))
    else:
        click.echo(" ".join(tokens))


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def new(directory: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from sheetcalc.project import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--event-type", "event_type", default=None, help="Filter by event type.")
@click.option("--limit", default=50, type=int, help="Max events to show.")
def events_cmd(directory: str, level: str | None, event_type: str | None, limit: int) -> None:
    """Show structured event log for DIRECTORY."""
    from sheetcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


if __name__ == "__main__":
    main()
