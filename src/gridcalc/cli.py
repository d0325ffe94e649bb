"""Command-line interface for gridcalc."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click

from gridcalc import __version__
from gridcalc.errors import GridcalcError


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
def main() -> None:
    """gridcalc -- spreadsheet formulas and range commands."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _open_project(directory: str):
    """Attach the event log and return a service over DIRECTORY's sheets."""
    from gridcalc.config import load_config
    from gridcalc.logging.events import set_project_dir
    from gridcalc.service import SheetService

    project_dir = Path(directory)
    cfg = load_config(project_dir)
    logging.basicConfig(
        level=str(cfg.get("log_level", "warning")).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    set_project_dir(project_dir)
    return SheetService.for_project(project_dir)


def _echo_result(result: dict[str, Any]) -> None:
    click.echo(result.get("message", ""))
    for label, reason in sorted(result.get("errors", {}).items()):
        click.echo(f"  {label}: #ERROR ({reason})", err=True)


# ---------------------------------------------------------------------------
# Project / sheets
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def init(directory: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from gridcalc.config import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("name")
def new(directory: str, name: str) -> None:
    """Create an empty sheet called NAME."""
    svc = _open_project(directory)
    try:
        result = svc.create_sheet(name)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created sheet {result['name']!r} (id: {result['id']})")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
def sheets(directory: str) -> None:
    """List the sheets of DIRECTORY."""
    svc = _open_project(directory)
    items = svc.list_sheets()
    if not items:
        click.echo("No sheets.")
        return
    for item in items:
        click.echo(f"{item['id']:20s} {item['name']}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("sheet_id")
@click.argument("text")
@click.option("--cell", "selected_cell", default=None, help="Selected cell for a bare =formula.")
def run(directory: str, sheet_id: str, text: str, selected_cell: str | None) -> None:
    """Apply a free-text command such as 'sum A1:A10' to SHEET_ID."""
    svc = _open_project(directory)
    try:
        result = svc.apply_text(sheet_id, text, selected_cell)
    except (GridcalcError, ValueError) as e:
        raise click.ClickException(str(e))
    if not result["ok"]:
        raise click.ClickException(result["message"])
    _echo_result(result)


@main.command("set")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("sheet_id")
@click.argument("cell")
@click.argument("value")
def set_cmd(directory: str, sheet_id: str, cell: str, value: str) -> None:
    """Set CELL of SHEET_ID to VALUE (a number, text or =formula)."""
    from gridcalc.commands import SetValue

    svc = _open_project(directory)
    try:
        result = svc.apply(sheet_id, SetValue(cell=cell, value=value))
    except (GridcalcError, ValueError) as e:
        raise click.ClickException(str(e))
    _echo_result(result)


@main.command("eval")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("sheet_id")
@click.argument("formula")
def eval_cmd(directory: str, sheet_id: str, formula: str) -> None:
    """Evaluate FORMULA against SHEET_ID without storing it."""
    svc = _open_project(directory)
    try:
        result = svc.evaluate(sheet_id, formula)
    except GridcalcError as e:
        raise click.ClickException(str(e))
    click.echo(result["value"])


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("sheet_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show(directory: str, sheet_id: str, as_json: bool) -> None:
    """Show the populated cells of SHEET_ID."""
    svc = _open_project(directory)
    try:
        data = svc.get_cells(sheet_id)
    except GridcalcError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"{data['name']} ({data['n_rows']} x {data['n_cols']})")
    if not data["cells"]:
        click.echo("  (empty)")
        return
    for cell in data["cells"]:
        line = f"  {cell['ref']:8s} {cell['display']}"
        if cell["type"] == "formula":
            line += f"  [{cell['raw']}]"
        click.echo(line)


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("sheet_id")
@click.option("-o", "--output", type=click.Path(), default=None, help="Write CSV to a file.")
def export(directory: str, sheet_id: str, output: str | None) -> None:
    """Export SHEET_ID as CSV."""
    svc = _open_project(directory)
    try:
        text = svc.export_csv(sheet_id)
    except GridcalcError as e:
        raise click.ClickException(str(e))
    if output:
        Path(output).write_text(text)
        click.echo(f"Wrote {output}")
    else:
        click.echo(text, nl=False)


@main.command("import")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", required=True, help="Name of the new sheet.")
def import_cmd(directory: str, csv_file: str, name: str) -> None:
    """Create a sheet from CSV_FILE."""
    svc = _open_project(directory)
    try:
        result = svc.import_csv(Path(csv_file).read_text(), name)
    except (GridcalcError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Imported sheet {result['name']!r} (id: {result['id']})")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--sheet", "sheet_id", default=None, help="Filter by sheet id.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    sheet_id: str | None,
    limit: int,
) -> None:
    """Show the structured event log for DIRECTORY."""
    svc = _open_project(directory)
    events = svc.tail_events(level=level, event_type=event_type, sheet_id=sheet_id, limit=limit)

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


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", type=int, default=8000, help="Port to listen on.")
def serve(directory: str, host: str, port: int) -> None:
    """Serve the HTTP API for DIRECTORY."""
    import uvicorn

    from gridcalc.server import create_app

    app = create_app(Path(directory))
    click.echo(f"Serving gridcalc at http://{host}:{port}")
    click.echo("Press Ctrl+C to stop")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")
