from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import typer

from cli.render import render_catalog, render_report
from logging_config import configure_logging
from models.schemas import CycleStatus
from services.catalog import CatalogError, SensorCatalog
from services.pipeline import ConfigurationError, PollerContext, build_context
from services.scheduler import next_run_after
from settings import BACKENDS, SecretsError, Settings, get_settings


@dataclass
class CLIState:
    settings: Settings


app = typer.Typer(
    help="Poll an Ambient Weather station and append readings to a yearly spreadsheet tab.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _now() -> datetime:
    return datetime.now().astimezone()


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _open_context(ctx: typer.Context) -> PollerContext:
    state = _get_state(ctx)
    try:
        poller = build_context(state.settings)
    except (CatalogError, SecretsError, ConfigurationError, FileNotFoundError) as exc:
        _fail(str(exc))
    ctx.call_on_close(poller.close)
    return poller


@app.callback()
def main(
    ctx: typer.Context,
    catalog: Optional[str] = typer.Option(
        None,
        "--catalog",
        "-c",
        help="Sensor catalog file (defaults to SENSOR_CATALOG_PATH env or headers.txt).",
    ),
    backend: Optional[str] = typer.Option(
        None,
        "--backend",
        "-b",
        help=f"Spreadsheet backend: {', '.join(BACKENDS)} (defaults to SHEETS_BACKEND env or google).",
    ),
    interval: Optional[int] = typer.Option(
        None,
        "--interval",
        min=1,
        help="Minutes between polls; runs align to multiples of this interval.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to LOG_LEVEL env or INFO).",
    ),
) -> None:
    """Entry point for the CLI."""
    if backend is not None and backend.lower() not in BACKENDS:
        raise typer.BadParameter(f"Unknown backend {backend!r}.", param_hint="--backend")
    settings = get_settings().with_overrides(
        catalog_path=catalog,
        backend=backend.lower() if backend else None,
        interval_minutes=interval,
        log_level=log_level.upper() if log_level else None,
    )
    configure_logging(settings.log_level)
    ctx.obj = CLIState(settings=settings)


@app.command("catalog")
def catalog_command(ctx: typer.Context) -> None:
    """Show the sensor catalog and the header row it produces."""
    state = _get_state(ctx)
    try:
        loaded = SensorCatalog.load(state.settings.catalog_path)
    except CatalogError as exc:
        _fail(str(exc))
    render_catalog(loaded)


@app.command("next-run")
def next_run_command(ctx: typer.Context) -> None:
    """Print when the next aligned poll would start."""
    state = _get_state(ctx)
    target = next_run_after(_now(), state.settings.interval_minutes)
    typer.echo(target.isoformat())


@app.command("once")
def once_command(ctx: typer.Context) -> None:
    """Run a single fetch-and-write cycle immediately."""
    poller = _open_context(ctx)
    report = poller.scheduler.run_cycle()
    render_report(report)
    if report.status is not CycleStatus.written:
        raise typer.Exit(code=1)


@app.command("run")
def run_command(
    ctx: typer.Context,
    cycles: Optional[int] = typer.Option(
        None,
        "--cycles",
        min=1,
        help="Stop after this many cycles (runs until interrupted by default).",
    ),
) -> None:
    """Poll on every aligned slot until interrupted."""
    poller = _open_context(ctx)
    typer.echo(
        f"Polling every {poller.settings.interval_minutes} minute(s) "
        f"into {poller.settings.backend} backend. Press Ctrl+C to stop."
    )
    try:
        poller.scheduler.run_forever(max_cycles=cycles)
    except KeyboardInterrupt:
        typer.echo("Stopped.")
