from __future__ import annotations

from typing import Any, Iterable

import typer

from models.schemas import CycleReport, CycleStatus
from services.catalog import SensorCatalog
from storage.a1 import column_letter


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_catalog(catalog: SensorCatalog) -> None:
    echo_heading("Sensor Catalog")
    if not len(catalog):
        typer.echo("No sensors configured.")
        return
    for descriptor in sorted(catalog, key=lambda d: d.column):
        typer.echo(
            f"  {column_letter(descriptor.column):>3}  {descriptor.name:<20} {descriptor.description}"
        )
    typer.echo()
    echo_key_values([("sensors", len(catalog)), ("row_width", catalog.width)])


def render_report(report: CycleReport) -> None:
    colour = typer.colors.GREEN if report.status is CycleStatus.written else typer.colors.RED
    typer.secho(f"Cycle {report.status.value}", fg=colour, bold=True)
    echo_key_values(
        [
            ("started_at", report.started_at.isoformat()),
            ("duration_ms", report.duration_ms),
            ("fetch_attempts", report.fetch_attempts),
            ("period", report.period),
            ("row_number", report.row_number),
            ("fields_written", report.fields_written),
        ]
    )
    if report.skipped_fields:
        typer.echo("skipped_fields:")
        for name in report.skipped_fields:
            typer.echo(f"  - {name}")
    if report.error:
        typer.secho(f"error: {report.error}", fg=typer.colors.RED)
