"""Typer CLI for grid data sources."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import structlog
import typer
from rich.console import Console
from rich.table import Table

from grid_datasource.base import (
    Capability,
    Comparator,
    DataSource,
    RecordId,
    SortKey,
    capabilities,
    comparator_for,
    resolve,
    supports,
)
from grid_datasource.config.loader import load_datasource_config
from grid_datasource.config.models import BackendType, DataSourceConfig
from grid_datasource.conformance import ConformanceReport, run_conformance
from grid_datasource.events import DataChange, DataSourceEvent, RowRange
from grid_datasource.factory import create_data_source
from grid_datasource.remote import HttpDataSource
from grid_datasource.scenario import load_scenario, run_scenario

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="gridsource", help="Grid data source tooling")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _load(config_path: str) -> DataSourceConfig:
    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    return load_datasource_config(path)


def _describe(event: DataSourceEvent) -> str:
    payload = event.payload
    if isinstance(payload, RowRange):
        return f"start={payload.start} end={payload.end}"
    if isinstance(payload, DataChange):
        parts = []
        if payload.values:
            cells = ", ".join(f"{c.record_id}.{c.column_key}" for c in payload.values)
            parts.append(f"values={cells}")
        if payload.rows:
            parts.append(f"rows={len(payload.rows)}")
        return " ".join(parts)
    return ""


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to data source YAML"),
) -> None:
    """Validate a data source configuration file."""
    try:
        config = _load(config_path)
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Valid[/green] — source_id={config.source_id}")
    console.print(f"  backend:      {config.backend}")
    console.print(f"  range policy: {config.range_policy}")
    console.print(f"  id field:     {config.id_field}")
    if config.backend == BackendType.HTTP and config.http is not None:
        console.print(f"  url:          {config.http.base_url}")
        console.print(f"  page size:    {config.http.page_size}")
    else:
        console.print(f"  records:      {len(config.records or [])}")


@app.command()
def replay(
    scenario_path: str = typer.Argument(..., help="Path to scenario YAML"),
) -> None:
    """Replay a change scenario and verify an event-driven mirror keeps up."""
    try:
        scenario = load_scenario(scenario_path)
        result = run_scenario(scenario)
    except Exception as exc:
        console.print(f"[red]Scenario failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    events = Table(title="Events")
    events.add_column("#", justify="right")
    events.add_column("Event", style="cyan")
    events.add_column("Payload")
    for event in result.events:
        events.add_row(str(event.sequence), str(event.type), _describe(event))
    console.print(events)

    columns = sorted({key for row in result.rows for key in row})
    rows = Table(title="Final records")
    for column in columns:
        rows.add_column(column)
    for row in result.rows:
        rows.add_row(*(str(row.get(c, "")) for c in columns))
    console.print(rows)

    if not result.consistent:
        console.print(
            f"[red]Mirror diverged:[/red] {result.mirror_ids} != {result.source_ids}"
        )
        raise typer.Exit(1)
    console.print("[green]Mirror consistent with source[/green]")


async def _run_checks(source: DataSource, id_field: str) -> ConformanceReport:
    edit: tuple[RecordId, str, Any] | None = None
    sort: tuple[Comparator, list[SortKey]] | None = None
    if source.is_ready():
        count = await resolve(source.record_count())
        first = await resolve(source.get_data(0, min(count, 1)))
        if first and supports(source, Capability.EDIT):
            key = next((k for k in first[0] if k != id_field), "checked")
            edit = (first[0][id_field], key, "gridsource-check")
        if supports(source, Capability.SORT):
            order = [SortKey(id_field)]
            sort = (comparator_for(order), order)
    return await run_conformance(source, id_field=id_field, edit=edit, sort=sort)


@app.command()
def check(
    config_path: str = typer.Argument(..., help="Path to data source YAML"),
) -> None:
    """Run the conformance suite against the configured backend."""

    async def _check(source: DataSource, id_field: str) -> ConformanceReport:
        if isinstance(source, HttpDataSource):
            async with source:
                return await _run_checks(source, id_field)
        return await _run_checks(source, id_field)

    try:
        config = _load(config_path)
        source = create_data_source(config)
        report = asyncio.run(_check(source, config.id_field))
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Check failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(title=f"Conformance — {config.source_id}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Detail")
    for r in report.results:
        style = "yellow" if r.skipped else ("green" if r.passed else "red")
        status = report.summary[r.name]
        table.add_row(r.name, f"[{style}]{status}[/{style}]", r.detail)
    console.print(table)
    source_caps = ", ".join(sorted(c.value for c in capabilities(source))) or "none"
    console.print(f"  capabilities: {source_caps}")
    if not report.passed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
