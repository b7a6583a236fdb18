from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer
from rich.table import Table

from insights.config import ConfigurationError, QueryConfig, load_query_config
from insights.core import InsightsError, MetricsResult
from insights.decode import decode_payload
from insights.flatten import describe_tree, flatten
from insights.table import MetricsTable, write_frame

from ..common import console

logger = logging.getLogger(__name__)

metrics_app = typer.Typer(help="Convert saved metrics responses into tables")


def _read_result(source: Path) -> MetricsResult:
    if not source.exists():
        raise typer.BadParameter(f"Source {source} not found")
    return decode_payload(source.read_bytes())


def _preview(table: MetricsTable, frame: pd.DataFrame, rows: int) -> Table:
    preview = Table(title=f"{table.metadata.get('metric')} / {table.metadata.get('aggregation')}")
    preview.add_column("time", style="cyan")
    for name in frame.columns:
        preview.add_column(str(name), justify="right")
    for timestamp, values in frame.head(rows).iterrows():
        cells = ["" if pd.isna(value) else f"{value:g}" for value in values]
        preview.add_row(timestamp.isoformat(), *cells)
    return preview


@metrics_app.command("convert")
def convert(
    source: Path = typer.Argument(..., help="Saved metrics response (JSON)"),
    metric: Optional[str] = typer.Option(None, help="Metric name, e.g. requests/count"),
    aggregation: Optional[str] = typer.Option(None, help="Aggregation name, e.g. sum"),
    dimension: Optional[List[str]] = typer.Option(
        None, "--dimension", "-d", help="Dimension to split by, outermost first (repeatable)"
    ),
    no_dimensions: bool = typer.Option(
        False, "--no-dimensions", help="Ignore configured dimensions and flatten top-level buckets only"
    ),
    config: Optional[Path] = typer.Option(None, help="Optional query config (YAML or JSON)"),
    tz: Optional[str] = typer.Option(None, "--tz", help="Timezone for the time column"),
    out: Optional[Path] = typer.Option(None, help="Output file (.csv, .parquet or pickle)"),
    rows: int = typer.Option(10, min=0, help="Rows to show in the preview"),
) -> None:
    try:
        query: QueryConfig = load_query_config(
            config,
            metric=metric,
            aggregation=aggregation,
            dimensions=[] if no_dimensions else (dimension or None),
            timezone=tz,
        )
        result = _read_result(source)
        table = flatten(result, query.metric, query.aggregation, query.dimensions)
    except (ConfigurationError, InsightsError) as exc:
        logger.error("Conversion of %s failed: %s", source, exc)
        console().print(f"[red]{exc}[/]")
        raise typer.Exit(code=1)

    frame = table.to_frame(tz=query.timezone)
    if rows:
        console().print(_preview(table, frame, rows))
    if out is not None:
        written = write_frame(frame, out)
        console().print(f"[green]{written}[/] ready with {len(frame)} rows and {len(frame.columns)} columns")


@metrics_app.command("inspect")
def inspect(
    source: Path = typer.Argument(..., help="Saved metrics response (JSON)"),
) -> None:
    try:
        result = _read_result(source)
    except InsightsError as exc:
        console().print(f"[red]{exc}[/]")
        raise typer.Exit(code=1)

    summary = describe_tree(result)
    console().print(f"interval: {summary['interval'] or '-'}")
    console().print(f"time buckets: {summary['top_level_segments']}")
    console().print(f"segments: {summary['segments']} (depth {summary['depth']})")
    levels = Table(title="Property keys by depth")
    levels.add_column("depth", justify="right")
    levels.add_column("keys")
    for depth, keys in enumerate(summary["properties"]):
        levels.add_row(str(depth), ", ".join(keys) or "-")
    console().print(levels)
