from __future__ import annotations

import logging

import typer

from .common import configure_logging
from .subapps.metrics import metrics_app

app = typer.Typer(help="Segmented metrics command line interface")
app.add_typer(metrics_app, name="metrics")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging("cli", level=logging.DEBUG if verbose else logging.INFO)


if __name__ == "__main__":
    app()
