"""Shared helpers for CLI commands: pipeline construction and error display."""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console

from routelog.config import LogSettings
from routelog.core.errors import RoutelogError
from routelog.core.log_setup import configure_logging
from routelog.core.pipeline import LogPipeline

console = Console()


def load_pipeline() -> LogPipeline:
    """Build a pipeline from the environment, exiting with code 1 on config errors."""
    settings = LogSettings()
    configure_logging(settings)
    try:
        return LogPipeline.from_settings(settings)
    except RoutelogError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)
