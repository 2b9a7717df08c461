"""``routelog write``, ``routelog read`` and ``routelog decrypt``."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.syntax import Syntax

from routelog.cli.commands._runtime import console, fail, load_pipeline
from routelog.core.errors import RoutelogError


def write_cmd(
    flag: str = typer.Argument(..., help="The log flag to write."),
    data: str = typer.Option("{}", "--data", "-d", help="Event data as a JSON object."),
    action: str = typer.Option(None, "--action", "-a", help="Action name for {action} routes."),
    message: str = typer.Option("", "--message", "-m", help="Human-readable message."),
    level: str = typer.Option("info", "--level", "-l", help="Log level."),
    critical: bool = typer.Option(None, "--critical/--not-critical", help="Override route criticality."),
) -> None:
    """Write one event through the full pipeline."""
    try:
        parsed = json.loads(data)
    except ValueError as exc:
        fail(f"--data is not valid JSON: {exc}")
    pipeline = load_pipeline()

    async def _run() -> None:
        try:
            await pipeline.write_log(
                flag=flag, data=parsed, action=action, message=message,
                level=level, critical=critical,
            )
        finally:
            await pipeline.aclose()

    try:
        asyncio.run(_run())
    except (RoutelogError, ValueError) as exc:
        fail(str(exc))

    drops = pipeline.context.errors.permission_drops
    console.print(f"[bold green]Wrote[/bold green] {flag} beneath {pipeline.log_root}")
    if pipeline.context.errors.records:
        console.print(
            f"[yellow]{len(pipeline.context.errors.records)} issue(s) recorded"
            f"{f', {drops} permission drop(s)' if drops else ''}[/yellow]"
        )
        for record in pipeline.context.errors.records:
            console.print(f"  [dim]{record.code}[/dim] {record.message}")


def read_cmd(
    log_file: Path = typer.Argument(..., help="Newline-delimited JSON log file."),
    decrypt: bool = typer.Option(False, "--decrypt", help="Decrypt encrypted fields."),
    limit: int = typer.Option(1000, "--limit", "-n", help="Maximum entries to show."),
) -> None:
    """Print the entries of LOG_FILE."""
    pipeline = load_pipeline()
    try:
        entries = asyncio.run(pipeline.read_log_file(log_file, decrypt=decrypt, limit=limit))
    except (RoutelogError, OSError) as exc:
        fail(str(exc))
    for entry in entries:
        console.print(Syntax(json.dumps(entry, indent=2, ensure_ascii=False), "json"))
    console.print(f"[dim]{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}[/dim]")


def decrypt_cmd(
    log_file: Path = typer.Argument(..., help="Log file containing encrypted fields."),
) -> None:
    """Write a decrypted copy of LOG_FILE beside it."""
    pipeline = load_pipeline()
    try:
        target = asyncio.run(pipeline.decrypt_log_file(log_file))
    except (RoutelogError, OSError) as exc:
        fail(str(exc))
    console.print(f"[bold green]Decrypted copy written to[/bold green] {target}")
