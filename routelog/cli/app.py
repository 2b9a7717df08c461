"""Main Typer application — imports and registers all CLI commands.

Entry point: ``routelog`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from routelog.cli.commands.logs import decrypt_cmd, read_cmd, write_cmd
from routelog.cli.commands.routes import resolve_cmd, route_cmd

app = typer.Typer(
    name="routelog",
    help="routelog: routed, encrypted, durable structured logging.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="route", help="Show the route a flag resolves to.")(route_cmd)
app.command(name="resolve", help="Expand a destination template against KEY=VALUE data.")(resolve_cmd)
app.command(name="write", help="Write one event through the pipeline.")(write_cmd)
app.command(name="read", help="Print the entries of a log file.")(read_cmd)
app.command(name="decrypt", help="Write a decrypted copy of a log file.")(decrypt_cmd)


@app.command(name="keygen", help="Generate a LOG_ENCRYPTION_KEY value.")
def keygen_cmd() -> None:
    """Print a fresh base64 32-byte key for LOG_ENCRYPTION_KEY."""
    from routelog.bridge.field_crypto import generate_key

    typer.echo(generate_key())


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
