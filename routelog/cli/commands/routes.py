"""``routelog route FLAG`` and ``routelog resolve TEMPLATE KEY=VALUE...``.

Inspect how a flag maps onto the routing table and how a destination
template expands against sample data.
"""

from __future__ import annotations

import typer
from rich.table import Table

from routelog.cli.commands._runtime import console, fail, load_pipeline


def route_cmd(
    flag: str = typer.Argument(..., help="The log flag to look up."),
) -> None:
    """Show the resolved route for FLAG (synthesized when unknown)."""
    pipeline = load_pipeline()
    route = pipeline.route_for(flag)

    table = Table(title=f"Route for {flag}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Path template", route.path_template)
    table.add_row("Category", str(route.category))
    table.add_row("Retention", str(route.retention))
    table.add_row("Description", str(route.description))
    table.add_row("Critical", "[red]Yes[/red]" if route.critical else "No")
    table.add_row("PCI relevant", "Yes" if route.is_pci_relevant else "No")
    table.add_row("Encrypted fields", ", ".join(route.encrypt_fields) or "[dim]none[/dim]")
    console.print(table)


def _parse_pairs(pairs: list[str]) -> dict[str, str]:
    data: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            fail(f"expected KEY=VALUE, got {pair!r}")
        data[key] = value
    return data


def resolve_cmd(
    template: str = typer.Argument(..., help="Destination template, e.g. 'logs/{tenant}.log'."),
    pairs: list[str] = typer.Argument(None, help="Placeholder values as KEY=VALUE."),
) -> None:
    """Expand TEMPLATE against KEY=VALUE data."""
    pipeline = load_pipeline()
    resolution = pipeline.resolve_path(template, _parse_pairs(pairs or []))
    if resolution.ok:
        console.print(f"[green]{resolution.path}[/green]")
        return
    console.print(
        f"[yellow]Unresolved placeholders:[/yellow] {', '.join(resolution.missing)}"
    )
    raise typer.Exit(code=2)
