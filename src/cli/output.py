"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean. JSON output uses the same projections as
the HTTP API.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.api.schemas import BatchResponse, BatchSummaryResponse
from src.db.models import Batch

console = Console()

# Status color map for batches and rows
STATUS_COLORS = {
    "draft": "white",
    "validating": "blue",
    "validated": "cyan",
    "shipping_selected": "magenta",
    "purchased": "green",
    "cancelled": "dim",
    "pending": "yellow",
    "valid": "green",
    "warning": "yellow",
    "invalid": "red",
}


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def format_cost(cents: int | None) -> str:
    """Format cost in cents as a dollar string.

    Args:
        cents: Cost in cents, or None.

    Returns:
        Formatted string like "$12.50" or "-" for None.
    """
    if cents is None:
        return "-"
    return f"${cents / 100:,.2f}"


def format_batch_table(batches: list[Batch], as_json: bool = False) -> str:
    """Format a list of batches as a Rich table or JSON.

    Args:
        batches: Batches to display (rows are not shown).
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            [BatchSummaryResponse.from_batch(b).model_dump() for b in batches], indent=2
        )

    if not batches:
        return "No batches found."

    table = Table(title="Batches", show_lines=True)
    table.add_column("Batch ID", style="cyan", no_wrap=True)
    table.add_column("File", style="white")
    table.add_column("Status")
    table.add_column("Step", justify="right")
    table.add_column("Rows", justify="right")
    table.add_column("Invalid", justify="right", style="red")
    table.add_column("Est. Cost", justify="right")
    table.add_column("Created")

    for batch in batches:
        table.add_row(
            batch.batch_id,
            batch.original_filename or "-",
            _colored(batch.status),
            str(batch.current_step),
            str(batch.total_rows),
            str(batch.invalid_rows),
            format_cost(batch.estimated_cost_cents),
            batch.created_at[:19] if batch.created_at else "-",
        )
    return _render(table)


def format_batch_detail(batch: Batch, as_json: bool = False) -> str:
    """Format one batch with its rows as a Rich panel and table, or JSON."""
    if as_json:
        return json.dumps(BatchResponse.from_batch(batch).model_dump(), indent=2)

    ship_from = batch.ship_from or {}
    origin = ", ".join(
        part for part in (ship_from.get("street1"), ship_from.get("city"), ship_from.get("state")) if part
    )
    lines = [
        f"[bold]Batch ID:[/bold]  {batch.batch_id}",
        f"[bold]File:[/bold]      {batch.original_filename or '-'}",
        f"[bold]Status:[/bold]    {_colored(batch.status)} (step {batch.current_step})",
        f"[bold]Ship from:[/bold] {origin or '[red]not set[/red]'}",
        "",
        f"[bold]Rows:[/bold]      {batch.total_rows}",
        f"[bold]Valid:[/bold]     [green]{batch.valid_rows}[/green]",
        f"[bold]Warning:[/bold]   [yellow]{batch.warning_rows}[/yellow]",
        f"[bold]Invalid:[/bold]   [red]{batch.invalid_rows}[/red]",
        f"[bold]Weight:[/bold]    {batch.total_weight_oz:g} oz",
        f"[bold]Est. Cost:[/bold] {format_cost(batch.estimated_cost_cents)}",
    ]
    if batch.purchased_at:
        lines.append(f"[bold]Purchased:[/bold] {batch.purchased_at[:19]}")

    output = _render(Panel("\n".join(lines), title="Batch Detail", expand=False))
    return output + format_rows_table(batch)


def format_rows_table(batch: Batch) -> str:
    """Format a batch's rows as a Rich table."""
    if not batch.rows:
        return "No rows."

    table = Table(title=f"Rows ({len(batch.rows)})", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Recipient", style="white")
    table.add_column("City / State / ZIP")
    table.add_column("Weight", justify="right")
    table.add_column("Validation")
    table.add_column("Service")
    table.add_column("Rate", justify="right")
    table.add_column("Tracking", style="cyan")

    for row in batch.rows:
        table.add_row(
            str(row.row_number),
            row.name or "-",
            f"{row.city} {row.state} {row.zip}".strip() or "-",
            f"{row.weight:g} oz",
            _colored(row.validation_status),
            row.service_type or "-",
            format_cost(row.rate_cents),
            row.tracking_number or "-",
        )
    output = _render(table)

    problems = [(row.row_number, msg) for row in batch.rows for msg in row.messages]
    if problems:
        output += "\n".join(f"  row {number}: {msg}" for number, msg in problems) + "\n"
    return output


def format_rates(options: dict[str, Any], as_json: bool = False) -> str:
    """Format the available rates for one weight."""
    if as_json:
        return json.dumps(options, indent=2)

    if not options["rates"]:
        return f"No service can carry {options['weight']:g} oz."

    table = Table(title=f"Rates for {options['weight']:g} oz ({options['weight_lb']} lb)")
    table.add_column("Service", style="cyan")
    table.add_column("Rate", justify="right", style="green")
    table.add_column("Delivery")
    for quote in options["rates"]:
        table.add_row(quote["service_type"], f"${quote['rate']:.2f}", quote["estimated_delivery"])
    return _render(table)


def format_pricing_table(pricing: dict[str, Any], as_json: bool = False) -> str:
    """Format the per-service tier tables."""
    if as_json:
        return json.dumps(pricing, indent=2)

    output = ""
    for service, info in pricing.items():
        table = Table(
            title=f"{service} (max {info['max_weight']}, {info['estimated_delivery']})"
        )
        table.add_column("Up to", justify="right")
        table.add_column("Price", justify="right", style="green")
        for tier in info["tiers"]:
            table.add_row(tier["up_to"], tier["price"])
        output += _render(table)
    return output
