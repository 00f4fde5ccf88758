"""ShipBatch CLI.

Runs the batch workflow in-process against the configured database.

Usage:
    shipbatch ingest orders.csv --validate --select cheapest
    shipbatch rates 24
    shipbatch pricing
    shipbatch batches --status draft
    shipbatch show BATCH-XXXX
    shipbatch serve --port 8000
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.output import (
    format_batch_detail,
    format_batch_table,
    format_pricing_table,
    format_rates,
)
from src.config import load_config
from src.errors import DomainError
from src.services.pricing_service import get_all_rates, get_pricing_table, normalize_weight

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="shipbatch",
    help="CSV batch shipping: ingest, validate, rate and purchase",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to shipbatch.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr"),
):
    """ShipBatch CLI."""
    if config:
        # Picked up by load_config() wherever it runs, including the DB engine
        os.environ["SHIPBATCH_CONFIG_PATH"] = config
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _fail(error: DomainError) -> None:
    console.print(f"[red]Error {error.code}:[/red] {escape(error.message)}")
    raise typer.Exit(1)


@app.command()
def ingest(
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="CSV file to ingest"
    ),
    validate: bool = typer.Option(False, "--validate", help="Validate addresses after ingest"),
    select: Optional[str] = typer.Option(
        None, "--select", help="Select shipping for every row: all or cheapest"
    ),
    service: str = typer.Option(
        "ground", "--service", help="Service for --select all: ground or priority"
    ),
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner reference"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Create a batch from a CSV file."""
    from src.db.connection import get_db_context, init_db
    from src.services.batch_ingestion import BatchIngestionEngine
    from src.services.batch_service import BatchService

    init_db()
    try:
        with get_db_context() as db:
            batch = BatchIngestionEngine(db).ingest(file.read_bytes(), file.name, owner_id=owner)
            batch_service = BatchService(db)
            if validate:
                asyncio.run(batch_service.validate_batch(batch.batch_id))
            if select:
                result = batch_service.bulk_select_shipping(
                    batch.batch_id, strategy=select, service_type=service
                )
                for error in result["errors"]:
                    _log.warning("Row %s: %s", error["row_number"], error["error"])
            batch = batch_service.get_batch(batch.batch_id)
            typer.echo(format_batch_detail(batch, as_json=json_output))
    except DomainError as e:
        _fail(e)


@app.command()
def rates(
    weight: float = typer.Argument(..., help="Package weight"),
    unit: str = typer.Option("oz", "--unit", help="Weight unit: oz or lb"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show every available service for a weight."""
    options = get_all_rates(normalize_weight(weight, unit))
    typer.echo(format_rates(options.to_dict(), as_json=json_output))


@app.command()
def pricing(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the pricing tiers of every service."""
    typer.echo(format_pricing_table(get_pricing_table(), as_json=json_output))


@app.command()
def batches(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    page: int = typer.Option(1, "--page", help="Page number"),
    limit: int = typer.Option(20, "--limit", help="Page size"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List batches, newest first."""
    from src.db.connection import get_db_context, init_db
    from src.services.batch_service import BatchService

    init_db()
    with get_db_context() as db:
        result = BatchService(db).list_batches(status=status, page=page, limit=limit)
        typer.echo(format_batch_table(result["batches"], as_json=json_output))
        if not json_output:
            p = result["pagination"]
            console.print(f"Page {p['page']} of {max(p['pages'], 1)} ({p['total']} batches)")


@app.command()
def show(
    batch_id: str = typer.Argument(help="Batch ID to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show one batch with its rows."""
    from src.db.connection import get_db_context, init_db
    from src.services.batch_service import BatchService

    init_db()
    try:
        with get_db_context() as db:
            batch = BatchService(db).get_batch(batch_id)
            typer.echo(format_batch_detail(batch, as_json=json_output))
    except DomainError as e:
        _fail(e)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    cfg = load_config()
    final_host = host or cfg.api.host
    final_port = port or cfg.api.port
    console.print(f"[bold]Starting ShipBatch API on {final_host}:{final_port}[/bold]")
    uvicorn.run("src.api.main:app", host=final_host, port=final_port)


if __name__ == "__main__":
    app()
