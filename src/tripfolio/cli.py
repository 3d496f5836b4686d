"""Command-line interface for Tripfolio."""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import typer

from tripfolio.config import get_settings
from tripfolio.csv_export import receipts_to_csv
from tripfolio.filtering import category_spending, filter_receipts, totals_by_currency
from tripfolio.logging_utils import configure_logging
from tripfolio.models.filters import AmountRange, DateRange, ReceiptFilters
from tripfolio.snapshot import read_snapshot, write_snapshot
from tripfolio.store import get_store

app = typer.Typer(help="Tripfolio travel-receipt commands.")


def _parse_day(value: Optional[str], option: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter(f"{option} must be YYYY-MM-DD") from exc


@app.callback()
def _setup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


@app.command("export-snapshot")
def export_snapshot_command(
    path: Path = typer.Argument(..., help="Destination JSON file."),
) -> None:
    """Write every receipt, trip, custom category and image to a backup file."""

    written = asyncio.run(write_snapshot(get_store(), path))
    typer.echo(f"Backup written to {written}")


@app.command("import-snapshot")
def import_snapshot_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Backup JSON file."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Replace all local data with the contents of a backup file."""

    if not yes:
        typer.confirm("This replaces all current receipts, trips and categories. Continue?", abort=True)
    outcome = asyncio.run(read_snapshot(get_store(), path))
    if not outcome.ok:
        typer.secho(outcome.reason, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    snapshot = outcome.value
    typer.echo(
        f"Restored {len(snapshot.data.receipts)} receipt(s) and {len(snapshot.data.trips)} trip(s)."
    )


@app.command("export-csv")
def export_csv(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
    day: Optional[str] = typer.Option(None, "--date", help="Only receipts from this day (YYYY-MM-DD)."),
    trip_id: Optional[str] = typer.Option(None, "--trip", help="Only receipts assigned to this trip."),
) -> None:
    """Export receipts as CSV."""

    target_day = _parse_day(day, "--date")
    receipts = filter_receipts(get_store().receipts.list_receipts(), trip_id=trip_id)
    if target_day is not None:
        receipts = [receipt for receipt in receipts if receipt.date == target_day]
    content = receipts_to_csv(receipts)
    if output is None:
        typer.echo(content, nl=False)
        return
    output.write_text(content, encoding="utf-8")
    typer.echo(f"Exported {len(receipts)} receipt(s) to {output}")


@app.command()
def summary(
    trip_id: Optional[str] = typer.Option(None, "--trip", help="Restrict to one trip."),
    search: str = typer.Option("", "--search", help="Merchant or item text to match."),
    start: Optional[str] = typer.Option(None, "--start", help="First day (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, "--end", help="Last day (YYYY-MM-DD)."),
    category: Optional[List[str]] = typer.Option(None, "--category", help="Repeatable."),
    min_amount: Optional[float] = typer.Option(None, "--min"),
    max_amount: Optional[float] = typer.Option(None, "--max"),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print JSON."),
) -> None:
    """Print spending totals and category breakdown as JSON."""

    store = get_store()
    filters = ReceiptFilters(
        date_range=DateRange(start=_parse_day(start, "--start"), end=_parse_day(end, "--end")),
        categories=list(category or []),
        amount_range=AmountRange(min=min_amount, max=max_amount),
    )
    receipts = filter_receipts(store.receipts.list_receipts(), trip_id, search, filters)
    payload = {
        "receiptCount": len(receipts),
        "totalsByCurrency": totals_by_currency(receipts),
        "categorySpending": [
            group.model_dump(mode="json")
            for group in category_spending(receipts, store.categories.all_categories())
        ],
    }
    typer.echo(json.dumps(payload, indent=2 if pretty else None, sort_keys=pretty))


@app.command()
def rate(
    day: str = typer.Argument(..., help="Receipt date (YYYY-MM-DD)."),
    from_currency: str = typer.Argument(..., help="Source currency code."),
    to_currency: str = typer.Argument(..., help="Target currency code."),
) -> None:
    """Look up (and cache) a historical exchange rate."""

    target_day = _parse_day(day, "DAY")
    value = asyncio.run(get_store().rates.get_rate(target_day, from_currency, to_currency))
    if value is None:
        typer.secho("No exchange rate available.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"1 {from_currency.upper()} = {value} {to_currency.upper()} on {target_day.isoformat()}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""

    from tripfolio.server.run import serve as run_server

    run_server(host, port, reload=reload)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for `python -m tripfolio`."""
    app(prog_name="tripfolio", args=argv)


if __name__ == "__main__":
    main()
