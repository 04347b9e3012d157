from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import typer

from .catalog import SqlJourneyCatalog
from .config import configure_logging, load_settings
from .db import init_db
from .errors import TripFinderError
from .loader import load_catalog_file
from .models import JourneyWithDetails
from .search import journeys_for_route, list_stations, search_round_trip

app = typer.Typer(help="Find round trips by train with bicycle space.")


def _format_price(cents: int) -> str:
    return f"{cents // 100},{cents % 100:02d} EUR"


def _journey_line(j: JourneyWithDetails) -> str:
    if j.has_bicycle_space:
        bike = f"bike spaces={j.bicycle_spaces_available} bike price={_format_price(j.bicycle_price_cents)}"
        if j.bicycle_reservation_required:
            bike += " (reservation required)"
    else:
        bike = "no bicycle space"
    return (
        f"{j.train_number} {j.origin_station_name} {j.departure_time:%H:%M} -> "
        f"{j.destination_station_name} {j.arrival_time:%H:%M} ({j.duration_minutes} min) "
        f"{_format_price(j.price_cents)} | {bike}"
    )


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(ctx: typer.Context, config_file: Path = typer.Option(None, help="Path to YAML config file")):
    settings = load_settings(config_file)
    configure_logging(settings)
    ctx.obj = settings


@app.command()
def show_config(ctx: typer.Context):
    """Print the effective configuration (YAML + env overrides)."""
    typer.echo(json.dumps(ctx.obj.model_dump(), indent=2))


@app.command()
def initdb(ctx: typer.Context):
    """Create database schema as per SQLAlchemy models."""
    init_db(ctx.obj.db_url)
    typer.echo(f"Initialized database at {ctx.obj.db_url}")


@app.command()
def load_catalog(ctx: typer.Context, path: Path = typer.Argument(..., help="YAML catalog file")):
    """Load stations, trains and journeys from a YAML file (upsert)."""
    try:
        stations, trains, inserted, skipped = load_catalog_file(ctx.obj.db_url, path)
    except (TripFinderError, FileNotFoundError) as exc:
        _fail(exc)
    typer.echo(
        f"Loaded stations={stations} trains={trains} journeys={inserted} skipped_duplicates={skipped}"
    )


@app.command()
def stations(ctx: typer.Context, json_out: bool = typer.Option(False, help="Print JSON output")):
    """List all stations."""
    with SqlJourneyCatalog(ctx.obj.db_url) as catalog:
        try:
            rows = list_stations(catalog)
        except TripFinderError as exc:
            _fail(exc)
    if json_out:
        typer.echo(json.dumps([s.model_dump() for s in rows], ensure_ascii=False, indent=2))
    else:
        for s in rows:
            typer.echo(f"{s.code:<6} {s.name} ({s.city})")


@app.command()
def search(
    ctx: typer.Context,
    date: str = typer.Argument(..., help="Departure date, YYYY-MM-DD"),
    origin: str = typer.Option(None, help="Origin city (default from config)"),
    destination: str = typer.Option(None, help="Destination city (default from config)"),
    return_delay_hours: int = typer.Option(None, help="Earliest return, hours after start of day"),
    json_out: bool = typer.Option(False, help="Print JSON output"),
):
    """Search outbound and return journeys for one day."""
    settings = ctx.obj
    with SqlJourneyCatalog(settings.db_url) as catalog:
        try:
            result = search_round_trip(
                catalog,
                {
                    "departure_date": date,
                    "origin_city": origin,
                    "destination_city": destination,
                    "return_delay_hours": return_delay_hours,
                },
                settings.search,
            )
        except TripFinderError as exc:
            _fail(exc)
    if json_out:
        typer.echo(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return
    typer.echo(f"{result.origin_city} -> {result.destination_city} on {result.search_date}")
    typer.echo(f"Outbound ({len(result.outbound_journeys)}):")
    for j in result.outbound_journeys:
        typer.echo(f"  {_journey_line(j)}")
    typer.echo(f"Return ({len(result.return_journeys)}):")
    for j in result.return_journeys:
        typer.echo(f"  {_journey_line(j)}")


@app.command()
def route(
    ctx: typer.Context,
    date: str = typer.Argument(..., help="Departure date, YYYY-MM-DD"),
    origin: str = typer.Option(None, help="Origin city (default from config)"),
    destination: str = typer.Option(None, help="Destination city (default from config)"),
    json_out: bool = typer.Option(False, help="Print JSON output"),
):
    """List journeys on a single route for one day."""
    defaults = ctx.obj.search
    if origin is None:
        origin = defaults.default_origin_city
    if destination is None:
        destination = defaults.default_destination_city
    with SqlJourneyCatalog(ctx.obj.db_url) as catalog:
        try:
            journeys = journeys_for_route(catalog, origin, destination, date)
        except TripFinderError as exc:
            _fail(exc)
    if json_out:
        typer.echo(json.dumps([j.model_dump(mode="json") for j in journeys], ensure_ascii=False, indent=2))
    else:
        for j in journeys:
            typer.echo(_journey_line(j))


@app.command()
def healthcheck(ctx: typer.Context):
    """Check that the database answers."""
    with SqlJourneyCatalog(ctx.obj.db_url) as catalog:
        try:
            catalog.ping()
        except TripFinderError as exc:
            _fail(exc)
    typer.echo(json.dumps({"status": "ok", "timestamp": datetime.now(tz=timezone.utc).isoformat()}))


if __name__ == "__main__":
    app()
