# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.cli",
#   "purpose": "ridelink-maps command line: lookups, health, cache and config maintenance.",
#   "sections": [
#     {
#       "id": "geocode",
#       "name": "geocode",
#       "anchor": "function-geocode",
#       "kind": "function"
#     },
#     {
#       "id": "route",
#       "name": "route",
#       "anchor": "function-route",
#       "kind": "function"
#     },
#     {
#       "id": "fare",
#       "name": "fare",
#       "anchor": "function-fare",
#       "kind": "function"
#     },
#     {
#       "id": "health",
#       "name": "health",
#       "anchor": "function-health",
#       "kind": "function"
#     },
#     {
#       "id": "connectivity",
#       "name": "connectivity",
#       "anchor": "function-connectivity",
#       "kind": "function"
#     },
#     {
#       "id": "cache-stats",
#       "name": "cache_stats",
#       "anchor": "function-cache-stats",
#       "kind": "function"
#     },
#     {
#       "id": "config-show",
#       "name": "config_show",
#       "anchor": "function-config-show",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""ridelink-maps command line interface.

Commands:
- `geocode QUERY`: Forward geocode through the cache and provider tiers
- `route LAT,LON LAT,LON`: Driving route with fare estimate
- `fare`: Formula fare for a distance and duration
- `health`: Probe providers and print health, alerts and rate limits
- `connectivity`: Probe internet connectivity
- `cache stats|clear|clear-expired`: Response cache maintenance
- `config show|schema`: Effective configuration (API keys redacted)

Example:
    $ ridelink-maps geocode "Connaught Place, New Delhi"
    $ ridelink-maps --config mapservices.yaml route 28.63,77.22 28.55,77.10
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from .bootstrap import MapServices
from .config.loader import export_config_schema, load_config
from .config.models import MapServicesConfig
from .errors import ConfigurationError, MapServiceError, get_actionable_error_message
from .logging_utils import setup_logging
from .providers.adapters import format_route_summary
from .providers.openrouteservice import formula_fare
from .types import LatLng, RouteInfo

console = Console()

app = typer.Typer(
    name="ridelink-maps",
    help="Resilient geocoding, routing and tile services for RideLink",
    no_args_is_help=True,
)
cache_app = typer.Typer(name="cache", help="Response cache maintenance")
config_app = typer.Typer(name="config", help="Configuration inspection")
app.add_typer(cache_app)
app.add_typer(config_app)


def _config(ctx: typer.Context) -> MapServicesConfig:
    return ctx.obj["config"]


def _fail(error: Exception) -> None:
    if isinstance(error, MapServiceError):
        message, suggestion = get_actionable_error_message(error.status_code, error.kind)
        typer.echo(f"Error: {error}", err=True)
        typer.echo(f"{message}. {suggestion}" if suggestion else message, err=True)
    else:
        typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


def _parse_point(value: str) -> LatLng:
    try:
        return LatLng.parse(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _run(ctx: typer.Context, work, *, start: bool = True) -> Any:
    """Build the component graph, run ``work(services)`` and close everything.

    ``start=False`` skips the session start-up probe for commands that do not
    route provider calls.
    """

    async def runner() -> Any:
        services = MapServices(_config(ctx))
        try:
            if start:
                await services.start()
            return await work(services)
        finally:
            await services.aclose()

    return asyncio.run(runner())


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML or JSON configuration file"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Console log level"),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Directory for rotating JSONL logs"
    ),
) -> None:
    setup_logging(level=log_level, log_dir=log_dir)
    try:
        config = load_config(config_path)
    except (ConfigurationError, ValueError, OSError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(2)
    ctx.obj = {"config": config}


# ============================================================================
# Lookups
# ============================================================================


@app.command()
def geocode(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Address or place name"),
    near: Optional[str] = typer.Option(None, "--near", help="Bias results towards LAT,LON"),
    radius_m: Optional[float] = typer.Option(None, "--radius-m", help="Bounding radius around --near"),
    limit: int = typer.Option(5, "--limit", "-n", help="Maximum results"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """Forward geocode QUERY."""
    center = _parse_point(near) if near else None
    try:
        places = _run(
            ctx,
            lambda s: s.geocoding.search(query, near=center, radius_m=radius_m, limit=limit),
        )
    except MapServiceError as exc:
        _fail(exc)
        return
    if as_json:
        typer.echo(json.dumps([p.to_dict() for p in places], indent=2))
        return
    table = Table(title=f"Results for {query!r}")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Lat,Lon", style="green")
    table.add_column("Score", justify="right")
    table.add_column("Provider", style="magenta")
    for place in places[:limit]:
        table.add_row(
            place.name,
            place.address,
            f"{place.coordinates.latitude:.5f},{place.coordinates.longitude:.5f}",
            f"{place.relevance_score:.0f}",
            place.provider,
        )
    console.print(table)


@app.command()
def route(
    ctx: typer.Context,
    origin: str = typer.Argument(..., help="Origin as LAT,LON"),
    destination: str = typer.Argument(..., help="Destination as LAT,LON"),
    via: Optional[list[str]] = typer.Option(None, "--via", help="Waypoint LAT,LON (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Driving route between two points, with a fare estimate."""
    start, end = _parse_point(origin), _parse_point(destination)
    waypoints = [_parse_point(v) for v in via or []]

    async def work(services: MapServices) -> RouteInfo:
        if waypoints:
            found = await services.orchestrator.route_with_waypoints(start, end, waypoints)
        else:
            found = await services.orchestrator.calculate_route(start, end)
        return found.with_fare(await services.orchestrator.estimate_fare(found))

    try:
        result = _run(ctx, work)
    except MapServiceError as exc:
        _fail(exc)
        return
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    console.print(f"[bold]{result.text_instructions}[/bold] via {result.provider}")
    console.print(f"Estimated fare: [green]{result.estimated_fare:.2f}[/green]")
    for index, step in enumerate(result.steps, start=1):
        console.print(f"  {index:>2}. {step.instructions} ({step.distance_km:.2f} km)")


@app.command()
def fare(
    ctx: typer.Context,
    distance_km: float = typer.Option(..., "--distance-km", min=0.0, help="Trip distance"),
    duration_min: float = typer.Option(..., "--duration-min", min=0.0, help="Trip duration"),
) -> None:
    """Formula fare for a trip, using the configured fare policy."""
    trip = RouteInfo(polyline=(), distance_km=distance_km, duration_s=duration_min * 60.0)
    amount = formula_fare(trip, _config(ctx).fare)
    typer.echo(f"{amount:.2f}  ({format_route_summary(distance_km, trip.duration_s)})")


# ============================================================================
# Health and connectivity
# ============================================================================


@app.command()
def health(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the full status document"),
) -> None:
    """Probe providers, then print health, alerts and rate limits."""

    async def work(services: MapServices) -> Dict[str, Any]:
        await services.monitor.run_health_checks()
        return services.monitor.get_service_status()

    status = _run(ctx, work)
    if as_json:
        typer.echo(json.dumps(status, indent=2, default=str))
        return
    table = Table(title="Service health")
    table.add_column("Service", style="cyan")
    table.add_column("Available")
    table.add_column("Success rate", justify="right")
    table.add_column("Latency (ms)", justify="right")
    table.add_column("Score", justify="right")
    for name, record in status["health"].items():
        table.add_row(
            name,
            "[green]yes[/green]" if record["is_available"] else "[red]no[/red]",
            f"{record['success_rate'] * 100:.0f}%",
            f"{record['avg_response_time'] * 1000:.0f}",
            f"{record['health_score']:.2f}",
        )
    console.print(table)
    for alert in status["alerts"]:
        colour = "red" if alert["severity"] == "critical" else "yellow"
        console.print(f"[{colour}]{alert['severity'].upper()}[/{colour}] {alert['message']}")
    for name, limit in status["rate_limits"].items():
        remaining = limit["remaining_daily"]
        quota = "unlimited" if remaining is None else f"{remaining}/{limit['daily_quota']} today"
        console.print(f"{name}: {limit['current_usage']} in window, {quota}")


@app.command()
def connectivity(ctx: typer.Context) -> None:
    """Probe the configured hosts and report online/offline."""
    online = _run(ctx, lambda s: s.gate.refresh_connectivity(), start=False)
    typer.echo("online" if online else "offline")
    if not online:
        raise typer.Exit(1)


# ============================================================================
# Cache and config maintenance
# ============================================================================


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Entry counts and sizes per cache kind."""

    async def work(services: MapServices) -> Dict[str, Any]:
        return services.cache.get_stats()

    stats = _run(ctx, work, start=False)
    table = Table(title="Response cache")
    table.add_column("Kind", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Bytes", justify="right")
    for kind, values in stats.items():
        if isinstance(values, dict):
            table.add_row(kind, str(values["entries"]), str(values["bytes"]))
    table.add_row("total", str(stats["total_entries"]), str(stats["total_bytes"]), style="bold")
    console.print(table)


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete every cached entry."""
    if not yes:
        typer.confirm("Delete all cached tiles, places and routes?", abort=True)

    async def work(services: MapServices) -> int:
        return services.cache.clear_all()

    typer.echo(f"Removed {_run(ctx, work, start=False)} entries")


@cache_app.command("clear-expired")
def cache_clear_expired(ctx: typer.Context) -> None:
    """Delete entries older than their TTL."""

    async def work(services: MapServices) -> int:
        return services.cache.clear_expired()

    typer.echo(f"Removed {_run(ctx, work, start=False)} expired entries")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    format_output: str = typer.Option("yaml", "--format", "-f", help="Output format: yaml or json"),
) -> None:
    """Effective configuration with API keys redacted."""
    config = _config(ctx)
    data = config.redacted()
    if format_output == "json":
        typer.echo(json.dumps(data, indent=2, default=str))
    elif format_output == "yaml":
        typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=True))
    else:
        typer.echo(f"Unknown format {format_output!r}; use yaml or json", err=True)
        raise typer.Exit(2)
    typer.echo(f"# config hash: {config.config_hash()}", err=True)


@config_app.command("schema")
def config_schema() -> None:
    """JSON schema of the configuration file."""
    typer.echo(json.dumps(export_config_schema(), indent=2, sort_keys=True))


__all__ = ["app"]
