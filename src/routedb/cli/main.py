"""RouteDB command line interface."""

from __future__ import annotations

import asyncio
import json
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console
from sqlalchemy import MetaData

from routedb import __version__
from routedb.config import RouteDBSettings, get_logger, get_settings
from routedb.config.validation import validate_environment
from routedb.database.engine import mask_url
from routedb.database.health import HealthStatus, check_health, failure_status
from routedb.database.lifecycle import ConnectionRegistry
from routedb.database.shutdown import disconnect_all
from routedb.exceptions import RouteDBError

logger = get_logger(__name__)
console = Console()

app = typer.Typer(
    name="routedb",
    help="Read/write routing between a main and a primary database",
    pretty_exceptions_enable=False,
    add_completion=False,
    rich_markup_mode="rich",
)


def _fail(error: Exception, json_output: bool, exit_code: int = 1) -> NoReturn:
    logger.error(f"Command failed: {error}")
    if json_output:
        print(json.dumps({"success": False, "error": str(error)}, indent=2))
    else:
        console.print(f"[red]{error}[/red]")
    raise typer.Exit(exit_code)


def _targets(settings: RouteDBSettings) -> dict[str, Any]:
    return {
        "environment": settings.environment,
        "main": mask_url(settings.database_url),
        "primary": mask_url(settings.primary_url),
        "primary_configured": settings.database_primary_url is not None,
    }


async def _probe(settings: RouteDBSettings, primary: bool) -> HealthStatus:
    registry = ConnectionRegistry().init(settings=settings, metadata=MetaData())
    try:
        try:
            client = registry.get_primary() if primary else registry.get_main()
        except Exception as e:
            return failure_status(e)
        return await check_health(client)
    finally:
        await disconnect_all(registry)


@app.command()
def validate(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Check that the database environment is complete and well-formed."""
    settings = get_settings()
    try:
        validate_environment(settings)
    except RouteDBError as e:
        _fail(e, json_output)

    info = _targets(settings)
    if json_output:
        print(json.dumps({"success": True, **info}, indent=2))
        return

    console.print("[green]Configuration is valid[/green]\n")
    for key, value in info.items():
        console.print(f"  {key.replace('_', ' ').title()}: {value}")


@app.command()
def health(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    primary: Annotated[
        bool, typer.Option("--primary", help="Probe the primary database instead")
    ] = False,
) -> None:
    """Run a round-trip query and report database health."""
    settings = get_settings()
    try:
        result = asyncio.run(_probe(settings, primary))
    except RouteDBError as e:
        _fail(e, json_output)

    target = "primary" if primary else "main"
    if json_output:
        print(json.dumps({"target": target, **result}, indent=2))
    elif result["status"] == "healthy":
        console.print(f"[green]{target}: {result['details']}[/green]")
    else:
        console.print(f"[red]{target}: unhealthy ({result['details']})[/red]")

    if result["status"] != "healthy":
        raise typer.Exit(1)


@app.command()
def version(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show RouteDB version."""
    if json_output:
        print(json.dumps({"name": "RouteDB", "version": __version__}))
    else:
        console.print(f"RouteDB v{__version__}")


def main() -> None:
    """Run the CLI."""
    app()
