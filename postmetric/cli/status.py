# ==============================================================================
# Status Command
# ==============================================================================
"""
Status command for the PostMetric CLI.

Checks the collector's backing services and prints either a table or JSON.
Includes light retry logic (3 attempts, ~7 seconds) for network resilience
when checking service status.
"""

import json as json_module
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from postmetric.cli.shared import C, I, check_db_connection, check_valkey_connection
from postmetric.utils.config import Settings, get_settings


# ==============================================================================
# Data Collection
# ==============================================================================


def _collect_postgres_data(settings: Settings) -> dict[str, Any]:
    """Collect PostgreSQL connectivity and schema state."""
    from postmetric.utils.db import check_schema_exists

    connected = check_db_connection(settings)
    schema_ready = False
    if connected:
        try:
            schema_ready = check_schema_exists(settings)
        except Exception:
            schema_ready = False
    return {
        "status": "connected" if connected else "unreachable",
        "host": f"{settings.postgres.host}:{settings.postgres.port}",
        "schema": settings.postgres.schema_name,
        "schema_ready": schema_ready,
    }


def _collect_valkey_data(settings: Settings) -> dict[str, Any]:
    """Collect Valkey connectivity."""
    connected = check_valkey_connection(settings)
    return {
        "status": "connected" if connected else "unreachable",
        "host": f"{settings.valkey.host}:{settings.valkey.port}",
    }


def collect_status(settings: Settings | None = None) -> dict[str, Any]:
    """Collect status for all services in parallel."""
    settings = settings or get_settings()
    with ThreadPoolExecutor(max_workers=2) as executor:
        postgres = executor.submit(_collect_postgres_data, settings)
        valkey = executor.submit(_collect_valkey_data, settings)
        return {"postgresql": postgres.result(), "valkey": valkey.result()}


# ==============================================================================
# Command
# ==============================================================================


def show_status(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output status as JSON")
    ] = False,
) -> None:
    """Show backing service health for the collector."""
    data = collect_status()

    if json_output:
        print(json_module.dumps(data, indent=2))
        return

    postgres = data["postgresql"]
    valkey = data["valkey"]

    console = Console()
    table = Table(title="PostMetric Collector", show_header=True, header_style="bold")
    table.add_column("Service")
    table.add_column("Address")
    table.add_column("Status")

    def _status_cell(status: str) -> str:
        if status == "connected":
            return f"[green]{I.CHECK} {status}[/green]"
        return f"[red]{I.CROSS} {status}[/red]"

    table.add_row("PostgreSQL", postgres["host"], _status_cell(postgres["status"]))
    table.add_row("Valkey", valkey["host"], _status_cell(valkey["status"]))

    print()
    console.print(table)
    if postgres["status"] == "connected" and not postgres["schema_ready"]:
        print(
            f"  {C.BRIGHT_YELLOW}{I.WARN} Schema '{postgres['schema']}' not found - "
            f"run '{C.WHITE}postmetric db init{C.BRIGHT_YELLOW}'{C.RESET}"
        )
    print()
