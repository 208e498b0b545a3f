# ==============================================================================
# Database Commands
# ==============================================================================
"""
Schema management and site seeding commands for the PostMetric CLI.
"""

from typing import Annotated

import typer

from postmetric.cli.shared import C, I, check_db_connection
from postmetric.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def db_init() -> None:
    """Create the database and schema if they do not exist."""
    from postmetric.utils.db import ensure_schema

    settings = get_settings()
    schema = settings.postgres.schema_name

    print()
    try:
        created = ensure_schema(settings)
    except Exception as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} Failed to initialize schema: {e}{C.RESET}")
        raise typer.Exit(1)

    state = "created" if created else "already exists"
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{C.WHITE}{schema}{C.BRIGHT_GREEN}' {state}{C.RESET}")
    print()


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the schema (deletes all collected data).

    Examples:
        postmetric db reset       # With confirmation prompt
        postmetric db reset -y    # Skip confirmation
    """
    from postmetric.utils.db import reset_schema

    settings = get_settings()
    schema = settings.postgres.schema_name

    print()
    if not check_db_connection(settings):
        print(f"{C.BRIGHT_RED}{I.CROSS} Cannot connect to PostgreSQL{C.RESET}")
        raise typer.Exit(1)

    if not confirm:
        typer.confirm(
            f"This will DELETE all sites, sessions and pageviews in schema '{schema}'. "
            "Are you sure?",
            abort=True,
        )
        print()

    print(f"  Resetting PostgreSQL schema '{C.WHITE}{schema}{C.RESET}'...")
    try:
        reset_schema(settings)
    except RuntimeError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema reset{C.RESET}")
    print()


def site_add(
    domain: Annotated[str, typer.Argument(help="Main domain of the site, e.g. example.com")],
    site_id: Annotated[
        str | None, typer.Option("--id", help="Site identifier (default: random)")
    ] = None,
    tracking_code: Annotated[
        str | None,
        typer.Option("--tracking-code", "-c", help="24-character hex code (default: random)"),
    ] = None,
    auto_attack_mode: Annotated[
        bool, typer.Option("--auto-attack-mode", help="Activate attack mode on traffic spikes")
    ] = False,
) -> None:
    """Register a tracked site (for local and test environments)."""
    from postmetric.core.identity import generate_token
    from postmetric.core.models import AttackModeConfig, Site, SiteSettings
    from postmetric.core.sanitize import is_valid_tracking_code
    from postmetric.infrastructure import PostgreSQLConnectionPool, upsert_site

    tracking_code = tracking_code or generate_token()
    if not is_valid_tracking_code(tracking_code):
        raise typer.BadParameter(
            f"Invalid tracking code: '{tracking_code}'. Use 24 lowercase hex characters."
        )

    site = Site(
        id=site_id or generate_token(),
        tracking_code=tracking_code,
        domain=domain.lower(),
        settings=SiteSettings(attack_mode=AttackModeConfig(auto_activate=auto_attack_mode)),
    )

    pool = PostgreSQLConnectionPool(get_settings())
    try:
        upsert_site(pool, site)
    except Exception as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} Failed to save site: {e}{C.RESET}")
        raise typer.Exit(1)
    finally:
        pool.close()

    print()
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Site '{C.WHITE}{site.domain}{C.BRIGHT_GREEN}' saved{C.RESET}")
    print(f"  ID:             {C.WHITE}{site.id}{C.RESET}")
    print(f"  Tracking code:  {C.WHITE}{site.tracking_code}{C.RESET}")
    print()
