# ==============================================================================
# PostMetric Collector CLI
# ==============================================================================
"""
Command-line interface for the PostMetric collector.

Usage:
    postmetric --help
    postmetric serve
    postmetric status
    postmetric config show
    postmetric db init
    postmetric db reset -y
    postmetric site add example.com
"""

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os

import typer

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="postmetric",
    help="PostMetric collector CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Serve command is imported from postmetric.cli.server
from postmetric.cli.server import serve

app.command("serve")(serve)

db_app = typer.Typer(
    help="Database schema operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

# Register db commands from cli.db module
from postmetric.cli.db import db_init, db_reset, site_add

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

site_app = typer.Typer(
    help="Tracked site operations",
    no_args_is_help=True,
)
app.add_typer(site_app, name="site")

site_app.command("add")(site_add)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from postmetric.cli.config import config_show

config_app.command("show")(config_show)

# Status command is imported from postmetric.cli.status
from postmetric.cli.status import show_status

app.command("status")(show_status)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
