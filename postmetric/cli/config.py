# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the PostMetric CLI.
"""

import json
from typing import Annotated

import typer

from postmetric.cli.shared import C
from postmetric.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    if json_output:
        config = {
            "server": settings.server.model_dump(),
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
                "pool_max_connections": settings.postgres.pool_max_connections,
            },
            "valkey": {
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "db": settings.valkey.db,
                "ssl_enabled": settings.valkey.ssl,
                "password": settings.valkey.password,
                "socket_timeout": settings.valkey.socket_timeout,
            },
            "geolocation": settings.geolocation.model_dump(),
            "attack_mode": settings.attack_mode.model_dump(),
            "tracking": settings.tracking.model_dump(),
            "log_level": settings.log_level,
        }
        print(json.dumps(config, indent=2))
        return

    geo = settings.geolocation
    providers = []
    if geo.maxmind_db_path:
        providers.append("maxmind")
    providers.append("ipapi.co")
    if geo.ipstack_api_key:
        providers.append("ipstack")
    if geo.use_ip_api_com:
        providers.append("ip-api.com")

    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    # Server
    print(f"{C.CYAN}Server{C.RESET}")
    print(f"  Bind:       {C.WHITE}{settings.server.host}:{settings.server.port}{C.RESET}")
    print(f"  Workers:    {C.WHITE}{settings.server.workers}{C.RESET}")
    print(f"  Log level:  {C.WHITE}{settings.log_level}{C.RESET}")
    print()

    # PostgreSQL
    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.postgres.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.postgres.port}{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.postgres.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
    print(f"  User:       {C.WHITE}{settings.postgres.user}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{settings.postgres.sslmode}{C.RESET}")
    print()

    # Valkey
    print(f"{C.CYAN}Valkey{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.valkey.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.valkey.port}{C.RESET}")
    valkey_ssl = "enabled" if settings.valkey.ssl else "disabled"
    print(f"  SSL:        {C.WHITE}{valkey_ssl}{C.RESET}")
    print()

    # Geolocation
    print(f"{C.CYAN}Geolocation{C.RESET}")
    if geo.enabled:
        print(f"  Providers:  {C.WHITE}{', '.join(providers)}{C.RESET}")
        print(f"  Budget:     {C.WHITE}{geo.budget_seconds}s{C.RESET}")
    else:
        print(f"  Status:     {C.WHITE}disabled{C.RESET}")
    print()

    # Attack mode
    attack = settings.attack_mode
    print(f"{C.CYAN}Attack Mode{C.RESET}")
    print(f"  Policy:     {C.WHITE}{attack.policy}{C.RESET}")
    threshold = f"{attack.default_threshold} hits / {attack.spike_window_seconds}s"
    print(f"  Threshold:  {C.WHITE}{threshold}{C.RESET}")
    per_ip = f"{attack.per_ip_limit} hits / {attack.per_ip_window_seconds}s"
    print(f"  Per IP:     {C.WHITE}{per_ip}{C.RESET}")
    print()
