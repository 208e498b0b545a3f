# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared constants and helpers used across CLI command modules.

This module provides:
- ANSI color codes and status icons
- Connection checks with light retries
"""

import logging

from postmetric.utils.config import Settings, get_settings
from postmetric.utils.retry import (
    POSTGRES_RETRY_EXCEPTIONS,
    REDIS_RETRY_EXCEPTIONS,
    retry_light,
)

logger = logging.getLogger(__name__)


# ==============================================================================
# ANSI Colors and Icons
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"

    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"


# Module-level aliases for convenience
C, I = Colors, Icons


# ==============================================================================
# Connection Checks
# ==============================================================================


@retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
def _ping_postgres(settings: Settings) -> None:
    import psycopg2

    conn = psycopg2.connect(settings.postgres.connection_string, connect_timeout=5)
    conn.close()


@retry_light(REDIS_RETRY_EXCEPTIONS, logger)
def _ping_valkey(settings: Settings) -> None:
    import redis

    client = redis.from_url(
        settings.valkey.url, decode_responses=True, socket_timeout=5, socket_connect_timeout=5
    )
    try:
        client.ping()
    finally:
        client.close()


def check_db_connection(settings: Settings | None = None) -> bool:
    """Check PostgreSQL connectivity (light retry)."""
    try:
        _ping_postgres(settings or get_settings())
        return True
    except POSTGRES_RETRY_EXCEPTIONS:
        return False


def check_valkey_connection(settings: Settings | None = None) -> bool:
    """Check Valkey connectivity (light retry)."""
    try:
        _ping_valkey(settings or get_settings())
        return True
    except REDIS_RETRY_EXCEPTIONS:
        return False
