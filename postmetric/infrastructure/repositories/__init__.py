# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
"""

from postmetric.infrastructure.repositories.postgresql import (
    PostgreSQLConnectionPool,
    PostgreSQLGoalRepository,
    PostgreSQLPageViewRepository,
    PostgreSQLSessionRepository,
    PostgreSQLSiteRepository,
    upsert_site,
)

__all__ = [
    "PostgreSQLConnectionPool",
    "PostgreSQLGoalRepository",
    "PostgreSQLPageViewRepository",
    "PostgreSQLSessionRepository",
    "PostgreSQLSiteRepository",
    "upsert_site",
]
