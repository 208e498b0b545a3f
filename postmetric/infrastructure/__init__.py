# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the ports in base/:
- cache/ - Cache adapters (Valkey/Redis)
- repositories/ - Database adapters (PostgreSQL)
- traffic.py - Attack-mode traffic counters (Valkey)
- geolocation.py - IP geolocation providers (MaxMind, HTTP services)
"""

from postmetric.infrastructure.cache import ValkeyCache
from postmetric.infrastructure.geolocation import (
    IpApiComProvider,
    IpapiCoProvider,
    IpstackProvider,
    MaxMindProvider,
    build_providers,
)
from postmetric.infrastructure.repositories import (
    PostgreSQLConnectionPool,
    PostgreSQLGoalRepository,
    PostgreSQLPageViewRepository,
    PostgreSQLSessionRepository,
    PostgreSQLSiteRepository,
    upsert_site,
)
from postmetric.infrastructure.traffic import ValkeyTrafficCounter

__all__ = [
    # Cache
    "ValkeyCache",
    # Geolocation
    "IpApiComProvider",
    "IpapiCoProvider",
    "IpstackProvider",
    "MaxMindProvider",
    "build_providers",
    # Repositories
    "PostgreSQLConnectionPool",
    "PostgreSQLGoalRepository",
    "PostgreSQLPageViewRepository",
    "PostgreSQLSessionRepository",
    "PostgreSQLSiteRepository",
    "upsert_site",
    # Traffic
    "ValkeyTrafficCounter",
]
