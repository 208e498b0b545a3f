# ==============================================================================
# PostMetric Utilities
# ==============================================================================
"""
Shared utilities: configuration, retries, paths and database setup.
"""

from postmetric.utils.config import (
    AttackModeSettings,
    GeolocationSettings,
    PostgresSettings,
    ServerSettings,
    Settings,
    TrackingSettings,
    ValkeySettings,
    get_settings,
)

__all__ = [
    "AttackModeSettings",
    "GeolocationSettings",
    "PostgresSettings",
    "ServerSettings",
    "Settings",
    "TrackingSettings",
    "ValkeySettings",
    "get_settings",
]
