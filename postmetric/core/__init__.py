# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Domain logic of the collector.

This module contains:
- Domain models (Site, Session, PageView, GoalEvent)
- Identity resolution and hit outcomes

Submodules that work against the ports in postmetric.base (sessions,
geolocation, attack_mode) are imported directly from their modules.

Nothing here knows about HTTP, PostgreSQL or Valkey.
"""

from postmetric.core.identity import Identity, generate_token, resolve_identity
from postmetric.core.models import (
    Attribution,
    DeviceInfo,
    DeviceType,
    Goal,
    GoalEvent,
    Location,
    PageView,
    Session,
    Site,
    SiteSettings,
    TrackingPayload,
    UtmParams,
)
from postmetric.core.outcome import Fail, Outcome, Proceed, Suppress, SuppressReason

__all__ = [
    "Attribution",
    "DeviceInfo",
    "DeviceType",
    "Fail",
    "Goal",
    "GoalEvent",
    "Identity",
    "Location",
    "Outcome",
    "PageView",
    "Proceed",
    "Session",
    "Site",
    "SiteSettings",
    "Suppress",
    "SuppressReason",
    "TrackingPayload",
    "UtmParams",
    "generate_token",
    "resolve_identity",
]
