# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the ports of the ports-and-adapters architecture.

The collector's domain logic depends only on these interfaces; concrete
adapters live in infrastructure/ and test doubles live in tests/.
"""

from postmetric.base.cache import Cache
from postmetric.base.geolocation import GeolocationProvider
from postmetric.base.repositories import (
    GoalRepository,
    PageViewRepository,
    SessionRepository,
    SiteRepository,
)
from postmetric.base.traffic import TrafficCounter

__all__ = [
    "Cache",
    "GeolocationProvider",
    "GoalRepository",
    "PageViewRepository",
    "SessionRepository",
    "SiteRepository",
    "TrafficCounter",
]
