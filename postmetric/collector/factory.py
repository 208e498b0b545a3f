# ==============================================================================
# Collector Factory
# ==============================================================================
"""
Wires the collector's ports to their production adapters.

Uses the ATTACK_MODE_POLICY setting to choose the spike detection policy.
"""

import logging
from dataclasses import dataclass

from postmetric.collector.goals import GoalTracker
from postmetric.collector.ingestion import IngestionHandler
from postmetric.core.attack_mode import (
    AttackModeGuard,
    BaselineSpikePolicy,
    SpikePolicy,
    ThresholdSpikePolicy,
)
from postmetric.core.geolocation import GeolocationEnricher
from postmetric.core.sessions import SessionReconciler
from postmetric.infrastructure import (
    PostgreSQLConnectionPool,
    PostgreSQLGoalRepository,
    PostgreSQLPageViewRepository,
    PostgreSQLSessionRepository,
    PostgreSQLSiteRepository,
    ValkeyCache,
    ValkeyTrafficCounter,
    build_providers,
)
from postmetric.utils.config import AttackModeSettings, Settings, get_settings

logger = logging.getLogger(__name__)


def get_spike_policy(settings: AttackModeSettings) -> SpikePolicy:
    """
    Get the spike policy named in settings.

    Raises:
        ValueError: If an unknown policy is configured
    """
    match settings.policy:
        case "threshold":
            return ThresholdSpikePolicy()
        case "baseline":
            return BaselineSpikePolicy(settings.baseline_multiplier)
        case _:
            raise ValueError(
                f"Unknown spike policy: '{settings.policy}'.\n"
                "Valid options are: threshold, baseline"
            )


@dataclass
class CollectorServices:
    """The request handlers plus the resources they hold open."""

    handler: IngestionHandler
    goal_tracker: GoalTracker
    pool: PostgreSQLConnectionPool
    cache: ValkeyCache

    def close(self) -> None:
        """Release database connections and the Valkey client."""
        self.pool.close()
        self.cache.close()


def build_services(settings: Settings | None = None) -> CollectorServices:
    """
    Build the ingestion handler and goal tracker against PostgreSQL and Valkey.

    Connections are opened lazily, on the first request that needs them.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        CollectorServices ready to serve requests
    """
    settings = settings or get_settings()
    pool = PostgreSQLConnectionPool(settings)
    cache = ValkeyCache(settings.valkey.url, socket_timeout=settings.valkey.socket_timeout)

    sites = PostgreSQLSiteRepository(pool)
    attack_mode = settings.attack_mode
    guard = AttackModeGuard(
        ValkeyTrafficCounter(cache),
        sites,
        policy=get_spike_policy(attack_mode),
        default_threshold=attack_mode.default_threshold,
        spike_window_seconds=attack_mode.spike_window_seconds,
        per_ip_limit=attack_mode.per_ip_limit,
        per_ip_window_seconds=attack_mode.per_ip_window_seconds,
    )

    geo = settings.geolocation
    geolocator = GeolocationEnricher(
        build_providers(geo),
        cache=cache,
        timeout=geo.timeout_seconds,
        budget_seconds=geo.budget_seconds,
        cache_ttl=geo.cache_ttl_seconds,
    )

    tracking = settings.tracking
    handler = IngestionHandler(
        sites=sites,
        page_views=PostgreSQLPageViewRepository(pool),
        reconciler=SessionReconciler(
            PostgreSQLSessionRepository(pool), tracking.active_session_window_seconds
        ),
        guard=guard,
        geolocator=geolocator,
        tracking=tracking,
    )
    goal_tracker = GoalTracker(
        sites,
        PostgreSQLGoalRepository(pool),
        visitor_cookie=tracking.visitor_cookie_name,
        session_cookie=tracking.session_cookie_name,
    )
    logger.info(
        "Collector services built (spike policy=%s, geolocation providers=%d)",
        attack_mode.policy,
        len(geolocator.providers),
    )
    return CollectorServices(handler, goal_tracker, pool, cache)
