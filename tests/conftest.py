# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- fakeredis-backed ValkeyCache and ValkeyTrafficCounter instances
- In-memory repositories standing in for PostgreSQL
- A fully wired IngestionHandler and GoalTracker over those fakes
"""

from datetime import datetime, timezone

import fakeredis
import pytest

from postmetric.base import (
    GeolocationProvider,
    GoalRepository,
    PageViewRepository,
    SessionRepository,
    SiteRepository,
)
from postmetric.collector.goals import GoalTracker
from postmetric.collector.ingestion import IngestionHandler
from postmetric.core.attack_mode import AttackModeGuard
from postmetric.core.geolocation import GeolocationEnricher
from postmetric.core.models import Goal, Location, Site, SiteSettings
from postmetric.core.sessions import SessionReconciler
from postmetric.infrastructure.cache import ValkeyCache
from postmetric.infrastructure.traffic import ValkeyTrafficCounter
from postmetric.utils.config import TrackingSettings

TRACKING_CODE = "0123456789abcdef01234567"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ==============================================================================
# In-Memory Repositories
# ==============================================================================


class InMemorySiteRepository(SiteRepository):
    def __init__(self, *sites: Site):
        self.sites = {site.tracking_code: site for site in sites}
        self.activations: list[str] = []
        self.lookups = 0

    def get_by_tracking_code(self, tracking_code):
        self.lookups += 1
        site = self.sites.get(tracking_code)
        # Hand out a copy, like a fresh database read
        return site.model_copy(deep=True) if site else None

    def activate_attack_mode(self, site_id, activated_at):
        for site in self.sites.values():
            if site.id == site_id:
                if site.settings.attack_mode.enabled:
                    return False
                site.settings.attack_mode.enabled = True
                site.settings.attack_mode.activated_at = activated_at
                self.activations.append(site_id)
                return True
        return False


class InMemorySessionRepository(SessionRepository):
    def __init__(self):
        self.sessions = {}

    def get(self, site_id, session_id):
        session = self.sessions.get((site_id, session_id))
        return session.model_copy(deep=True) if session else None

    def find_recent_for_visitor(self, site_id, visitor_id, since):
        candidates = [
            s
            for s in self.sessions.values()
            if s.site_id == site_id and s.visitor_id == visitor_id and s.last_seen_at >= since
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.last_seen_at).model_copy(deep=True)

    def save(self, session):
        self.sessions[(session.site_id, session.session_id)] = session.model_copy(deep=True)


class InMemoryPageViewRepository(PageViewRepository):
    def __init__(self):
        self.page_views = []

    def save(self, page_view):
        self.page_views.append(page_view)


class InMemoryGoalRepository(GoalRepository):
    def __init__(self, *goals: Goal):
        self.goals = {(goal.site_id, goal.event): goal for goal in goals}
        self.events = []

    def find_by_event(self, site_id, event):
        return self.goals.get((site_id, event))

    def save_event(self, goal_event):
        self.events.append(goal_event)


class StaticProvider(GeolocationProvider):
    """Answers every lookup with the same location and counts calls."""

    name = "static"

    def __init__(self, location: Location | None):
        self.location = location
        self.calls = 0

    def lookup(self, ip, timeout):
        self.calls += 1
        return self.location


# ==============================================================================
# Valkey
# ==============================================================================


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real ValkeyCache behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def fake_cache(fake_redis):
    """A ValkeyCache with its internal client replaced by fakeredis."""
    # Skip __init__ so no real connection is configured
    cache = ValkeyCache.__new__(ValkeyCache)
    cache._client = fake_redis
    cache._url = "redis://fake:6379"
    return cache


@pytest.fixture()
def counter(fake_cache):
    """A ValkeyTrafficCounter backed by fakeredis."""
    return ValkeyTrafficCounter(cache=fake_cache)


# ==============================================================================
# Domain Fixtures
# ==============================================================================


@pytest.fixture()
def site():
    """A tracked site with default settings."""
    return Site(id="site-1", tracking_code=TRACKING_CODE, domain="example.com")


@pytest.fixture()
def site_repo(site):
    return InMemorySiteRepository(site)


@pytest.fixture()
def session_repo():
    return InMemorySessionRepository()


@pytest.fixture()
def page_view_repo():
    return InMemoryPageViewRepository()


@pytest.fixture()
def goal_repo(site):
    return InMemoryGoalRepository(
        Goal(id="goal-1", site_id=site.id, event="signup", name="Sign up")
    )


@pytest.fixture()
def provider():
    """A geolocation provider that places every public IP in Germany."""
    return StaticProvider(Location(country="DE", region="Berlin", city="Berlin"))


@pytest.fixture()
def geolocator(provider, fake_cache):
    return GeolocationEnricher([provider], cache=fake_cache)


@pytest.fixture()
def guard(counter, site_repo):
    return AttackModeGuard(counter, site_repo)


@pytest.fixture()
def tracking():
    return TrackingSettings()


@pytest.fixture()
def handler(site_repo, page_view_repo, session_repo, guard, geolocator, tracking):
    """An IngestionHandler wired to in-memory stores and fakeredis."""
    return IngestionHandler(
        sites=site_repo,
        page_views=page_view_repo,
        reconciler=SessionReconciler(session_repo, tracking.active_session_window_seconds),
        guard=guard,
        geolocator=geolocator,
        tracking=tracking,
    )


@pytest.fixture()
def goal_tracker(site_repo, goal_repo):
    return GoalTracker(site_repo, goal_repo)


@pytest.fixture()
def configure_site(site_repo):
    """Replace the tracked site's settings for one test."""

    def _configure(**settings) -> Site:
        site = site_repo.sites[TRACKING_CODE]
        site.settings = SiteSettings(**settings)
        return site

    return _configure
