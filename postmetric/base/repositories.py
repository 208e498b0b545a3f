# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for data persistence.

These define the "what" (find a session, save a pageview) not the "how"
(insert vs upsert). Concrete implementations in infrastructure/ handle the
specifics.

Includes:
- SiteRepository: Read-only site lookup plus attack-mode activation
- SessionRepository: Session lookup and upsert
- PageViewRepository: Append-only pageview persistence
- GoalRepository: Goal lookup and goal event persistence

Every write is a single-row atomic statement at the store layer; callers
never hold locks across calls.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from postmetric.core.models import Goal, GoalEvent, PageView, Session, Site


class SiteRepository(ABC):
    """Repository for tracked sites (owned by the dashboard)."""

    @abstractmethod
    def get_by_tracking_code(self, tracking_code: str) -> Site | None:
        """
        Find a site by its tracking code.

        Args:
            tracking_code: 24-character tracking code

        Returns:
            The site, or None if no site uses this code
        """
        ...

    @abstractmethod
    def activate_attack_mode(self, site_id: str, activated_at: datetime) -> bool:
        """
        Turn attack mode on for a site if it is not already on.

        Args:
            site_id: Site identifier
            activated_at: Activation timestamp to stamp on the site

        Returns:
            True if this call activated attack mode, False if it was already active
        """
        ...


class SessionRepository(ABC):
    """Repository for visitor sessions."""

    @abstractmethod
    def get(self, site_id: str, session_id: str) -> Session | None:
        """Find a session by its key."""
        ...

    @abstractmethod
    def find_recent_for_visitor(
        self, site_id: str, visitor_id: str, since: datetime
    ) -> Session | None:
        """
        Find the visitor's most recently seen session with last_seen_at >= since.

        Args:
            site_id: Site identifier
            visitor_id: Visitor identifier
            since: Oldest acceptable last_seen_at

        Returns:
            The newest matching session, or None
        """
        ...

    @abstractmethod
    def save(self, session: Session) -> None:
        """Insert or update a session."""
        ...


class PageViewRepository(ABC):
    """Repository for pageviews."""

    @abstractmethod
    def save(self, page_view: PageView) -> None:
        """Append a pageview."""
        ...


class GoalRepository(ABC):
    """Repository for goals and goal events."""

    @abstractmethod
    def find_by_event(self, site_id: str, event: str) -> Goal | None:
        """Find the site's goal for an event name."""
        ...

    @abstractmethod
    def save_event(self, goal_event: GoalEvent) -> None:
        """Append a goal event."""
        ...
