# ==============================================================================
# Goal Tracker
# ==============================================================================
"""
Records goal conversions sent by the snippet's goal beacon.

Goals are configured per site by event name. A beacon for an event with no
matching goal is logged and dropped.
"""

import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone

from postmetric.base.repositories import GoalRepository, SiteRepository
from postmetric.core.identity import SESSION_COOKIE, TOKEN_PATTERN, VISITOR_COOKIE
from postmetric.core.models import GoalEvent
from postmetric.core.sanitize import is_valid_tracking_code, sanitize_path, sanitize_text

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown"
MAX_EVENT_LENGTH = 100


def parse_value(value: str | None) -> float | None:
    """Parse a goal value; anything that is not a finite number is dropped."""
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _cookie_token(cookies: Mapping[str, str], name: str) -> str:
    value = cookies.get(name)
    if value and TOKEN_PATTERN.match(value):
        return value
    return UNKNOWN_ID


class GoalTracker:
    """Resolves the site and goal for a beacon and appends a GoalEvent."""

    def __init__(
        self,
        sites: SiteRepository,
        goals: GoalRepository,
        visitor_cookie: str = VISITOR_COOKIE,
        session_cookie: str = SESSION_COOKIE,
    ):
        self._sites = sites
        self._goals = goals
        self.visitor_cookie = visitor_cookie
        self.session_cookie = session_cookie

    def track(
        self,
        tracking_code: str | None,
        event: str | None,
        value: str | None = None,
        path: str | None = None,
        cookies: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> GoalEvent | None:
        """
        Record a goal conversion.

        Store errors propagate; the endpoint logs them and still answers 204.

        Args:
            tracking_code: Site tracking code
            event: Goal event name
            value: Optional conversion value, as sent
            path: Page path the goal fired on
            cookies: Request cookies carrying visitor and session ids
            now: Event time, defaults to now

        Returns:
            The recorded GoalEvent, or None when nothing was recorded
        """
        event = sanitize_text(event, MAX_EVENT_LENGTH)
        if not event or not is_valid_tracking_code(tracking_code):
            return None

        site = self._sites.get_by_tracking_code(tracking_code)
        if site is None:
            return None

        goal = self._goals.find_by_event(site.id, event)
        if goal is None:
            logger.warning("No goal configured for event %r on site %s", event, site.id)
            return None

        cookies = cookies or {}
        goal_event = GoalEvent(
            site_id=site.id,
            goal_id=goal.id,
            event=event,
            session_id=_cookie_token(cookies, self.session_cookie),
            visitor_id=_cookie_token(cookies, self.visitor_cookie),
            path=sanitize_path(path),
            value=parse_value(value),
            timestamp=now or datetime.now(timezone.utc),
        )
        self._goals.save_event(goal_event)
        logger.debug("Recorded goal %s for site %s", goal.id, site.id)
        return goal_event
