# ==============================================================================
# Identity Resolution
# ==============================================================================
"""
Visitor and session identifiers for anonymous tracking hits.

Identity is a pure function of the request's cookies and payload. Issuing
the cookies that carry it back to the browser is the HTTP layer's job
(see postmetric.api.responses).
"""

import re
import secrets
from collections.abc import Mapping
from dataclasses import dataclass

from postmetric.core.models import TrackingPayload

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")

VISITOR_COOKIE = "_pm_vid"
SESSION_COOKIE = "_pm_sid"


@dataclass(frozen=True)
class Identity:
    """
    Identifiers resolved for one hit.

    Attributes:
        visitor_id: Long-lived visitor token
        session_id: Session token, or None when neither cookie nor payload had one
        is_new_session: True when no session id was presented
    """

    visitor_id: str
    session_id: str | None
    is_new_session: bool

    def with_session(self, session_id: str) -> "Identity":
        """Copy of this identity carrying the session id that was finally used."""
        return Identity(self.visitor_id, session_id, self.is_new_session)


def generate_token() -> str:
    """Random 24-character hex token used for visitor and session ids."""
    return secrets.token_hex(12)


def _clean(value: str | None) -> str | None:
    if value and TOKEN_PATTERN.match(value):
        return value
    return None


def resolve_identity(
    cookies: Mapping[str, str],
    payload: TrackingPayload | None = None,
    visitor_cookie: str = VISITOR_COOKIE,
    session_cookie: str = SESSION_COOKIE,
) -> Identity:
    """
    Resolve visitor and session ids for a hit.

    Preference order for both ids is cookie, then payload. A missing visitor id
    is generated; a missing session id stays None and marks a new session.

    Args:
        cookies: Parsed request cookies
        payload: Tracking payload, if the request carried one
        visitor_cookie: Name of the visitor cookie
        session_cookie: Name of the session cookie

    Returns:
        Resolved Identity
    """
    body_visitor = payload.visitor_id if payload else None
    body_session = payload.session_id if payload else None

    visitor_id = _clean(cookies.get(visitor_cookie)) or _clean(body_visitor) or generate_token()
    session_id = _clean(cookies.get(session_cookie)) or _clean(body_session)

    return Identity(
        visitor_id=visitor_id,
        session_id=session_id,
        is_new_session=session_id is None,
    )
