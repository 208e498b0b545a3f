# ==============================================================================
# Session Reconciler
# ==============================================================================
"""
Session reconciliation for a single tracking hit.

Decides whether a hit continues an existing session or starts one, and when
starting, whether a recently active session of the same visitor can be
re-adopted instead of creating a duplicate. Adoption covers lost session
cookies (privacy blockers, multi-tab navigation) without inflating session
counts.

Store errors propagate; the ingestion handler turns them into a failed hit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from postmetric.base.repositories import SessionRepository
from postmetric.core.identity import Identity, generate_token
from postmetric.core.models import (
    Attribution,
    DeviceInfo,
    Location,
    Session,
    UtmParams,
)

logger = logging.getLogger(__name__)

ACTIVE_SESSION_WINDOW_SECONDS = 5 * 60


class SessionState(str, Enum):
    """Observable outcome of reconciling one hit."""

    CONTINUE = "continue"
    START = "start"


@dataclass(frozen=True)
class HitSnapshot:
    """Attribution, device and location captured for a hit, used when a session is created."""

    referrer: str | None
    referrer_domain: str | None
    utm: UtmParams
    attribution: Attribution
    device: DeviceInfo
    location: Location


@dataclass
class Reconciliation:
    """
    Result of reconciling one hit.

    Attributes:
        session: The session after this hit was counted
        session_id: Session id the response cookie must carry
        state: CONTINUE or START
        adopted: True when START re-attached the hit to a recent session
    """

    session: Session
    session_id: str
    state: SessionState
    adopted: bool = False

    @property
    def created(self) -> bool:
        return self.state is SessionState.START and not self.adopted


class SessionReconciler:
    """
    Two-state machine over sessions keyed by (site_id, session_id).

    CONTINUE: a session exists for the presented id and the hit did not start
    a new session; count the hit.
    START: otherwise. Adopt the visitor's most recently seen session if it was
    active within the window, else create a fresh session.
    """

    def __init__(
        self,
        repository: SessionRepository,
        active_window_seconds: int = ACTIVE_SESSION_WINDOW_SECONDS,
    ):
        """
        Initialize the reconciler.

        Args:
            repository: Session store
            active_window_seconds: How recently a visitor's session must have
                been seen to be adopted by a hit without a usable session id
        """
        self._repository = repository
        self.active_window = timedelta(seconds=active_window_seconds)

    def reconcile(
        self,
        site_id: str,
        identity: Identity,
        snapshot: HitSnapshot,
        now: datetime,
    ) -> Reconciliation:
        """
        Reconcile a hit and persist the resulting session.

        Args:
            site_id: Site identifier
            identity: Resolved visitor/session identity
            snapshot: Attribution, device and location of this hit
            now: Hit timestamp

        Returns:
            Reconciliation with the saved session and the session id to issue
        """
        existing = None
        if identity.session_id is not None:
            existing = self._repository.get(site_id, identity.session_id)

        if existing is not None and not identity.is_new_session:
            existing.record_hit(now)
            self._repository.save(existing)
            return Reconciliation(existing, existing.session_id, SessionState.CONTINUE)

        recent = self._repository.find_recent_for_visitor(
            site_id, identity.visitor_id, now - self.active_window
        )
        if recent is not None:
            logger.debug(
                "Adopting session %s for visitor %s (presented %s)",
                recent.session_id,
                identity.visitor_id,
                identity.session_id,
            )
            recent.record_hit(now)
            self._repository.save(recent)
            return Reconciliation(recent, recent.session_id, SessionState.START, adopted=True)

        session = self.create_session(
            site_id,
            identity.session_id or generate_token(),
            identity.visitor_id,
            snapshot,
            now,
        )
        self._repository.save(session)
        return Reconciliation(session, session.session_id, SessionState.START)

    @staticmethod
    def create_session(
        site_id: str,
        session_id: str,
        visitor_id: str,
        snapshot: HitSnapshot,
        now: datetime,
    ) -> Session:
        """
        Build a new single-pageview session.

        Returns:
            Session with page_views=1, bounce=True, duration=0
        """
        return Session(
            site_id=site_id,
            session_id=session_id,
            visitor_id=visitor_id,
            first_visit_at=now,
            last_seen_at=now,
            page_views=1,
            bounce=True,
            duration=0,
            referrer=snapshot.referrer,
            referrer_domain=snapshot.referrer_domain,
            channel=snapshot.attribution.channel,
            **snapshot.utm.model_dump(),
            **snapshot.device.model_dump(),
            **snapshot.location.model_dump(),
        )
