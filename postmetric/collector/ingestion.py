# ==============================================================================
# Ingestion Handler
# ==============================================================================
"""
Turns one tracking hit into a persisted pageview and an upserted session.

Steps, in order:

1. Resolve the site from the tracking code (malformed codes count as unknown)
2. Sanitize path, title, hostname and exit-link fields
3. Resolve visitor/session identity from cookies and payload
4. Attack-mode spike check and admission control
5. Geolocate the client IP, then apply exclusion rules
6. Hash the path for sites that ask for it
7. Reconcile the session and persist the pageview

Every step either proceeds or ends the hit with Suppress (policy) or Fail
(infrastructure error). handle() never raises; the HTTP layer renders all
outcomes with the same response.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from postmetric.base.repositories import PageViewRepository, SiteRepository
from postmetric.core.attack_mode import AttackModeGuard
from postmetric.core.attribution import (
    extract_referrer_domain,
    extract_referrer_path,
    extract_utm,
    parse_user_agent,
    resolve_channel,
)
from postmetric.core.exclusion import should_exclude
from postmetric.core.geolocation import GeolocationEnricher
from postmetric.core.identity import Identity, generate_token, resolve_identity
from postmetric.core.models import Location, PageView, Site, TrackingPayload
from postmetric.core.outcome import Fail, Outcome, Proceed, Suppress, SuppressReason
from postmetric.core.sanitize import (
    MAX_PATH_LENGTH,
    MAX_TITLE_LENGTH,
    hash_path,
    is_valid_tracking_code,
    sanitize_path,
    sanitize_text,
    sanitize_title,
)
from postmetric.core.sessions import HitSnapshot, SessionReconciler, SessionState
from postmetric.utils.config import TrackingSettings

logger = logging.getLogger(__name__)

MAX_HOSTNAME_LENGTH = 253
MAX_EVENT_TYPE_LENGTH = 32
PAGEVIEW_EVENT = "pageview"
EXIT_LINK_EVENT = "exit_link"


@dataclass
class Hit:
    """
    One tracking request, already stripped of HTTP specifics.

    Attributes:
        tracking_code: Value of the "site" parameter
        payload: Snippet payload (query parameters merged over the JSON body)
        cookies: Request cookies
        user_agent: User-Agent header
        ip: Client IP address
        timestamp: Hit time, defaults to now
    """

    tracking_code: str | None
    payload: TrackingPayload = field(default_factory=TrackingPayload)
    cookies: Mapping[str, str] = field(default_factory=dict)
    user_agent: str | None = None
    ip: str = "0.0.0.0"
    timestamp: datetime | None = None


@dataclass
class IngestionResult:
    """
    Outcome of handling one hit.

    identity is None only when the site was never resolved; otherwise it
    always carries a session id so the response can refresh both cookies.
    """

    outcome: Outcome
    identity: Identity | None = None
    page_view: PageView | None = None
    session_state: SessionState | None = None

    @property
    def recorded(self) -> bool:
        return isinstance(self.outcome, Proceed) and self.page_view is not None


@dataclass(frozen=True)
class SanitizedFields:
    path: str
    title: str | None
    event_type: str
    hostname: str | None
    exit_url: str | None
    exit_link_text: str | None


class IngestionHandler:
    """Orchestrates the ingestion steps for tracking hits."""

    def __init__(
        self,
        sites: SiteRepository,
        page_views: PageViewRepository,
        reconciler: SessionReconciler,
        guard: AttackModeGuard,
        geolocator: GeolocationEnricher,
        tracking: TrackingSettings | None = None,
    ):
        """
        Initialize the handler.

        Args:
            sites: Site lookup
            page_views: Pageview persistence
            reconciler: Session reconciler
            guard: Attack-mode spike detection and admission control
            geolocator: IP geolocation
            tracking: Cookie names, field limits and hostname policy
        """
        self._sites = sites
        self._page_views = page_views
        self._reconciler = reconciler
        self._guard = guard
        self._geolocator = geolocator
        self.tracking = tracking or TrackingSettings()

    def handle(self, hit: Hit) -> IngestionResult:
        """
        Process one hit end to end.

        Args:
            hit: The tracking request

        Returns:
            IngestionResult; never raises
        """
        now = hit.timestamp or datetime.now(timezone.utc)

        try:
            site = self._resolve_site(hit)
        except Exception as e:
            logger.exception("Site lookup failed for tracking code %r", hit.tracking_code)
            return IngestionResult(Fail(f"site lookup failed: {e}"))
        if site is None:
            logger.debug("Suppressed hit for unknown tracking code %r", hit.tracking_code)
            return IngestionResult(Suppress(SuppressReason.UNKNOWN_SITE))

        fields = self._sanitize(hit.payload)
        identity = resolve_identity(
            hit.cookies,
            hit.payload,
            visitor_cookie=self.tracking.visitor_cookie_name,
            session_cookie=self.tracking.session_cookie_name,
        )
        # Suppressed and failed hits still refresh cookies
        fallback = identity.with_session(identity.session_id or generate_token())

        try:
            outcome = self._check_attack_mode(site, hit.ip, now)
            if isinstance(outcome, Proceed):
                location = self._geolocator.locate(hit.ip)
                outcome = self._check_exclusion(site, hit.ip, location.country, fields)
                if isinstance(outcome, Proceed):
                    return self._record(site, hit, fields, identity, location, now)

            reason = outcome.detail or outcome.reason.value
            logger.debug("Suppressed hit for site %s: %s", site.id, reason)
            return IngestionResult(outcome, fallback)
        except Exception as e:
            logger.exception("Failed to record hit for site %s", site.id)
            return IngestionResult(Fail(str(e) or type(e).__name__), fallback)

    # ==========================================================================
    # Steps
    # ==========================================================================

    def _resolve_site(self, hit: Hit) -> Site | None:
        if not is_valid_tracking_code(hit.tracking_code):
            return None
        site = self._sites.get_by_tracking_code(hit.tracking_code)
        if site is None:
            return None
        if self.tracking.strict_hostnames and not site.accepts_hostname(hit.payload.hostname):
            logger.debug(
                "Hostname %r not allowed for site %s", hit.payload.hostname, site.id
            )
            return None
        return site

    def _sanitize(self, payload: TrackingPayload) -> SanitizedFields:
        exit_url = exit_link_text = None
        if payload.type == EXIT_LINK_EVENT:
            raw_url = payload.extra_data.get("exitUrl")
            raw_text = payload.extra_data.get("exitLinkText")
            if isinstance(raw_url, str):
                exit_url = sanitize_text(raw_url, MAX_PATH_LENGTH)
            if isinstance(raw_text, str):
                exit_link_text = sanitize_text(raw_text, MAX_TITLE_LENGTH)

        return SanitizedFields(
            path=sanitize_path(payload.path, self.tracking.max_path_length),
            title=sanitize_title(payload.title, self.tracking.max_title_length),
            event_type=sanitize_text(payload.type, MAX_EVENT_TYPE_LENGTH) or PAGEVIEW_EVENT,
            hostname=sanitize_text(payload.hostname, MAX_HOSTNAME_LENGTH),
            exit_url=exit_url,
            exit_link_text=exit_link_text,
        )

    def _check_attack_mode(self, site: Site, ip: str, now: datetime) -> Outcome:
        self._guard.check_traffic_spike(site, now)
        admission = self._guard.admit(site, ip, now)
        if not admission.allowed:
            return Suppress(SuppressReason.ATTACK_MODE, admission.reason)
        return Proceed()

    def _check_exclusion(
        self, site: Site, ip: str, country: str, fields: SanitizedFields
    ) -> Outcome:
        if should_exclude(site, ip, country, fields.hostname, fields.path):
            return Suppress(SuppressReason.EXCLUDED)
        return Proceed()

    def _record(
        self,
        site: Site,
        hit: Hit,
        fields: SanitizedFields,
        identity: Identity,
        location: Location,
        now: datetime,
    ) -> IngestionResult:
        payload = hit.payload
        path = hash_path(fields.path) if site.settings.hash_paths else fields.path

        utm = extract_utm(payload)
        snapshot = HitSnapshot(
            referrer=payload.referrer or None,
            referrer_domain=extract_referrer_domain(payload.referrer),
            utm=utm,
            attribution=resolve_channel(payload, utm),
            device=parse_user_agent(hit.user_agent),
            location=location,
        )

        reconciliation = self._reconciler.reconcile(site.id, identity, snapshot, now)

        page_view = PageView(
            site_id=site.id,
            session_id=reconciliation.session_id,
            visitor_id=identity.visitor_id,
            path=path,
            hostname=fields.hostname,
            title=fields.title,
            event_type=fields.event_type,
            referrer=snapshot.referrer,
            referrer_path=extract_referrer_path(payload.referrer),
            exit_url=fields.exit_url,
            exit_link_text=fields.exit_link_text,
            timestamp=now,
            **utm.model_dump(),
            **snapshot.device.model_dump(),
            **location.model_dump(),
        )
        self._page_views.save(page_view)

        return IngestionResult(
            Proceed(),
            identity.with_session(reconciliation.session_id),
            page_view=page_view,
            session_state=reconciliation.state,
        )
