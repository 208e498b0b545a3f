# ==============================================================================
# Tests for the Ingestion Handler
# ==============================================================================
"""
End-to-end tests for IngestionHandler over in-memory stores and fakeredis.

Covers:
- Unknown and malformed tracking codes
- Field sanitization and path hashing
- Session continuation, adoption and creation across hits
- Exclusion rules and attack-mode suppression
- Failure handling (handle() never raises)
"""

from datetime import timedelta

from postmetric.collector.ingestion import Hit
from postmetric.core.identity import SESSION_COOKIE, VISITOR_COOKIE
from postmetric.core.models import AttackModeConfig, TrackingPayload
from postmetric.core.outcome import Fail, Proceed, Suppress, SuppressReason
from postmetric.core.sessions import SessionState

from conftest import NOW, TRACKING_CODE

PUBLIC_IP = "8.8.8.8"


def _hit(path="/", cookies=None, at=NOW, ip=PUBLIC_IP, code=TRACKING_CODE, **payload) -> Hit:
    return Hit(
        tracking_code=code,
        payload=TrackingPayload(path=path, **payload),
        cookies=cookies or {},
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
        ip=ip,
        timestamp=at,
    )


def _cookies(result) -> dict:
    return {
        VISITOR_COOKIE: result.identity.visitor_id,
        SESSION_COOKIE: result.identity.session_id,
    }


# ==============================================================================
# Site Resolution
# ==============================================================================


class TestSiteResolution:
    """Hits for sites that cannot be resolved are dropped quietly."""

    def test_unknown_tracking_code(self, handler, page_view_repo, session_repo):
        result = handler.handle(_hit(code="a1b2c3d4e5f6a7b8c9d0e1f2"))

        assert result.outcome == Suppress(SuppressReason.UNKNOWN_SITE)
        assert result.identity is None
        assert page_view_repo.page_views == []
        assert session_repo.sessions == {}

    def test_malformed_code_skips_lookup(self, handler, site_repo):
        result = handler.handle(_hit(code="not-a-code"))

        assert isinstance(result.outcome, Suppress)
        assert site_repo.lookups == 0

    def test_missing_code(self, handler):
        assert isinstance(handler.handle(_hit(code=None)).outcome, Suppress)

    def test_strict_hostnames(self, handler, configure_site, page_view_repo):
        configure_site(additional_domains=["example.org"])
        handler.tracking.strict_hostnames = True

        rejected = handler.handle(_hit(hostname="evil.test"))
        accepted = handler.handle(_hit(hostname="www.example.org"))

        assert rejected.outcome == Suppress(SuppressReason.UNKNOWN_SITE)
        assert accepted.recorded
        assert len(page_view_repo.page_views) == 1

    def test_lookup_failure(self, handler, site_repo):
        def boom(code):
            raise ConnectionError("database down")

        site_repo.get_by_tracking_code = boom
        result = handler.handle(_hit())

        assert isinstance(result.outcome, Fail)
        assert result.identity is None


# ==============================================================================
# Recording
# ==============================================================================


class TestRecording:
    """A valid hit produces one pageview and one session."""

    def test_first_hit(self, handler, page_view_repo, session_repo):
        result = handler.handle(
            _hit("/pricing", title="Pricing", hostname="example.com", referrer="https://t.co/x")
        )

        assert result.outcome == Proceed()
        assert result.session_state is SessionState.START
        page_view = page_view_repo.page_views[0]
        assert page_view.path == "/pricing"
        assert page_view.title == "Pricing"
        assert page_view.event_type == "pageview"
        assert page_view.referrer_path == "/x"
        assert page_view.country == "DE"
        assert page_view.browser == "Firefox"
        assert page_view.session_id == result.identity.session_id

        session = session_repo.sessions[("site-1", result.identity.session_id)]
        assert session.page_views == 1
        assert session.bounce is True
        assert session.channel == "referral"
        assert session.referrer_domain == "t.co"

    def test_long_path_and_control_characters(self, handler, page_view_repo):
        handler.handle(_hit("/" + "a" * 2999))
        handler.handle(_hit("/a\u0000b\u0007c"))

        long_view, dirty_view = page_view_repo.page_views
        assert len(long_view.path) == 2048
        assert dirty_view.path == "/abc"

    def test_hashed_paths(self, handler, configure_site, page_view_repo):
        configure_site(hash_paths=True)
        handler.handle(_hit("/account/42"))

        path = page_view_repo.page_views[0].path
        assert path.startswith("#")
        assert "42" not in path

    def test_exit_link_fields(self, handler, page_view_repo):
        handler.handle(
            _hit(
                "/blog",
                type="exit_link",
                extra_data={"exitUrl": "https://other.site/", "exitLinkText": "Other\u0000"},
            )
        )

        page_view = page_view_repo.page_views[0]
        assert page_view.event_type == "exit_link"
        assert page_view.exit_url == "https://other.site/"
        assert page_view.exit_link_text == "Other"

    def test_utm_recorded(self, handler, page_view_repo):
        handler.handle(_hit(href="https://example.com/?utm_source=news&utm_medium=email"))

        page_view = page_view_repo.page_views[0]
        assert page_view.utm_source == "news"
        assert page_view.utm_medium == "email"


# ==============================================================================
# Sessions Across Hits
# ==============================================================================


class TestSessionsAcrossHits:
    """Cookie replay, adoption and expiry across several hits."""

    def test_replayed_cookies_continue_session(self, handler, session_repo):
        first = handler.handle(_hit("/"))
        second = handler.handle(
            _hit("/about", cookies=_cookies(first), at=NOW + timedelta(minutes=20))
        )

        assert second.session_state is SessionState.CONTINUE
        assert second.identity.visitor_id == first.identity.visitor_id
        assert second.identity.session_id == first.identity.session_id
        session = session_repo.sessions[("site-1", first.identity.session_id)]
        assert session.page_views == 2
        assert session.bounce is False
        assert session.duration == 20 * 60

    def test_lost_session_cookie_adopted(self, handler, session_repo):
        first = handler.handle(_hit("/"))
        cookies = {VISITOR_COOKIE: first.identity.visitor_id}
        second = handler.handle(_hit("/a", cookies=cookies, at=NOW + timedelta(minutes=4)))

        assert second.identity.session_id == first.identity.session_id
        assert len(session_repo.sessions) == 1

    def test_new_session_after_idle(self, handler, session_repo):
        first = handler.handle(_hit("/"))
        cookies = {VISITOR_COOKIE: first.identity.visitor_id}
        second = handler.handle(_hit("/a", cookies=cookies, at=NOW + timedelta(minutes=6)))

        assert second.identity.session_id != first.identity.session_id
        assert second.identity.visitor_id == first.identity.visitor_id
        assert len(session_repo.sessions) == 2


# ==============================================================================
# Suppression
# ==============================================================================


class TestSuppression:
    """Excluded and rate-limited hits write nothing but keep cookies fresh."""

    def test_excluded_ip(self, handler, configure_site, page_view_repo, session_repo):
        configure_site(exclude_ips=[PUBLIC_IP])
        result = handler.handle(_hit())

        assert result.outcome == Suppress(SuppressReason.EXCLUDED)
        assert page_view_repo.page_views == []
        assert session_repo.sessions == {}
        assert result.identity.session_id

    def test_excluded_country_uses_geolocation(self, handler, configure_site, page_view_repo):
        configure_site(exclude_countries=["DE"])
        result = handler.handle(_hit())

        assert result.outcome == Suppress(SuppressReason.EXCLUDED)
        assert page_view_repo.page_views == []

    def test_excluded_hit_keeps_presented_identity(self, handler, configure_site):
        configure_site(exclude_paths=["/admin*"])
        cookies = {VISITOR_COOKIE: "v-known", SESSION_COOKIE: "s-known"}
        result = handler.handle(_hit("/admin/users", cookies=cookies))

        assert result.identity.visitor_id == "v-known"
        assert result.identity.session_id == "s-known"

    def test_attack_mode_rate_limit(self, handler, configure_site, page_view_repo, guard):
        configure_site(attack_mode=AttackModeConfig(enabled=True))
        guard.per_ip_limit = 2

        results = [handler.handle(_hit()) for _ in range(3)]

        assert [r.recorded for r in results] == [True, True, False]
        assert results[-1].outcome.reason is SuppressReason.ATTACK_MODE
        assert results[-1].identity is not None
        assert len(page_view_repo.page_views) == 2

    def test_auto_activation(self, handler, configure_site, site_repo, guard):
        configure_site(attack_mode=AttackModeConfig(auto_activate=True, threshold=2))
        guard.per_ip_limit = 1

        results = [handler.handle(_hit()) for _ in range(4)]

        assert site_repo.activations == ["site-1"]
        # Third hit trips the spike and is the first counted against the IP cap
        assert [r.recorded for r in results] == [True, True, True, False]


# ==============================================================================
# Failures
# ==============================================================================


class TestFailures:
    """Store errors end the hit as Fail; handle() never raises."""

    def test_page_view_store_failure(self, handler, page_view_repo):
        def boom(page_view):
            raise ConnectionError("database down")

        page_view_repo.save = boom
        result = handler.handle(_hit())

        assert isinstance(result.outcome, Fail)
        assert "database down" in result.outcome.reason
        assert result.identity.session_id

    def test_session_store_failure(self, handler, session_repo):
        def boom(*args):
            raise TimeoutError()

        session_repo.find_recent_for_visitor = boom
        result = handler.handle(_hit())

        assert result.outcome == Fail("TimeoutError")

    def test_geolocation_failure_still_records(self, handler, provider, page_view_repo):
        def boom(ip, timeout):
            raise OSError("unreachable")

        provider.lookup = boom
        result = handler.handle(_hit())

        assert result.recorded
        assert page_view_repo.page_views[0].country == "Unknown"
