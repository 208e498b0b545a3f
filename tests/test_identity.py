# ==============================================================================
# Tests for Identity Resolution
# ==============================================================================
"""
Tests for resolve_identity() and token generation.
"""

from postmetric.core.identity import (
    SESSION_COOKIE,
    VISITOR_COOKIE,
    Identity,
    generate_token,
    resolve_identity,
)
from postmetric.core.models import TrackingPayload


class TestGenerateToken:
    """Tests for generate_token()."""

    def test_hex_of_length_24(self):
        token = generate_token()
        assert len(token) == 24
        int(token, 16)

    def test_unique(self):
        assert len({generate_token() for _ in range(100)}) == 100


class TestResolveIdentity:
    """Tests for resolve_identity() precedence rules."""

    def test_cookies_win_over_payload(self):
        payload = TrackingPayload(visitor_id="body-v", session_id="body-s")
        identity = resolve_identity(
            {VISITOR_COOKIE: "cookie-v", SESSION_COOKIE: "cookie-s"}, payload
        )
        assert identity == Identity("cookie-v", "cookie-s", False)

    def test_payload_used_without_cookies(self):
        payload = TrackingPayload(visitor_id="body-v", session_id="body-s")
        identity = resolve_identity({}, payload)
        assert identity.visitor_id == "body-v"
        assert identity.session_id == "body-s"
        assert identity.is_new_session is False

    def test_generates_visitor_when_missing(self):
        identity = resolve_identity({})
        assert len(identity.visitor_id) == 24
        assert identity.session_id is None
        assert identity.is_new_session is True

    def test_invalid_cookie_value_ignored(self):
        identity = resolve_identity(
            {VISITOR_COOKIE: "bad value;", SESSION_COOKIE: "x" * 200},
            TrackingPayload(visitor_id="body-v"),
        )
        assert identity.visitor_id == "body-v"
        assert identity.session_id is None

    def test_custom_cookie_names(self):
        identity = resolve_identity(
            {"vid": "v1", "sid": "s1"}, visitor_cookie="vid", session_cookie="sid"
        )
        assert identity == Identity("v1", "s1", False)

    def test_with_session_keeps_visitor(self):
        identity = resolve_identity({VISITOR_COOKIE: "v1"})
        updated = identity.with_session("s9")
        assert updated.visitor_id == "v1"
        assert updated.session_id == "s9"
        assert updated.is_new_session is True
