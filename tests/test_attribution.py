# ==============================================================================
# Tests for Attribution Extraction
# ==============================================================================
"""
Tests for UTM extraction, referrer parsing, channel classification and
user-agent parsing.
"""

import pytest

from postmetric.core.attribution import (
    extract_referrer_domain,
    extract_referrer_path,
    extract_utm,
    parse_user_agent,
    resolve_channel,
)
from postmetric.core.models import DeviceType, TrackingPayload

CHROME_DESKTOP = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)


# ==============================================================================
# UTM
# ==============================================================================


class TestExtractUtm:
    """Tests for extract_utm()."""

    def test_from_payload(self):
        payload = TrackingPayload(utm_params={"utm_source": "news", "utm_medium": "email"})
        utm = extract_utm(payload)
        assert utm.utm_source == "news"
        assert utm.utm_medium == "email"

    def test_from_href(self):
        payload = TrackingPayload(
            href="https://example.com/?utm_source=twitter&utm_campaign=launch"
        )
        utm = extract_utm(payload)
        assert utm.utm_source == "twitter"
        assert utm.utm_campaign == "launch"
        assert utm.utm_medium == "unknown"

    def test_from_referrer_when_href_has_none(self):
        payload = TrackingPayload(
            href="https://example.com/",
            referrer="https://partner.io/?utm_source=partner&utm_medium=banner",
        )
        utm = extract_utm(payload)
        assert utm.utm_source == "partner"
        assert utm.utm_medium == "banner"

    def test_empty_without_source(self):
        utm = extract_utm(TrackingPayload(href="https://example.com/?utm_medium=cpc"))
        assert utm.is_empty
        assert utm.utm_medium is None


# ==============================================================================
# Referrer
# ==============================================================================


class TestReferrer:
    """Tests for extract_referrer_domain() and extract_referrer_path()."""

    def test_domain_from_url(self):
        assert extract_referrer_domain("https://www.Google.com/search?q=x") == "google.com"

    def test_domain_from_bare_host(self):
        assert extract_referrer_domain("news.ycombinator.com/item") == "news.ycombinator.com"

    def test_direct_is_none(self):
        assert extract_referrer_domain("direct") is None
        assert extract_referrer_domain("") is None
        assert extract_referrer_domain(None) is None

    def test_path(self):
        assert extract_referrer_path("https://blog.example.org/posts/1?x=y") == "/posts/1"

    def test_path_root(self):
        assert extract_referrer_path("https://blog.example.org") == "/"

    def test_path_requires_url(self):
        assert extract_referrer_path("blog.example.org") is None


# ==============================================================================
# Channel
# ==============================================================================


class TestResolveChannel:
    """Tests for resolve_channel() priority."""

    def test_direct(self):
        attribution = resolve_channel(TrackingPayload())
        assert attribution.channel == "direct"
        assert attribution.source == "direct"

    def test_utm_wins(self):
        payload = TrackingPayload(
            href="https://example.com/?utm_source=news&gclid=abc",
            referrer="https://www.google.com/",
        )
        attribution = resolve_channel(payload)
        assert attribution.channel == "utm"
        assert attribution.source == "news"

    def test_google_ads_click_id(self):
        attribution = resolve_channel(TrackingPayload(href="https://example.com/?gclid=abc"))
        assert attribution.channel == "google_ads"
        assert attribution.medium == "cpc"

    def test_facebook_click_id_from_payload(self):
        payload = TrackingPayload(ad_click_ids={"fbclid": "xyz"})
        assert resolve_channel(payload).channel == "facebook_ads"

    def test_ref_parameter(self):
        attribution = resolve_channel(TrackingPayload(href="https://example.com/?ref=producthunt"))
        assert attribution.channel == "referral"
        assert attribution.source == "producthunt"

    def test_organic_search(self):
        attribution = resolve_channel(TrackingPayload(referrer="https://www.bing.com/search"))
        assert attribution.channel == "organic"
        assert attribution.source == "bing"

    @pytest.mark.parametrize(
        "referrer,channel",
        [
            ("https://news.google.com/articles", "organic"),
            ("https://notgoogle.com.evil.io/", "referral"),
            ("https://mybing.com/", "referral"),
        ],
    )
    def test_search_engine_matched_by_domain(self, referrer, channel):
        assert resolve_channel(TrackingPayload(referrer=referrer)).channel == channel

    def test_search_subdomain_source_is_engine(self):
        attribution = resolve_channel(TrackingPayload(referrer="https://news.google.com/"))
        assert attribution.source == "google"

    def test_referral(self):
        attribution = resolve_channel(TrackingPayload(referrer="https://blog.example.org/post"))
        assert attribution.channel == "referral"
        assert attribution.source == "blog.example.org"


# ==============================================================================
# User Agent
# ==============================================================================


class TestParseUserAgent:
    """Tests for parse_user_agent()."""

    def test_desktop_chrome(self):
        info = parse_user_agent(CHROME_DESKTOP)
        assert info.device is DeviceType.DESKTOP
        assert info.browser == "Chrome"
        assert info.os == "Windows"

    def test_mobile(self):
        info = parse_user_agent(IPHONE)
        assert info.device is DeviceType.MOBILE
        assert info.os == "iOS"

    def test_tablet(self):
        assert parse_user_agent(IPAD).device is DeviceType.TABLET

    def test_missing(self):
        info = parse_user_agent(None)
        assert info.device is DeviceType.DESKTOP
        assert info.browser == "Unknown"
        assert info.os == "Unknown"
