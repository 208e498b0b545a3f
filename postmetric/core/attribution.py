# ==============================================================================
# Attribution Extraction
# ==============================================================================
"""
Pure attribution helpers: UTM parameters, referrer domain and path, channel
classification and user-agent parsing.

None of these functions raise. Input that cannot be parsed yields empty or
None fields so a malformed hit is still recorded.
"""

from urllib.parse import parse_qs, urlsplit

from user_agents import parse as parse_ua

from postmetric.core.models import (
    Attribution,
    DeviceInfo,
    DeviceType,
    TrackingPayload,
    UtmParams,
)

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

SEARCH_ENGINES = (
    "google.com",
    "google.co.uk",
    "google.ca",
    "bing.com",
    "yahoo.com",
    "duckduckgo.com",
    "baidu.com",
    "yandex.com",
)

# Click-id parameter -> (channel, source)
AD_CLICK_IDS = (
    ("gclid", "google_ads", "google"),
    ("wbraid", "google_ads", "google"),
    ("gbraid", "google_ads", "google"),
    ("fbclid", "facebook_ads", "facebook"),
    ("li_fat_id", "paid", "linkedin"),
    ("msclkid", "paid", "microsoft"),
    ("ttclid", "paid", "tiktok"),
    ("twclid", "paid", "twitter"),
)


def _query_params(url: str | None) -> dict[str, str]:
    if not url or "?" not in url:
        return {}
    try:
        query = urlsplit(url).query
    except ValueError:
        return {}
    return {key: values[0] for key, values in parse_qs(query).items() if values and values[0]}


def parse_utm_params(url: str | None) -> UtmParams:
    """Read utm_* query parameters from a URL."""
    params = _query_params(url)
    return UtmParams(**{key: params[key] for key in UTM_KEYS if key in params})


def extract_utm(payload: TrackingPayload) -> UtmParams:
    """
    UTM parameters for a hit.

    The snippet's utmParams win, then the page URL, then the referrer URL.
    When a source is known but the medium is not, the medium is "unknown".
    """
    sent = {key: value for key, value in payload.utm_params.items() if key in UTM_KEYS and value}
    utm = UtmParams(**sent)
    if utm.is_empty:
        utm = parse_utm_params(payload.href)
    if utm.is_empty:
        utm = parse_utm_params(payload.referrer)
    if utm.is_empty:
        return UtmParams()
    if not utm.utm_medium:
        utm.utm_medium = "unknown"
    return utm


def extract_referrer_domain(referrer: str | None) -> str | None:
    """
    Domain of the referring page, or None for direct traffic.

    Accepts full URLs as well as the bare hostnames some snippets send.
    A leading "www." is dropped.
    """
    if not referrer or referrer.strip().lower() == "direct":
        return None
    referrer = referrer.strip()
    try:
        host = urlsplit(referrer).hostname if "://" in referrer else None
    except ValueError:
        host = None
    if host is None:
        host = referrer.split("://")[-1].split("/")[0].split("?")[0].split(":")[0]
    host = host.lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or None


def extract_referrer_path(referrer: str | None) -> str | None:
    """Path component of a referrer URL, or None if it is not a URL."""
    if not referrer or "://" not in referrer:
        return None
    try:
        return urlsplit(referrer).path or "/"
    except ValueError:
        return None


def resolve_channel(payload: TrackingPayload, utm: UtmParams | None = None) -> Attribution:
    """
    Classify how the visitor arrived.

    Priority: UTM parameters > ad click ids > ref/via URL parameters >
    referrer (organic search or referral) > direct.
    """
    utm = utm if utm is not None else extract_utm(payload)
    if utm.utm_source:
        return Attribution(
            channel="utm",
            source=utm.utm_source,
            medium=utm.utm_medium or "unknown",
            campaign=utm.utm_campaign,
        )

    click_ids = {**_query_params(payload.href), **payload.ad_click_ids}
    for key, channel, source in AD_CLICK_IDS:
        if click_ids.get(key):
            return Attribution(channel=channel, source=source, medium="cpc")

    page_params = _query_params(payload.href)
    ref = page_params.get("ref") or page_params.get("via")
    if ref:
        return Attribution(channel="referral", source=ref, medium="referral")

    domain = extract_referrer_domain(payload.referrer)
    if domain:
        for engine in SEARCH_ENGINES:
            if domain == engine or domain.endswith("." + engine):
                source = engine.split(".")[0]
                return Attribution(channel="organic", source=source, medium="organic")
        return Attribution(channel="referral", source=domain, medium="referral")

    return Attribution()


def _version(parts) -> str | None:
    return ".".join(str(part) for part in parts if part is not None) or None


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """
    Parse a user agent into device, browser and OS.

    Bots and unrecognized agents are recorded as desktop with whatever
    families the parser could find.
    """
    if not user_agent:
        return DeviceInfo()

    parsed = parse_ua(user_agent)
    if parsed.is_tablet:
        device = DeviceType.TABLET
    elif parsed.is_mobile:
        device = DeviceType.MOBILE
    else:
        device = DeviceType.DESKTOP

    browser = parsed.browser.family
    os_family = parsed.os.family
    return DeviceInfo(
        device=device,
        browser=browser if browser and browser != "Other" else "Unknown",
        browser_version=_version(parsed.browser.version),
        os=os_family if os_family and os_family != "Other" else "Unknown",
        os_version=_version(parsed.os.version),
    )
