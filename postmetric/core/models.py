# ==============================================================================
# Collector Domain Models
# ==============================================================================
"""
Pydantic models for sites, tracking payloads, sessions and pageviews.

These models are used for:
- Validating the JSON body sent by the tracking snippet
- Reading site settings stored as JSON (camelCase keys are accepted)
- Serializing sessions and pageviews to database records

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

TRACKING_CODE_LENGTH = 24


class DeviceType(str, Enum):
    """Coarse device categories recorded on sessions and pageviews."""

    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class AttackModeConfig(BaseModel):
    """Per-site attack-mode settings."""

    enabled: bool = False
    auto_activate: bool = Field(False, alias="autoActivate")
    threshold: int | None = Field(None, description="Hits per spike window before activation")
    activated_at: datetime | None = Field(None, alias="activatedAt")

    model_config = {"populate_by_name": True}


class SiteSettings(BaseModel):
    """Settings bag of a tracked site."""

    exclude_ips: list[str] = Field(default_factory=list, alias="excludeIps")
    exclude_paths: list[str] = Field(default_factory=list, alias="excludePaths")
    exclude_hostnames: list[str] = Field(default_factory=list, alias="excludeHostnames")
    exclude_countries: list[str] = Field(default_factory=list, alias="excludeCountries")
    hash_paths: bool = Field(False, alias="hashPaths")
    additional_domains: list[str] = Field(default_factory=list, alias="additionalDomains")
    attack_mode: AttackModeConfig = Field(default_factory=AttackModeConfig, alias="attackMode")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class Site(BaseModel):
    """
    A tracked website, owned by the dashboard side of the product.

    Attributes:
        id: Site identifier
        tracking_code: 24-character lowercase hex code embedded in the snippet
        domain: Main domain of the site
        settings: Exclusion, hashing and attack-mode settings
    """

    id: str
    tracking_code: str
    domain: str
    settings: SiteSettings = Field(default_factory=SiteSettings)

    def accepts_hostname(self, hostname: str | None) -> bool:
        """Whether a hostname belongs to the main domain or an additional domain."""
        if not hostname:
            return False
        candidate = hostname.lower()
        for domain in [self.domain, *self.settings.additional_domains]:
            domain = domain.lower()
            if candidate == domain or candidate.endswith(f".{domain}"):
                return True
        return False


class TrackingPayload(BaseModel):
    """
    Fields sent by the tracking snippet, as JSON body or query parameters.

    Unknown keys are ignored. Every field is optional: a hit with nothing but
    a tracking code is still a valid pageview of "/".
    """

    hostname: str | None = None
    path: str | None = None
    title: str | None = None
    visitor_id: str | None = Field(None, alias="visitorId")
    session_id: str | None = Field(None, alias="sessionId")
    type: str | None = None
    referrer: str | None = None
    href: str | None = None
    utm_params: dict[str, str] = Field(default_factory=dict, alias="utmParams")
    ad_click_ids: dict[str, str] = Field(default_factory=dict, alias="adClickIds")
    extra_data: dict[str, Any] = Field(default_factory=dict, alias="extraData")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("utm_params", "ad_click_ids", mode="before")
    @classmethod
    def keep_string_values(cls, value: Any) -> Any:
        """Drop entries whose value is not a string (null, numbers, nested objects)."""
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str)}
        return value


class DeviceInfo(BaseModel):
    """Device, browser and OS parsed from a user agent."""

    device: DeviceType = DeviceType.DESKTOP
    browser: str = "Unknown"
    browser_version: str | None = None
    os: str = "Unknown"
    os_version: str | None = None


class Location(BaseModel):
    """Approximate, IP-block-based location. Never precise positioning."""

    country: str = "Unknown"
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def unknown(cls) -> "Location":
        return cls()

    @property
    def is_known(self) -> bool:
        return self.country != "Unknown"


class UtmParams(BaseModel):
    """Campaign parameters, stored on sessions and pageviews."""

    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.utm_source is None


class Attribution(BaseModel):
    """How a visitor arrived: channel classification plus its source and medium."""

    channel: str = "direct"
    source: str = "direct"
    medium: str = "none"
    campaign: str | None = None


class Session(BaseModel):
    """
    A visitor session on one site, keyed by (site_id, session_id).

    Invariants maintained by record_hit():
        page_views >= 1
        bounce == (page_views == 1)
        duration == last_seen_at - first_visit_at, in whole seconds, never negative
    """

    site_id: str
    session_id: str
    visitor_id: str
    first_visit_at: datetime
    last_seen_at: datetime
    page_views: int = 1
    bounce: bool = True
    duration: int = 0

    # First-hit attribution
    referrer: str | None = None
    referrer_domain: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    channel: str = "direct"

    # Device & location
    device: DeviceType = DeviceType.DESKTOP
    browser: str = "Unknown"
    browser_version: str | None = None
    os: str = "Unknown"
    os_version: str | None = None
    country: str = "Unknown"
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def record_hit(self, now: datetime) -> "Session":
        """
        Count another pageview in this session.

        Mutates the session in place and returns it.
        """
        self.page_views += 1
        self.bounce = False
        self.last_seen_at = max(self.last_seen_at, now)
        self.duration = compute_duration(self.first_visit_at, self.last_seen_at)
        return self

    def to_db_record(self) -> dict:
        """Convert session to database record format."""
        record = self.model_dump()
        record["device"] = self.device.value
        return record


class PageView(BaseModel):
    """One immutable record per tracked hit."""

    site_id: str
    session_id: str
    visitor_id: str
    path: str
    hostname: str | None = None
    title: str | None = None
    event_type: str = "pageview"
    referrer: str | None = None
    referrer_path: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    device: DeviceType = DeviceType.DESKTOP
    browser: str = "Unknown"
    browser_version: str | None = None
    os: str = "Unknown"
    os_version: str | None = None
    country: str = "Unknown"
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    exit_url: str | None = None
    exit_link_text: str | None = None
    timestamp: datetime

    model_config = {"frozen": True}

    def to_db_record(self) -> dict:
        """Convert pageview to database record format."""
        record = self.model_dump()
        record["device"] = self.device.value
        return record


class Goal(BaseModel):
    """A conversion goal configured for a site."""

    id: str
    site_id: str
    event: str
    name: str | None = None


class GoalEvent(BaseModel):
    """One recorded goal conversion."""

    site_id: str
    goal_id: str
    event: str
    session_id: str = "unknown"
    visitor_id: str = "unknown"
    path: str = "/"
    value: float | None = None
    timestamp: datetime

    model_config = {"frozen": True}


def compute_duration(first_visit_at: datetime, last_seen_at: datetime) -> int:
    """Whole seconds between two instants, clamped at zero."""
    return max(0, int((last_seen_at - first_visit_at).total_seconds()))
