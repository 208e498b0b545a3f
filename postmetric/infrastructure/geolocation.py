# ==============================================================================
# Geolocation Providers
# ==============================================================================
"""
Concrete IP geolocation sources.

Provides:
- MaxMindProvider: Local GeoLite2/GeoIP2 City database (geoip2)
- IpapiCoProvider: ipapi.co (free tier, optional API key)
- IpstackProvider: IPStack (API key required)
- IpApiComProvider: ip-api.com (free tier, no key)
- build_providers(): The provider chain configured in settings

HTTP providers return None when the service answers with an error payload
and raise on transport errors; the enricher handles both.
"""

import logging
import math
from abc import abstractmethod
from typing import Any

import geoip2.database
import geoip2.errors
import requests

from postmetric.base import GeolocationProvider
from postmetric.core.models import Location
from postmetric.utils.config import GeolocationSettings

logger = logging.getLogger(__name__)

IP_API_FIELDS = "status,message,countryCode,regionName,city,lat,lon"


def _coordinate(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value):
        return None
    return float(value)


class MaxMindProvider(GeolocationProvider):
    """Lookups against a local MaxMind City database."""

    name = "maxmind"

    def __init__(self, db_path: str):
        self._reader = geoip2.database.Reader(db_path)

    def lookup(self, ip: str, timeout: float) -> Location | None:
        try:
            record = self._reader.city(ip)
        except geoip2.errors.AddressNotFoundError:
            return None
        country = record.country.iso_code or record.registered_country.iso_code
        if not country:
            return None
        return Location(
            country=country,
            region=record.subdivisions.most_specific.name,
            city=record.city.name,
            latitude=_coordinate(record.location.latitude),
            longitude=_coordinate(record.location.longitude),
        )

    def close(self) -> None:
        self._reader.close()


class HttpGeolocationProvider(GeolocationProvider):
    """Base for JSON-over-HTTP providers sharing one requests.Session."""

    def __init__(
        self, session: requests.Session | None = None, user_agent: str = "PostMetric/1.0"
    ):
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = user_agent

    @abstractmethod
    def url(self, ip: str) -> str:
        """Lookup URL for one IP address."""

    @abstractmethod
    def parse(self, data: dict) -> Location | None:
        """Location from the decoded JSON answer, or None when it carries none."""

    def lookup(self, ip: str, timeout: float) -> Location | None:
        response = self._session.get(self.url(ip), timeout=timeout)
        if not response.ok:
            logger.debug("%s answered HTTP %d for %s", self.name, response.status_code, ip)
            return None
        return self.parse(response.json())


class IpapiCoProvider(HttpGeolocationProvider):
    """ipapi.co; the API key only raises rate limits."""

    name = "ipapi.co"

    def __init__(self, api_key: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def url(self, ip: str) -> str:
        if self.api_key:
            return f"https://ipapi.co/{ip}/json/?key={self.api_key}"
        return f"https://ipapi.co/{ip}/json/"

    def parse(self, data: dict) -> Location | None:
        if data.get("error"):
            logger.debug("ipapi.co error: %s", data.get("reason"))
            return None
        return Location(
            country=data.get("country_code") or "Unknown",
            region=data.get("region"),
            city=data.get("city"),
            latitude=_coordinate(data.get("latitude")),
            longitude=_coordinate(data.get("longitude")),
        )


class IpstackProvider(HttpGeolocationProvider):
    """IPStack."""

    name = "ipstack"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def url(self, ip: str) -> str:
        return f"http://api.ipstack.com/{ip}?access_key={self.api_key}"

    def parse(self, data: dict) -> Location | None:
        if data.get("error"):
            logger.debug("IPStack error: %s", (data.get("error") or {}).get("info"))
            return None
        return Location(
            country=data.get("country_code") or "Unknown",
            region=data.get("region_name"),
            city=data.get("city"),
            latitude=_coordinate(data.get("latitude")),
            longitude=_coordinate(data.get("longitude")),
        )


class IpApiComProvider(HttpGeolocationProvider):
    """ip-api.com (free tier: 45 requests per minute)."""

    name = "ip-api.com"

    def url(self, ip: str) -> str:
        return f"http://ip-api.com/json/{ip}?fields={IP_API_FIELDS}"

    def parse(self, data: dict) -> Location | None:
        if data.get("status") != "success":
            logger.debug("ip-api.com error: %s", data.get("message"))
            return None
        return Location(
            country=data.get("countryCode") or "Unknown",
            region=data.get("regionName"),
            city=data.get("city"),
            latitude=_coordinate(data.get("lat")),
            longitude=_coordinate(data.get("lon")),
        )


def build_providers(settings: GeolocationSettings) -> list[GeolocationProvider]:
    """
    Build the provider chain from settings.

    Order: MaxMind (if a database path is set and readable), ipapi.co,
    IPStack (if a key is set), ip-api.com (unless disabled).

    Args:
        settings: Geolocation settings

    Returns:
        Providers in lookup order; empty when geolocation is disabled
    """
    if not settings.enabled:
        return []

    providers: list[GeolocationProvider] = []
    if settings.maxmind_db_path:
        try:
            providers.append(MaxMindProvider(settings.maxmind_db_path))
        except (OSError, ValueError) as e:
            logger.warning("Could not open MaxMind database %s: %s", settings.maxmind_db_path, e)

    session = requests.Session()
    providers.append(
        IpapiCoProvider(settings.ipapi_key, session=session, user_agent=settings.user_agent)
    )
    if settings.ipstack_api_key:
        providers.append(
            IpstackProvider(
                settings.ipstack_api_key, session=session, user_agent=settings.user_agent
            )
        )
    if settings.use_ip_api_com:
        providers.append(IpApiComProvider(session=session, user_agent=settings.user_agent))
    return providers
