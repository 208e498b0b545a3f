# ==============================================================================
# Geolocation Enricher
# ==============================================================================
"""
Client IP to approximate location through an ordered chain of providers.

Non-routable addresses never leave the process. Successful answers are
cached so repeat visitors do not cost a provider call. A lookup never
raises: every failure ends in Location.unknown().
"""

import ipaddress
import logging
import time
from collections.abc import Sequence

from postmetric.base.cache import Cache
from postmetric.base.geolocation import GeolocationProvider
from postmetric.core.models import Location

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "geo:"
DEFAULT_TIMEOUT_SECONDS = 1.5
DEFAULT_BUDGET_SECONDS = 2.0
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60


def is_public_ip(ip: str | None) -> bool:
    """Whether an address is a parseable, globally routable IP."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


class GeolocationEnricher:
    """Resolves client IPs to coarse locations."""

    def __init__(
        self,
        providers: Sequence[GeolocationProvider],
        cache: Cache | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        budget_seconds: float = DEFAULT_BUDGET_SECONDS,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        """
        Initialize the enricher.

        Args:
            providers: Providers to try, in order
            cache: Optional cache for successful answers
            timeout: Per-provider timeout in seconds
            budget_seconds: Total time all providers may spend on one lookup
            cache_ttl: Seconds a cached answer stays valid
        """
        self.providers = list(providers)
        self._cache = cache
        self.timeout = timeout
        self.budget_seconds = budget_seconds
        self.cache_ttl = cache_ttl

    def locate(self, ip: str | None) -> Location:
        """
        Resolve an IP address to a location.

        Args:
            ip: Client IP address

        Returns:
            Location; country "Unknown" when nothing could be resolved
        """
        if not is_public_ip(ip):
            return Location.unknown()

        cached = self._cache_get(ip)
        if cached is not None:
            return cached

        deadline = time.monotonic() + self.budget_seconds
        for provider in self.providers:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug("Geolocation budget spent before %s for %s", provider.name, ip)
                break
            try:
                location = provider.lookup(ip, min(self.timeout, remaining))
            except Exception as e:
                logger.warning("Geolocation provider %s failed for %s: %s", provider.name, ip, e)
                continue
            if location is not None and location.is_known:
                self._cache_set(ip, location)
                return location

        return Location.unknown()

    def _cache_get(self, ip: str) -> Location | None:
        if self._cache is None:
            return None
        try:
            data = self._cache.get(f"{CACHE_KEY_PREFIX}{ip}")
            return Location.model_validate(data) if data else None
        except Exception as e:
            logger.warning("Geolocation cache read failed: %s", e)
            return None

    def _cache_set(self, ip: str, location: Location) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(
                f"{CACHE_KEY_PREFIX}{ip}", location.model_dump(), ttl_seconds=self.cache_ttl
            )
        except Exception as e:
            logger.warning("Geolocation cache write failed: %s", e)
