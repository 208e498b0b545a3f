# ==============================================================================
# Geolocation Provider Abstract Base Class
# ==============================================================================
"""
Abstract interface for IP geolocation sources.

Implementations: MaxMind database, ipapi.co, IPStack, ip-api.com.
"""

from abc import ABC, abstractmethod

from postmetric.core.models import Location


class GeolocationProvider(ABC):
    """A single IP geolocation source."""

    name: str = "provider"

    @abstractmethod
    def lookup(self, ip: str, timeout: float) -> Location | None:
        """
        Look up an IP address.

        Implementations may raise on network or parse errors; the enricher
        treats any exception as "no answer" and moves on.

        Args:
            ip: Public IP address
            timeout: Seconds this lookup may take

        Returns:
            Location, or None if the provider has no answer
        """
        ...
