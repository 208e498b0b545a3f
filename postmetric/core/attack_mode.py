# ==============================================================================
# Attack-Mode Guard
# ==============================================================================
"""
Traffic-spike detection and admission control for tracked sites.

Two steps run once per hit, in order:

1. check_traffic_spike(): count the hit in the site's spike window and, when
   a SpikePolicy reports a spike and the site allows auto-activation, switch
   the site into attack mode (once; later triggers are no-ops).
2. admit(): while attack mode is active, cap the hits each IP may send per
   window. Hits over the cap are dropped without telling the client.

Counter and store errors never block a hit: both steps fail open.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from postmetric.base.repositories import SiteRepository
from postmetric.base.traffic import TrafficCounter
from postmetric.core.models import Site

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 1000
SPIKE_WINDOW_SECONDS = 3600
PER_IP_LIMIT = 10
PER_IP_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class Admission:
    """Admission decision for one hit."""

    allowed: bool
    reason: str | None = None


class SpikePolicy(Protocol):
    """Decides whether current traffic counts as a spike."""

    def is_spike(self, current: int, previous: int, threshold: int) -> bool: ...


class ThresholdSpikePolicy:
    """Spike when the current window exceeds the threshold."""

    def is_spike(self, current: int, previous: int, threshold: int) -> bool:
        return current > threshold


class BaselineSpikePolicy:
    """
    Spike when the current window exceeds both the threshold and a multiple
    of the previous window.

    The previous window acts as the learned baseline, so a site that is
    steadily busy does not trip attack mode just for being large.
    """

    def __init__(self, multiplier: float = 3.0):
        if multiplier <= 1:
            raise ValueError(f"multiplier must be greater than 1, got {multiplier}")
        self.multiplier = multiplier

    def is_spike(self, current: int, previous: int, threshold: int) -> bool:
        return current > threshold and current > previous * self.multiplier


class AttackModeGuard:
    """Spike detection and admission control backed by a TrafficCounter."""

    def __init__(
        self,
        counter: TrafficCounter,
        sites: SiteRepository,
        policy: SpikePolicy | None = None,
        default_threshold: int = DEFAULT_THRESHOLD,
        spike_window_seconds: int = SPIKE_WINDOW_SECONDS,
        per_ip_limit: int = PER_IP_LIMIT,
        per_ip_window_seconds: int = PER_IP_WINDOW_SECONDS,
    ):
        self._counter = counter
        self._sites = sites
        self.policy = policy or ThresholdSpikePolicy()
        self.default_threshold = default_threshold
        self.spike_window_seconds = spike_window_seconds
        self.per_ip_limit = per_ip_limit
        self.per_ip_window_seconds = per_ip_window_seconds

    def check_traffic_spike(self, site: Site, now: datetime | None = None) -> bool:
        """
        Count the hit and activate attack mode on a detected spike.

        Mutates site.settings.attack_mode when this call activates attack
        mode, so admission control in the same request sees it.

        Args:
            site: Resolved site
            now: Hit timestamp

        Returns:
            True if this call activated attack mode
        """
        now = now or datetime.now(timezone.utc)
        key = f"site:{site.id}"
        try:
            self._counter.hit(key, self.spike_window_seconds, now.timestamp())
            attack_mode = site.settings.attack_mode
            if attack_mode.enabled or not attack_mode.auto_activate:
                return False

            current, previous = self._counter.window_counts(
                key, self.spike_window_seconds, now.timestamp()
            )
            threshold = attack_mode.threshold or self.default_threshold
            if not self.policy.is_spike(current, previous, threshold):
                return False

            activated = self._sites.activate_attack_mode(site.id, now)
        except Exception as e:
            logger.warning("Traffic spike check failed for site %s: %s", site.id, e)
            return False

        site.settings.attack_mode.enabled = True
        if activated:
            site.settings.attack_mode.activated_at = now
            logger.warning(
                "Attack mode activated for site %s (%d hits in %ds window)",
                site.id,
                current,
                self.spike_window_seconds,
            )
        return activated

    def admit(self, site: Site, ip: str, now: datetime | None = None) -> Admission:
        """
        Apply admission control for one hit.

        Args:
            site: Resolved site
            ip: Client IP address
            now: Hit timestamp

        Returns:
            Admission; allowed is always True while attack mode is off
        """
        if not site.settings.attack_mode.enabled:
            return Admission(allowed=True)

        now = now or datetime.now(timezone.utc)
        try:
            count = self._counter.hit(
                f"ip:{site.id}:{ip}", self.per_ip_window_seconds, now.timestamp()
            )
        except Exception as e:
            logger.warning("Admission check failed for site %s: %s", site.id, e)
            return Admission(allowed=True)

        if count > self.per_ip_limit:
            return Admission(allowed=False, reason="ip rate limit exceeded in attack mode")
        return Admission(allowed=True)
