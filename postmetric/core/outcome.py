# ==============================================================================
# Step Outcomes
# ==============================================================================
"""
Tagged outcomes returned by ingestion steps.

Proceed carries on to the next step. Suppress drops the hit by policy
(unknown site, attack mode, exclusion rule). Fail records an infrastructure
error. All three render the same response to the client; only logging
differs.
"""

from dataclasses import dataclass
from enum import Enum


class SuppressReason(str, Enum):
    UNKNOWN_SITE = "unknown_site"
    ATTACK_MODE = "attack_mode"
    EXCLUDED = "excluded"


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class Suppress:
    reason: SuppressReason
    detail: str | None = None


@dataclass(frozen=True)
class Fail:
    reason: str


Outcome = Proceed | Suppress | Fail
