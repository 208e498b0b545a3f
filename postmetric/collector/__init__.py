# ==============================================================================
# Collector
# ==============================================================================
"""
Request-level orchestration: the ingestion handler for tracking hits and
the goal tracker for goal beacons.
"""

from postmetric.collector.goals import GoalTracker
from postmetric.collector.ingestion import Hit, IngestionHandler, IngestionResult

__all__ = [
    "GoalTracker",
    "Hit",
    "IngestionHandler",
    "IngestionResult",
]
