# ==============================================================================
# Cache Infrastructure
# ==============================================================================
"""
Cache implementations for the ports-and-adapters architecture.

Available implementations:
- ValkeyCache: Valkey/Redis-based cache with JSON serialization
"""

from postmetric.infrastructure.cache.valkey import ValkeyCache

__all__ = [
    "ValkeyCache",
]
