# ==============================================================================
# HTTP API
# ==============================================================================
"""
FastAPI surface of the collector: tracking and goal endpoints.
"""

from postmetric.api.server import create_app

__all__ = ["create_app"]
