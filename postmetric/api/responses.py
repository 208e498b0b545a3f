# ==============================================================================
# Tracking Responses
# ==============================================================================
"""
The response contract of the tracking endpoints.

Every tracking hit gets the same answer regardless of what happened to it:
200, a 1x1 transparent GIF and a fixed header set. The only thing that varies
is the pair of identity cookies, which are set whenever the site resolved.
"""

import base64

from fastapi import Response

from postmetric.core.identity import Identity
from postmetric.utils.config import TrackingSettings

PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, private",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}

GOAL_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
}


def cors_headers(max_age: int, methods: str | None = None) -> dict[str, str]:
    headers = {**CORS_HEADERS, "Access-Control-Max-Age": str(max_age)}
    if methods:
        headers["Access-Control-Allow-Methods"] = methods
    return headers


def preflight_response(tracking: TrackingSettings, methods: str | None = None) -> Response:
    """CORS preflight answer: headers only, no body, no cookies."""
    return Response(status_code=200, headers=cors_headers(tracking.cors_max_age, methods))


def set_identity_cookies(
    response: Response, identity: Identity, tracking: TrackingSettings, secure: bool
) -> None:
    """
    Issue visitor and session cookies for a resolved identity.

    Args:
        response: Response to add Set-Cookie headers to
        identity: Identity whose session_id is set
        tracking: Cookie names and lifetimes
        secure: Add the Secure attribute (request arrived over HTTPS)
    """
    response.set_cookie(
        tracking.visitor_cookie_name,
        identity.visitor_id,
        max_age=tracking.visitor_cookie_max_age,
        path="/",
        secure=secure,
        samesite="lax",
    )
    response.set_cookie(
        tracking.session_cookie_name,
        identity.session_id,
        max_age=tracking.session_cookie_max_age,
        path="/",
        secure=secure,
        samesite="lax",
    )


def pixel_response(
    tracking: TrackingSettings, identity: Identity | None = None, secure: bool = False
) -> Response:
    """
    The tracking pixel response, identical for every outcome.

    Args:
        tracking: Cookie and CORS settings
        identity: Identity to refresh, or None to send no cookies
        secure: Whether cookies get the Secure attribute

    Returns:
        200 image/gif response
    """
    response = Response(
        content=PIXEL,
        status_code=200,
        media_type="image/gif",
        headers={**PIXEL_HEADERS, **cors_headers(tracking.cors_max_age)},
    )
    if identity is not None and identity.session_id:
        set_identity_cookies(response, identity, tracking, secure)
    return response


def goal_response() -> Response:
    """Goal beacons always get 204 No Content."""
    return Response(
        status_code=204,
        headers={**GOAL_CORS_HEADERS, "X-Content-Type-Options": "nosniff"},
    )
