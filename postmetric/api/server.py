# ==============================================================================
# Collector HTTP Application
# ==============================================================================
"""
FastAPI application exposing the collection endpoints.

Endpoints:
    GET|POST|OPTIONS /api/track         Tracking pixel / beacon
    GET|OPTIONS      /api/goals/track   Goal conversion beacon
    GET              /health            Liveness probe

Handlers are synchronous and run in Starlette's thread pool. A client that
disconnects mid-request does not cancel the worker thread, so a hit that
started persisting always finishes.
"""

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from postmetric.api.responses import goal_response, pixel_response, preflight_response
from postmetric.collector.goals import GoalTracker
from postmetric.collector.ingestion import Hit, IngestionHandler
from postmetric.core.models import TrackingPayload
from postmetric.utils.config import Settings, get_settings
from postmetric.utils.logs import configure_logging

logger = logging.getLogger(__name__)

UNKNOWN_IP = "0.0.0.0"

# Query parameters that override the JSON body, keyed by payload alias
QUERY_FIELDS = ("path", "title", "hostname", "visitorId", "sessionId", "referrer", "href", "type")


# ==============================================================================
# Request Helpers
# ==============================================================================


def get_client_ip(request: Request) -> str:
    """
    Client IP from proxy headers, falling back to the socket peer.

    Order: first X-Forwarded-For entry, X-Real-IP, CF-Connecting-IP, peer.
    """
    headers = request.headers
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IP


def is_secure_request(request: Request) -> bool:
    """Whether the request arrived over HTTPS, directly or via a proxy."""
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto:
        return forwarded_proto.split(",")[0].strip().lower() == "https"
    return request.url.scheme == "https"


async def read_json_body(request: Request) -> dict:
    """JSON object body of a POST, or {} for anything else."""
    if request.method != "POST":
        return {}
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _invalid_keys(error: ValidationError) -> set[str]:
    """Body keys (alias and field name) of every top-level field that failed."""
    failed = {err["loc"][0] for err in error.errors() if err["loc"]}
    keys = set(failed)
    for name, field in TrackingPayload.model_fields.items():
        if name in failed or field.alias in failed:
            keys.add(name)
            if field.alias:
                keys.add(field.alias)
    return keys


def build_payload(body: Mapping, query: Mapping[str, str]) -> TrackingPayload:
    """
    Merge non-empty query parameters over the JSON body.

    Fields that fail validation are dropped one by one, so a garbled title
    does not cost the hit its path or identity.
    """
    merged = dict(body)
    for key in QUERY_FIELDS:
        value = query.get(key)
        if value:
            merged[key] = value
    try:
        return TrackingPayload.model_validate(merged)
    except ValidationError as e:
        invalid = _invalid_keys(e)
        logger.debug("Dropping invalid tracking payload fields: %s", sorted(invalid))
    try:
        return TrackingPayload.model_validate(
            {k: v for k, v in merged.items() if k not in invalid}
        )
    except ValidationError as e:
        logger.debug("Discarding invalid tracking payload: %s", e.error_count())
        return TrackingPayload()


# ==============================================================================
# Application
# ==============================================================================


def create_app(
    handler: IngestionHandler | None = None,
    goal_tracker: GoalTracker | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create the collector application.

    Args:
        handler: Ingestion handler. If None, built from settings at startup.
        goal_tracker: Goal tracker. If None, built from settings at startup.
        settings: Application settings. If None, uses get_settings().

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    tracking = settings.tracking

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = None
        if app.state.handler is None or app.state.goal_tracker is None:
            from postmetric.collector.factory import build_services

            configure_logging(settings.log_level)
            services = build_services(settings)
            app.state.handler = app.state.handler or services.handler
            app.state.goal_tracker = app.state.goal_tracker or services.goal_tracker
        try:
            yield
        finally:
            if services is not None:
                services.close()

    app = FastAPI(
        title="PostMetric Collector",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.handler = handler
    app.state.goal_tracker = goal_tracker

    @app.api_route("/api/track", methods=["GET", "POST"])
    async def track(request: Request) -> Response:
        body = await read_json_body(request)
        tracking_code = request.query_params.get("site") or body.get("site")
        hit = Hit(
            tracking_code=tracking_code if isinstance(tracking_code, str) else None,
            payload=build_payload(body, request.query_params),
            cookies=dict(request.cookies),
            user_agent=request.headers.get("user-agent"),
            ip=get_client_ip(request),
        )
        result = await run_in_threadpool(app.state.handler.handle, hit)
        return pixel_response(tracking, result.identity, secure=is_secure_request(request))

    @app.options("/api/track")
    async def track_preflight() -> Response:
        return preflight_response(tracking)

    @app.get("/api/goals/track")
    async def track_goal(request: Request) -> Response:
        query = request.query_params
        try:
            await run_in_threadpool(
                app.state.goal_tracker.track,
                query.get("site"),
                query.get("event"),
                query.get("value"),
                query.get("path"),
                dict(request.cookies),
            )
        except Exception:
            logger.exception("Failed to record goal event for site %r", query.get("site"))
        return goal_response()

    @app.options("/api/goals/track")
    async def track_goal_preflight() -> Response:
        return preflight_response(tracking, methods="GET, OPTIONS")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
