"""
Visit Tracking API

FastAPI application receiving events from the embedded tracking snippet.

Endpoints:
- POST /api/track: Track one visit event
- POST /api/track/bulk: Track a batch of events for one website
- GET /api/ip/{ip}: Location and threat lookup for an IP
- GET /health: Health check
- GET /metrics: Prometheus metrics
- GET /metrics/summary: Recent decision telemetry
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..cache import LocalCache, RedisCache, TieredCache
from ..collaborators import (
    InMemoryNotifier,
    InMemoryVisitStore,
    InMemoryWebsiteDirectory,
    RedisNotifier,
    SqlVisitStore,
    SqlWebsiteDirectory,
    VisitNotifier,
    VisitStore,
    WebsiteDirectory,
)
from ..config import settings
from ..dedup import DedupGate, RateLimiter
from ..errors import InvalidInputError, RateLimitExceededError
from ..identity import IdentityResolver, SessionStore
from ..metrics import metrics, setup_metrics, telemetry
from ..pipeline import IngestionOrchestrator
from ..resolvers import (
    LocationResolver,
    ThreatResolver,
    default_location_providers,
    default_threat_strategies,
)
from ..schemas import (
    BulkTrackRequest,
    BulkTrackResponse,
    ErrorResponse,
    IPLookupResponse,
    TrackResponse,
    VisitEvent,
)
from ..utils.tasks import drain_background_tasks
from .auth import require_metrics_token
from .dependencies import get_client_ip

logger = logging.getLogger("visitguard.api")


# Global instances (initialized in lifespan)
redis_client: Optional[redis.Redis] = None
http_client: Optional[httpx.AsyncClient] = None
cache: Optional[TieredCache] = None
website_directory: Optional[WebsiteDirectory] = None
visit_store: Optional[VisitStore] = None
orchestrator: Optional[IngestionOrchestrator] = None


def build_orchestrator(
    tiered_cache: TieredCache,
    client: httpx.AsyncClient,
    websites: WebsiteDirectory,
    store: VisitStore,
    notifier: VisitNotifier,
    redis_conn: Optional[redis.Redis] = None,
) -> IngestionOrchestrator:
    """Wire the pipeline from settings."""
    location = LocationResolver(tiered_cache, default_location_providers(client))
    threat = ThreatResolver(
        tiered_cache,
        default_threat_strategies(client, isp_lookup=location.resolve),
    )
    rate_limiter = RateLimiter(redis_conn) if settings.rate_limit_enabled else None

    return IngestionOrchestrator(
        websites=websites,
        identity=IdentityResolver(SessionStore(tiered_cache)),
        dedup=DedupGate(tiered_cache),
        location=location,
        threat=threat,
        store=store,
        notifier=notifier,
        rate_limiter=rate_limiter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes and cleans up resources:
    - Redis connection (shared cache tier, rate limits, pub/sub)
    - PostgreSQL (website directory, visit store)
    - Outbound HTTP client for the IP providers
    """
    global redis_client, http_client, cache, website_directory, visit_store, orchestrator

    # Initialize Redis
    shared_tier = None
    notifier: VisitNotifier = InMemoryNotifier()
    if settings.redis_enabled:
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            socket_timeout=settings.redis_socket_timeout_seconds,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
            decode_responses=True,
        )

        # Verify Redis connection
        try:
            await redis_client.ping()
        except Exception as e:
            logger.warning("Redis connection failed: %s", e)
            # Continue; the cache degrades to the local tier

        shared_tier = RedisCache(redis_client, settings.redis_key_prefix)
        notifier = RedisNotifier(redis_client, settings.redis_key_prefix)

    cache = TieredCache(LocalCache(settings.local_cache_max_entries), shared_tier)

    # Initialize PostgreSQL collaborators
    if settings.postgres_enabled:
        sql_websites = SqlWebsiteDirectory(settings.postgres_url)
        await sql_websites.initialize()
        sql_store = SqlVisitStore(settings.postgres_url)
        await sql_store.initialize()
        website_directory, visit_store = sql_websites, sql_store
    else:
        website_directory, visit_store = InMemoryWebsiteDirectory(), InMemoryVisitStore()

    http_client = httpx.AsyncClient(follow_redirects=True)

    orchestrator = build_orchestrator(
        cache, http_client, website_directory, visit_store, notifier, redis_client
    )

    # Setup metrics
    if settings.metrics_enabled:
        setup_metrics()

    yield

    # Cleanup
    await drain_background_tasks()
    if http_client:
        await http_client.aclose()
    if isinstance(website_directory, SqlWebsiteDirectory):
        await website_directory.close()
    if isinstance(visit_store, SqlVisitStore):
        await visit_store.close()
    if redis_client:
        await redis_client.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Visit Tracking API",
        description="Visit ingestion with geolocation, VPN/bot detection and fraud scoring",
        version="1.0.0",
        lifespan=lifespan,
    )

    # The snippet runs on customer sites, so any origin may post events
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(by_alias=True),
        headers=headers,
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    metrics.errors_total.labels(error_type=exc.code).inc()
    return _error(400, exc.message)


@app.exception_handler(RateLimitExceededError)
async def rate_limit_handler(request: Request, exc: RateLimitExceededError):
    metrics.errors_total.labels(error_type=exc.code).inc()
    return _error(429, exc.message, headers={"Retry-After": "60"})


def _require_orchestrator() -> IngestionOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return orchestrator


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns service health status and component availability.
    """
    health = {
        "status": "healthy",
        "components": {
            "redis": False,
            "postgres": False,
        },
        "cache_degraded": bool(cache and cache.degraded),
    }

    # Check Redis
    try:
        if redis_client:
            await redis_client.ping()
            health["components"]["redis"] = True
    except Exception:
        pass

    # Check Postgres
    if isinstance(visit_store, SqlVisitStore):
        try:
            await visit_store.health_check()
            health["components"]["postgres"] = True
        except Exception:
            pass

    for component, healthy in health["components"].items():
        metrics.component_health.labels(component=component).set(1 if healthy else 0)

    # Overall status
    if not all(health["components"].values()) or health["cache_degraded"]:
        health["status"] = "degraded"

    return health


@app.get("/metrics")
def metrics_endpoint(_: None = Depends(require_metrics_token)):
    """Expose Prometheus metrics with optional token auth."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/metrics/summary")
def metrics_summary(hours: int = 24, _: None = Depends(require_metrics_token)):
    """Return recent tracking telemetry for dashboards."""
    return telemetry.snapshot(hours=hours)


@app.post("/api/track", response_model=TrackResponse)
async def track_visit(
    event: VisitEvent,
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Header(default=None),
):
    """
    Track a visit event from the snippet.

    Returns whether the event was recorded and the session it belongs to.
    Storage and notifications complete after the response is sent.
    """
    metrics.requests_total.labels(endpoint="/api/track").inc()
    pipeline = _require_orchestrator()

    outcome = await pipeline.track(event, client_ip, user_agent)
    return outcome.response


@app.post("/api/track/bulk", response_model=BulkTrackResponse)
async def track_bulk(
    request: BulkTrackRequest,
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Header(default=None),
):
    """Track a batch of events for one website."""
    metrics.requests_total.labels(endpoint="/api/track/bulk").inc()
    pipeline = _require_orchestrator()

    return await pipeline.track_bulk(request, client_ip, user_agent)


@app.get("/api/ip/{ip}", response_model=IPLookupResponse)
async def lookup_ip(ip: str):
    """Location and threat flags for an IP."""
    metrics.requests_total.labels(endpoint="/api/ip").inc()
    pipeline = _require_orchestrator()

    return await pipeline.lookup_ip(ip)


# Entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "visitguard.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_debug,
    )
