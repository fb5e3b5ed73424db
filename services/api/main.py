"""
NTUGo FastAPI service: transit proxies, cached bike/bus data, password reset
and the campus assistant.

Entrypoint: uvicorn services.api.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.api.config import settings
from services.api.db.client import create_mongo_client, get_database, redact_uri
from services.api.middleware.cors import setup_cors
from services.api.middleware.rate_limit import RateLimitMiddleware
from services.api.middleware.sentry import setup_sentry
from services.api.routers import ai, auth, bus, community, health, tdx, youbike
from services.api.tdx import TDXClient, TDXTokenProvider
from services.api.transit import BusService
from services.api.youbike import YouBikeService

logger = logging.getLogger(__name__)

# Shared redis reference: set during lifespan, read by rate limiter
_redis_holder: dict = {"client": None}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    # Redis for rate limiting and the per-email send limit
    redis_client = None
    if settings.redis_url:
        try:
            redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await redis_client.ping()
        except Exception:
            # Rate limiting degrades gracefully: requests pass through
            logger.warning("Redis unavailable; rate limiting disabled")
            redis_client = None

    _redis_holder["client"] = redis_client
    app.state.redis = redis_client
    app.state.settings = settings

    # MongoDB: one pooled client per process
    mongo_client = None
    app.state.mongo_db = None
    if settings.mongodb_uri:
        try:
            mongo_client = create_mongo_client()
            app.state.mongo_db = get_database(mongo_client)
        except Exception as e:
            logger.warning("MongoDB client failed to init (%s): %s", redact_uri(settings.mongodb_uri), e)
            mongo_client = None
    app.state.mongo_client = mongo_client

    # TDX: token cache shared by the proxy routes and the bus cache
    token_provider = TDXTokenProvider(
        client_id=settings.tdx_client_id,
        client_secret=settings.tdx_client_secret,
        auth_url=settings.tdx_auth_url,
        timeout_s=settings.tdx_timeout_s,
        expiry_margin_s=settings.tdx_token_expiry_margin_s,
    )
    if not token_provider.configured:
        logger.warning("TDX credentials not set; /api/tdx routes will return 500")
    tdx_client = TDXClient(
        token_provider=token_provider,
        api_base=settings.tdx_api_base,
        timeout_s=settings.tdx_timeout_s,
    )
    app.state.tdx_token_provider = token_provider
    app.state.tdx_client = tdx_client

    app.state.bus_service = BusService(
        client=tdx_client,
        city=settings.tdx_default_city,
        center_lat=settings.ntu_center_lat,
        center_lon=settings.ntu_center_lon,
        radius_m=settings.bus_stop_radius_m,
        stops_ttl_s=settings.bus_stops_cache_ttl_s,
        arrivals_ttl_s=settings.bus_arrivals_cache_ttl_s,
        arrivals_max_entries=settings.bus_arrivals_cache_max_entries,
    )
    app.state.youbike_service = YouBikeService(
        feed_url=settings.youbike_feed_url,
        timeout_s=settings.youbike_timeout_s,
        ttl_seconds=settings.bike_cache_ttl_s,
    )

    yield

    if mongo_client:
        await mongo_client.close()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="NTUGo API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# -- Middleware (order matters: last added = outermost in Starlette) --

# Routers first (innermost)
app.include_router(health.router)
app.include_router(tdx.router)
app.include_router(youbike.router)
app.include_router(bus.router)
app.include_router(auth.router)
app.include_router(ai.router)
app.include_router(community.router)

# CORS (needs to be outermost to handle preflight)
setup_cors(app)


# Request ID injection
@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Rate limiting: uses lazy redis reference from lifespan
class _LazyRateLimitMiddleware(RateLimitMiddleware):
    """Rate limiter that picks up Redis client after lifespan init."""

    def __init__(self, app):
        super().__init__(app, redis_client=None)

    async def dispatch(self, request, call_next):
        self.redis = _redis_holder.get("client")
        return await super().dispatch(request, call_next)


app.add_middleware(_LazyRateLimitMiddleware)


# -- Exception Handlers --

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Dict details are the route's own envelope and are sent as-is."""
    if isinstance(exc.detail, dict):
        content = exc.detail
    elif exc.status_code == 404:
        content = {"error": "NOT_FOUND", "message": "Resource not found."}
    else:
        content = {"message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) if errors else ""
    message = f"請求參數不正確: {field}" if field else "請求格式不正確"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
            "requestId": _request_id(request),
        },
    )
