from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from supabase import create_client
import asyncio
import logging
import os
import time
from uuid import uuid4

from app.config.environment import load_streak_settings, today_in, validate_environment
from app.logging_utils import bind_log_context, configure_logging, reset_log_context
from app.routes import streaks
from app.routes.error_responses import streak_error_response
from app.routes.http import http_client
from app.routes.upstash_redis import UpstashRedis
from app.services.metrics import metrics
from app.services.streak_sessions import StreakSessionRegistry
from app.services.streak_store import (
    InMemoryStreakBackend,
    RedisStreakCache,
    StreakStore,
    SupabaseStreakBackend,
)
from app.services.supabase_rest import SupabaseRestRepository


def _parse_cors_origins(value: str | None) -> list[str]:
    if not value:
        return []
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _status_bucket(status_code: int) -> str:
    if status_code >= 500:
        return "5xx"
    if status_code >= 400:
        return "4xx"
    return "2xx"


# --------------------------------------------------
# ENV + SUPABASE
# --------------------------------------------------
load_dotenv()
configure_logging()
logger = logging.getLogger(__name__)
ENV = validate_environment()
SETTINGS = load_streak_settings()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
SUPABASE_KEY = os.getenv("SUPABASE_KEY") or SUPABASE_SERVICE_ROLE_KEY
UPSTASH_REDIS_REST_URL = os.getenv("UPSTASH_REDIS_REST_URL")
UPSTASH_REDIS_REST_TOKEN = os.getenv("UPSTASH_REDIS_REST_TOKEN")

SUPABASE_CALL_TIMEOUT_SECONDS = float(os.getenv("SUPABASE_CALL_TIMEOUT_SECONDS", "4.0"))

supabase_anon = create_client(SUPABASE_URL, SUPABASE_KEY)


async def _resolve_user_id(token: str) -> str | None:
    user_res = await asyncio.wait_for(
        asyncio.to_thread(supabase_anon.auth.get_user, token),
        timeout=SUPABASE_CALL_TIMEOUT_SECONDS,
    )
    user = getattr(user_res, "user", None)
    return user.id if user else None


def build_streak_store() -> StreakStore:
    if UPSTASH_REDIS_REST_URL:
        cache = RedisStreakCache(
            UpstashRedis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN, client=http_client),
            key_prefix=SETTINGS.cache_key_prefix,
        )
    else:
        # Only reachable in dev; staging/prod require Upstash
        logger.warning("streak_store.cache_in_memory")
        cache = InMemoryStreakBackend()

    primary = SupabaseStreakBackend(
        SupabaseRestRepository(base_url=SUPABASE_URL, service_role_key=SUPABASE_SERVICE_ROLE_KEY),
        table=SETTINGS.analytics_table,
    )
    return StreakStore(cache=cache, primary=primary)


# ============================== APP LIFESPAN =============================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app.startup_ready", extra={"env": ENV, "timezone": SETTINGS.timezone})
    try:
        yield
    finally:
        await http_client.aclose()
        logger.info("app.shutdown_http_client_closed")


# --------------------------------------------------
# APP INIT
# --------------------------------------------------
app = FastAPI(lifespan=lifespan)
app.state.streak_sessions = StreakSessionRegistry(build_streak_store(), history_limit=SETTINGS.history_limit)
app.state.today = lambda: today_in(SETTINGS.timezone)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS")),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====================== AUTH MIDDLEWARE ====================

@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid4())
    request.state.user_id = None
    start = time.perf_counter()

    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1]
        try:
            request.state.user_id = await _resolve_user_id(token)
        except Exception as e:
            # Unauthenticated requests fall through; routes answer AUTH_REQUIRED
            logger.warning("auth.token_validation_failed", extra={"error": str(e)})

    bind_log_context(
        request_id=request.state.request_id,
        route=request.url.path,
        user_id=request.state.user_id,
    )
    response = None
    try:
        response = await call_next(request)
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        status = getattr(response, "status_code", 500)
        metrics.inc("http_requests_total", status=_status_bucket(status))
        metrics.observe_ms("http_request_latency", latency_ms, route=request.url.path)
        bind_log_context(status=status, latency_ms=latency_ms)
        logger.info("request.completed")
        reset_log_context()

    response.headers["X-Request-Id"] = request.state.request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return streak_error_response(request, "INVALID_REQUEST")


@app.get("/metrics")
async def metrics_endpoint(request: Request):
    if not request.state.user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return PlainTextResponse(
        content=metrics.render_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# --------------------------------------------------
# ROUTERS
# --------------------------------------------------
app.include_router(streaks.router)
