# app/main.py
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Your configuration and DB
from app.config import Settings, settings
from app.core.db import init_db, close_db
from app.core.errors import AppError, MissingInput
from app.core.locks import KeyedLock
from app.core.maintenance import RetentionSweeper
from app.core.security import TokenIssuer
from app.core.timeutil import isoformat_z, utc_now

from app.api.v1.routers import admin, analytics, auth, colorise, stats
from app.services.auth_flow import AuthenticationFlow
from app.services.authorization import RequestAuthorization
from app.services.identity_store import IdentityStore
from app.services.quota_tracker import QuotaTracker
from app.services.restoration_factory import get_restoration_services
from app.services.session_ledger import SessionLedger
from app.services.usage_recorder import UsageRecorder

logger = logging.getLogger("uvicorn.error")

PUBLIC_ENDPOINTS = [
    "GET /health",
    "POST /api/v1/auth/anonymous",
    "POST /api/v1/colorise",
    "GET /api/v1/stats",
    "GET /api/v1/analytics/summary",
]
DEV_ENDPOINTS = [
    "GET /api/v1/admin/users (dev only)",
    "POST /api/v1/admin/reset/{user_id} (dev only)",
    "POST /api/v1/admin/test-restore (dev only)",
]


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "invalid value")
    return f"Invalid request: {field}: {message}" if field else f"Invalid request: {message}"


def _wire_services(app: FastAPI, cfg: Settings) -> None:
    """
    Build the service graph once per app and keep it on app.state.
    Routers reach services through app.state, so tests can swap pieces
    (e.g. restoration providers or the quota clock) on a live app.
    """
    tokens = TokenIssuer(cfg.jwt_secret, ttl_seconds=cfg.token_ttl_seconds)
    # One lock registry for every per-identity read-modify-write
    identity_locks = KeyedLock()
    identities = IdentityStore(locks=identity_locks)
    sessions = SessionLedger(recent_limit=cfg.recent_sessions_limit, locks=identity_locks)
    quota = QuotaTracker(daily_limit=cfg.daily_limit, locks=identity_locks)
    usage = UsageRecorder()

    app.state.settings = cfg
    app.state.tokens = tokens
    app.state.identities = identities
    app.state.sessions = sessions
    app.state.quota = quota
    app.state.usage = usage
    app.state.auth_flow = AuthenticationFlow(identities, sessions, quota, tokens)
    app.state.authorization = RequestAuthorization(
        tokens,
        identities,
        quota,
        usage,
        providers=get_restoration_services(),
        timeout_sec=cfg.processing_timeout_sec,
        max_image_bytes=cfg.max_image_bytes,
        expose_error_details=cfg.dev_mode,
    )
    app.state.sweeper = RetentionSweeper(
        sessions,
        usage,
        session_retention_days=cfg.session_retention_days,
        event_retention_days=cfg.event_retention_days,
        interval_sec=cfg.cleanup_interval_sec,
    )
    app.state.started_at = time.monotonic()


def create_app(cfg: Settings = settings) -> FastAPI:
    """
    Application factory.

    `cfg.dev_mode` is the capability flag for development features: the
    admin router is mounted and unclassified errors carry their details.
    """
    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    _wire_services(app, cfg)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies and query params use the same 400 envelope as other input errors
        err = MissingInput(_describe_validation_error(exc))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: Exception):
        endpoints = PUBLIC_ENDPOINTS + (DEV_ENDPOINTS if cfg.dev_mode else [])
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": {"code": "ENDPOINT_NOT_FOUND", "message": "Endpoint not found"},
                "availableEndpoints": endpoints,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("[app] unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"},
                "timestamp": isoformat_z(utc_now()),
                "requestId": str(uuid.uuid4()),
            },
        )

    @app.on_event("startup")
    async def on_startup():
        if not cfg.dev_mode and cfg.jwt_secret == "dev-secret":
            logger.warning("[startup] JWT_SECRET is not set, using the development secret")
        if not cfg.replicate_api_token:
            logger.warning("[startup] REPLICATE_API_TOKEN is not set, colorise requests will fail")
        await init_db()
        app.state.sweeper.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.sweeper.stop()
        await close_db()

    # REST
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(colorise.router, prefix="/api/v1")
    app.include_router(stats.router, prefix="/api/v1")
    app.include_router(analytics.router, prefix="/api/v1")
    if cfg.dev_mode:
        app.include_router(admin.router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": isoformat_z(utc_now()),
            "users": await app.state.identities.count(),
            "uptime": round(time.monotonic() - app.state.started_at, 1),
            "version": cfg.APP_VERSION,
        }

    return app


app = create_app()
