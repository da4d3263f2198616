"""
main.py: Inkpost FastAPI application

Wires together all components at startup:
- Creates tables and provisions the bootstrap admin
- Builds the lockout store (Redis or in-memory), the lockout trackers and
  the token service, and publishes them on app.state
- Maps domain errors to the `{"success": false, "error": ...}` payload
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes_auth import router as auth_router
from app.api.routes_comments import router as comments_router
from app.core.config import get_settings
from app.core.exceptions import BlogError, InternalError, RateLimited, Unauthorized
from app.core.security import build_token_service, dummy_password_hash
from app.db.database import init_db
from app.integrations.redis_client import RedisClient
from app.middleware.logging import RequestLoggingMiddleware
from app.services.auth_service import AuthTrackers
from app.services.lockout_store import LockoutStore, RedisLockoutStore, build_lockout_store
from app.services.provisioning import ensure_bootstrap_admin
from app.services.rate_limiter import LockoutPolicy, LockoutTracker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


def build_auth_trackers(store: LockoutStore) -> AuthTrackers:
    login_policy = LockoutPolicy(
        max_attempts=settings.login_max_attempts,
        window=timedelta(minutes=settings.login_window_minutes),
    )
    register_policy = LockoutPolicy(
        max_attempts=settings.register_max_attempts,
        window=timedelta(minutes=settings.register_window_minutes),
    )
    return AuthTrackers(
        login=LockoutTracker("login", login_policy, store),
        admin_login=LockoutTracker("admin-login", login_policy, store),
        register=LockoutTracker("register", register_policy, store),
    )


# ─── Application Lifespan ─────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} backend...")

    await init_db()
    await ensure_bootstrap_admin()
    # Unknown-identifier logins compare against this hash; build it before serving.
    await asyncio.to_thread(dummy_password_hash)

    redis_client = None
    if settings.rate_limit_backend == "redis":
        redis_client = RedisClient()
        await redis_client.connect()

    store = await build_lockout_store(settings.rate_limit_backend, redis_client)

    app.state.redis_client = redis_client
    app.state.lockout_store = store
    app.state.auth_trackers = build_auth_trackers(store)
    app.state.token_service = build_token_service()
    app.state.is_revoked = None

    logger.info(f"{settings.app_name} startup complete. ENV: {settings.app_env}")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    if redis_client:
        await redis_client.close()
    logger.info("Shutdown complete.")


# ─── FastAPI Application ───────────────────────────────────────────────────────

app = FastAPI(
    title="Inkpost API",
    description="Login, registration, session tokens and comment moderation for the Inkpost blog.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(auth_router)
app.include_router(comments_router)


# ─── Exception Handlers ───────────────────────────────────────────────────────

def _error_response(status_code: int, message: str, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
        headers=headers,
    )


@app.exception_handler(BlogError)
async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error(f"Internal error on {request.method} {request.url.path}: {exc!r}", exc_info=exc)
        return _error_response(500, InternalError.default_message)

    if isinstance(exc, RateLimited):
        return _error_response(
            exc.status_code,
            exc.message,
            headers={"Retry-After": str(exc.retry_after_minutes * 60)},
            timeLeft=f"{exc.retry_after_minutes} minutes",
        )

    if isinstance(exc, Unauthorized):
        return _error_response(exc.status_code, exc.message, headers={"WWW-Authenticate": "Bearer"})

    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {first.get('msg', '')}".strip()
    else:
        message = "Invalid request."
    return _error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled exceptions become a generic 500; details stay in the server log."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(500, InternalError.default_message)


# ── Root / Health ─────────────────────────────────────────────────────────────

@app.get("/", tags=["Health"])
async def root():
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.app_env,
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
async def health():
    store = getattr(app.state, "lockout_store", None)
    return {
        "status": "healthy",
        "lockout_store": "redis" if isinstance(store, RedisLockoutStore) else "memory",
    }
