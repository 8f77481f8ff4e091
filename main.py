"""Main application entry point."""

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.errors import AuthError, status_for
from app.db.session import AsyncSessionLocal, close_db, init_db
from app.services.token_store import TokenStore, purge_loop

# ─────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────
settings = get_settings()

# Set log level based on environment
log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("auth_api")

# Suppress verbose SQLAlchemy logs in production
if not settings.debug:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_configuration() -> None:
    logger.debug("=" * 49)
    logger.debug(f"  {settings.app_name} - Starting with Configuration")
    logger.debug("=" * 49)
    logger.debug(f"- DATABASE_URL: {settings.database_url}")
    logger.debug("- JWT_SECRET_KEY: [REDACTED]")
    logger.debug(f"- GITHUB_CLIENT_ID: {settings.github_client_id}")
    logger.debug("- GITHUB_CLIENT_SECRET: [REDACTED]")
    logger.debug(f"- ALLOWED_REDIRECTS: {settings.allowed_redirects}")
    logger.debug(f"- COOKIE_DOMAIN: {settings.cookie_domain}")
    logger.debug(f"- REVOKE_ALL_ON_REPLAY: {settings.revoke_all_on_replay}")
    logger.debug(f"- TOKEN_PURGE_INTERVAL_SECONDS: {settings.token_purge_interval_seconds}")
    logger.debug("=" * 49)


# ─────────────────────────────────────────────────────────────
# Global exception handler - logs full traceback
# ─────────────────────────────────────────────────────────────
async def catch_exceptions_middleware(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error("=" * 60)
        logger.error(f"500 ERROR on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        logger.error("Full traceback:")
        logger.error(traceback.format_exc())
        logger.error("=" * 60)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


async def auth_error_handler(request: Request, exc: AuthError):
    status_code = status_for(exc.kind)
    if status_code >= 500:
        logger.error(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")
        detail = "Internal server error"
    else:
        detail = exc.message
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error": exc.kind.value},
    )


# ─────────────────────────────────────────────────────────────
# Lifespan: Startup + Shutdown
# ─────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ─── Startup ───
    logger.info(f"Starting up {settings.app_name} v{app.version}...")
    log_configuration()

    await init_db()
    logger.info("Database tables initialized")

    store = TokenStore(AsyncSessionLocal)
    purged = await store.purge_expired()
    logger.info(f"Purged {purged} expired refresh token(s)")
    purge_task = asyncio.create_task(
        purge_loop(store, settings.token_purge_interval_seconds),
        name="refresh-token-purge",
    )

    logger.info("Application startup complete")
    yield

    # ─── Shutdown ───
    logger.info("Shutting down application...")
    purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await purge_task
    await close_db()
    logger.info("Database connections closed")


# ─────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────
app = FastAPI(
    title=settings.app_name,
    description="GitHub login and session token service",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,  # Hide docs in prod
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
    default_response_class=JSONResponse,
)

app.add_exception_handler(AuthError, auth_error_handler)

# ─────────────────────────────────────────────────────────────
# Security Middleware
# ─────────────────────────────────────────────────────────────
app.add_middleware(BaseHTTPMiddleware, dispatch=catch_exceptions_middleware)

# Trusted hosts (prevent DNS rebinding, host header attacks)
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts_list,
)

# CORS — the allowed redirect origins are the only browser origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_redirects_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Accept", "Content-Type"],
    max_age=86400,
)

# ─────────────────────────────────────────────────────────────
# API Router
# ─────────────────────────────────────────────────────────────
app.include_router(api_router, prefix="/api/v1")


# ─────────────────────────────────────────────────────────────
# Run with Uvicorn (only when running directly)
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )
