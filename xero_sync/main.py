from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from xero_sync.core.config import settings
from xero_sync.core.errors import (
    SyncError,
    global_exception_handler,
    http_exception_handler,
    sync_error_handler,
)

import xero_sync.models  # noqa: F401  register all models at startup

from xero_sync.modules.failed_syncs.router import router as failed_syncs_router
from xero_sync.modules.items_sync.router import router as items_router
from xero_sync.modules.settings.router import router as settings_router
from xero_sync.modules.sync_logs.router import router as sync_logs_router
from xero_sync.modules.webhook.router import router as webhook_router
from xero_sync.core.sentry import init_sentry

# ── Sentry: must be initialised BEFORE FastAPI app is created ────────────────────────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting Xero sync API", env=settings.APP_ENV)
    yield
    logger.info("Shutting down Xero sync API")

    from xero_sync.core.database import engine

    await engine.dispose()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Copilot Xero Sync API",
    description="Syncs Copilot invoices, payments, customers and products into Xero.",
    version="0.1.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)

app.add_exception_handler(SyncError, sync_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, global_exception_handler)


# ── X-API-Version response header ────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Health check (root-level, not under /v1) ─────────────────────────────────


@app.get("/health")
async def health_check() -> dict:
    """Probes PostgreSQL."""
    checks: dict[str, dict] = {}

    try:
        from sqlalchemy import text
        from xero_sync.core.database import async_session_factory
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["postgresql"] = {"status": "healthy"}
    except Exception as exc:
        checks["postgresql"] = {"status": "unhealthy", "error": str(exc)}

    overall = (
        "healthy"
        if all(c["status"] == "healthy" for c in checks.values())
        else "degraded"
    )
    return {"status": overall, "service": "xero-sync-api", "checks": checks}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(webhook_router)
api_v1.include_router(failed_syncs_router)
api_v1.include_router(sync_logs_router)
api_v1.include_router(settings_router)
api_v1.include_router(items_router)

app.include_router(api_v1)
