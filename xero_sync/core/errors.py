"""Sync failure taxonomy and the JSON error envelope used by every endpoint."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from xero_sync.schemas.sync_logs import SyncLogPayload


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"

logger = structlog.get_logger()


# ── Sync failures ────────────────────────────────────────────────────────────


class SyncError(Exception):
    """A sync step failed.

    ``failed_sync_log`` carries the audit payload the dispatcher writes with
    status=failed before dead-lettering the event.
    """

    status_code: int = 500
    error_code: str = "sync_failed"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        failed_sync_log: SyncLogPayload | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.failed_sync_log = failed_sync_log
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class SyncSkipped(SyncError):
    """Benign skip (draft invoice, disabled flag). Acknowledged, never queued."""

    status_code = 200
    error_code = "sync_skipped"


class DependencyResolutionError(SyncError):
    """Copilot or Xero data required by the sync is missing or inconsistent."""

    error_code = "dependency_resolution_failed"


class NotConnectedError(SyncError):
    """The workspace has no active Xero tenant."""

    status_code = 401
    error_code = "xero_not_connected"


# ── HTTP handlers ────────────────────────────────────────────────────────────


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred.",
            "request_id": request_id,
        },
    )


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    """Render a typed sync failure. Details stay in the audit log, not the body."""
    request_id = request.headers.get("x-request-id", "unknown")

    if exc.status_code >= 500:
        logger.error(
            "sync_request_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            request_id=request_id,
        )
        sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message if exc.status_code < 500 else "Sync failed and was queued for retry.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "request_id": request_id,
        },
        headers=dict(exc.headers or {}),
    )
