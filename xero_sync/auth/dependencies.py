"""FastAPI auth dependencies: workspace token and cron shared secret."""

import hmac

import structlog
from fastapi import Header, HTTPException, Query, status
from pydantic import ValidationError

from xero_sync.auth.tokens import InvalidTokenError, decode_workspace_token
from xero_sync.core.config import settings
from xero_sync.schemas.auth import TokenPayload, WorkspaceUser

logger = structlog.get_logger()


def authenticate_token(token: str) -> WorkspaceUser:
    """Decode a Copilot workspace token into the calling workspace user.

    Raises InvalidTokenError when the token cannot be decoded or names no
    workspace.
    """
    try:
        payload = TokenPayload.model_validate(
            decode_workspace_token(settings.COPILOT_API_KEY, token)
        )
    except ValidationError as exc:
        raise InvalidTokenError("Token payload has no workspaceId") from exc
    return WorkspaceUser(
        portal_id=payload.workspace_id,
        token=token,
        internal_user_id=payload.internal_user_id,
    )


async def get_workspace_user(token: str = Query(..., min_length=1)) -> WorkspaceUser:
    try:
        return authenticate_token(token)
    except InvalidTokenError as e:
        logger.warning("workspace_token_rejected", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from e


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    expected = f"Bearer {settings.CRON_SECRET}"
    if (
        not settings.CRON_SECRET
        or authorization is None
        or not hmac.compare_digest(authorization, expected)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
