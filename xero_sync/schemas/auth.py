"""Caller identity resolved from the Copilot workspace token."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TokenPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    workspace_id: str
    internal_user_id: str | None = None
    client_id: str | None = None
    company_id: str | None = None


class WorkspaceUser(BaseModel):
    """Lightweight caller context: which portal, and the raw token it came with."""

    portal_id: str
    token: str
    internal_user_id: str | None = None
