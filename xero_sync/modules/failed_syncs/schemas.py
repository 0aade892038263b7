"""Retry trigger response schemas."""

from pydantic import BaseModel


class RetrySummary(BaseModel):
    retried: int
    succeeded: int


class RetryFailedSyncsResponse(BaseModel):
    message: str
    data: RetrySummary
