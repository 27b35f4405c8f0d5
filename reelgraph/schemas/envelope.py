"""Error envelope returned by every failing API call."""

from datetime import datetime

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    api_version: str = "1.0"
    processing_time_ms: int
    timestamp: datetime


class ErrorLocation(BaseModel):
    field: str | None = None
    element_id: str | None = None
    job_id: str | None = None


class SuggestedAction(BaseModel):
    action: str
    endpoint: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str
    location: ErrorLocation | None = None
    retryable: bool = False
    suggested_fix: str | None = None  # Human-readable fix suggestion
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)


class ErrorEnvelope(BaseModel):
    request_id: str
    error: ErrorInfo
    meta: ResponseMeta
