"""Response schemas for AI endpoints. Contract-frozen: extra fields forbidden."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Body of every failed request."""

    model_config = ConfigDict(extra="forbid")

    error: str
    code: str
    details: Any = None
    reset_at: str | None = Field(None, description="ISO-8601; RATE_LIMITED only")


class QueryResponse(BaseModel):
    """Response for POST /ai/query."""

    model_config = ConfigDict(extra="forbid")

    answer: str
    sql: str
    data: Any
    cached: bool
    safety_score: int
    response_time_ms: int
    question: str


class RateLimitInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_requests: int
    window_ms: int


class QueryServiceInfo(BaseModel):
    """Response for GET /ai/query."""

    model_config = ConfigDict(extra="forbid")

    service: str
    version: str
    status: str
    rate_limit: RateLimitInfo


class ValidateQuestionResponse(BaseModel):
    """Dry-run outcome. sql is present whenever SQL was generated."""

    model_config = ConfigDict(extra="forbid")

    is_valid: bool
    reason: str | None = None
    sql: str | None = None


class ChatResponse(BaseModel):
    """Response for POST /ai/chat."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    reply: str
    response_time_ms: int


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    message_type: Literal["user", "ai"]
    content: str
    response_time_ms: int
    created_at: datetime | None = None


class ChatHistoryResponse(BaseModel):
    """Response for GET /ai/chat."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)


class CacheStatsResponse(BaseModel):
    """Response for GET /ai/cache/stats."""

    model_config = ConfigDict(extra="forbid")

    total_entries: int
    total_hits: int
    avg_hit_count: float
    expired_entries: int


class ClearExpiredResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    removed: int


class CacheActionResponse(BaseModel):
    """Outcome of clear-all / invalidate. ok is False when the store failed."""

    model_config = ConfigDict(extra="forbid")

    ok: bool
