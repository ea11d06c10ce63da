"""Request schemas for AI endpoints. user_id and factory_id are never accepted in payload."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatHistoryItem(BaseModel):
    """One prior turn supplied by the client as context for a follow-up question."""

    model_config = ConfigDict(extra="forbid")

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=4000)
    timestamp: datetime | None = None


class QueryRequest(BaseModel):
    """Request body for POST /ai/query."""

    model_config = ConfigDict(extra="forbid")

    question: str = Field(..., min_length=3, max_length=500, description="Natural-language question")
    chat_history: list[ChatHistoryItem] = Field(default_factory=list, max_length=20)


class ValidateQuestionRequest(BaseModel):
    """Request body for POST /ai/query/validate."""

    model_config = ConfigDict(extra="forbid")

    question: str = Field(..., max_length=500)


class ChatRequest(BaseModel):
    """Request body for POST /ai/chat."""

    model_config = ConfigDict(extra="forbid")

    session_id: UUID
    message: str = Field(..., min_length=1, max_length=1000)


class CacheInvalidateRequest(BaseModel):
    """Request body for POST /ai/cache/invalidate. Scoped to the caller's factory."""

    model_config = ConfigDict(extra="forbid")

    question: str = Field(..., min_length=1, max_length=500)
