"""SQLAlchemy models for the AI query service."""

from apps.ai_query.models.base import Base
from apps.ai_query.models.chat_history import AIChatHistory
from apps.ai_query.models.query_cache import AIQueryCache

__all__ = [
    "AIChatHistory",
    "AIQueryCache",
    "Base",
]
