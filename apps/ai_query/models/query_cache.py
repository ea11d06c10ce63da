"""ai_query_cache model. Content-addressed cache of answered questions."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from apps.ai_query.models.base import Base


class AIQueryCache(Base):
    """One live row per query_hash. Rows past expires_at are treated as absent."""

    __tablename__ = "ai_query_cache"
    __table_args__ = (
        Index("ix_ai_query_cache_expires_at", "expires_at"),
        Index("ix_ai_query_cache_factory_id", "factory_id"),
    )

    query_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    factory_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    sql_query: Mapped[str] = mapped_column(Text, nullable=False)
    result_data: Mapped[Any] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
