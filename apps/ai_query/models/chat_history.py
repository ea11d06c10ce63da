"""ai_chat_history model. Append-only conversation log per session and user."""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from apps.ai_query.models.base import Base


class AIChatHistory(Base):
    """A single chat turn: message_type is 'user' or 'ai'."""

    __tablename__ = "ai_chat_history"
    __table_args__ = (
        Index("ix_ai_chat_history_session_user_created", "session_id", "user_id", "created_at"),
        CheckConstraint("message_type IN ('user', 'ai')", name="ck_ai_chat_history_message_type"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
