"""Conversational AI: append-only history per (session_id, user_id).

Turns are written only after the model replied; a failed reply leaves no orphan user message.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import select

from apps.ai_query.models.chat_history import AIChatHistory
from apps.ai_query.services.llm_provider import LLMError, LLMProvider, get_llm_provider
from apps.ai_query.services.query import QueryError
from apps.ai_query.services.rate_limit import RateLimiter, RateLimitResult, get_rate_limiter

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
HISTORY_CONTEXT_TURNS = 10


@dataclass
class ChatReply:
    session_id: str
    reply: str
    response_time_ms: int
    rate_limit: RateLimitResult | None = None


def _session_factory(session_factory: Callable[[], Any] | None) -> Callable[[], Any]:
    if session_factory is not None:
        return session_factory
    from apps.ai_query.db import get_db

    return get_db


def _as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def load_recent_history(
    session_id: str,
    user_id: str,
    limit: int = HISTORY_CONTEXT_TURNS,
    session_factory: Callable[[], Any] | None = None,
) -> list[dict[str, str]]:
    """Last `limit` turns of the session, oldest first, as {"role", "content"} for the model."""
    with _session_factory(session_factory)() as session:
        rows = session.scalars(
            select(AIChatHistory)
            .where(AIChatHistory.session_id == session_id, AIChatHistory.user_id == user_id)
            .order_by(AIChatHistory.created_at.desc(), AIChatHistory.id.desc())
            .limit(limit)
        ).all()
        return [
            {"role": "user" if r.message_type == "user" else "assistant", "content": r.content}
            for r in reversed(rows)
        ]


def list_history(
    session_id: str,
    user_id: str,
    session_factory: Callable[[], Any] | None = None,
) -> list[dict[str, Any]]:
    """Every turn of the caller's session in creation order. Other users' turns are never returned."""
    with _session_factory(session_factory)() as session:
        rows = session.scalars(
            select(AIChatHistory)
            .where(AIChatHistory.session_id == session_id, AIChatHistory.user_id == user_id)
            .order_by(AIChatHistory.created_at.asc(), AIChatHistory.id.asc())
        ).all()
        return [
            {
                "id": r.id,
                "message_type": r.message_type,
                "content": r.content,
                "response_time_ms": r.response_time_ms,
                "created_at": _as_utc(r.created_at),
            }
            for r in rows
        ]


def send_chat_message(
    session_id: str,
    message: str,
    user_id: str,
    *,
    provider: LLMProvider | None = None,
    limiter: RateLimiter | None = None,
    session_factory: Callable[[], Any] | None = None,
) -> ChatReply:
    """Rate-limit, reply with prior turns as context, then persist the user turn and the AI turn."""
    start = time.monotonic()
    text = (message or "").strip()
    if not text:
        raise QueryError("VALIDATION_ERROR", "Message must not be empty.")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise QueryError(
            "VALIDATION_ERROR",
            f"Message is too long. At most {MAX_MESSAGE_LENGTH} characters are allowed.",
        )

    limiter = limiter if limiter is not None else get_rate_limiter("chat")
    rate = limiter.check(user_id)
    if not rate.allowed:
        raise QueryError("RATE_LIMITED", "Request limit exceeded. Please try again later.", rate_limit=rate)

    factory = _session_factory(session_factory)
    try:
        history = load_recent_history(session_id, user_id, session_factory=factory)
    except Exception as e:
        logger.exception("Loading chat history failed session_id=%s", session_id)
        raise QueryError("STORE_ERROR", "Chat history is unavailable.") from e

    try:
        provider = provider if provider is not None else get_llm_provider()
        reply = provider.chat(text, history)
    except LLMError as e:
        logger.error("Chat reply failed: %s", e)
        raise QueryError("SERVICE_UNAVAILABLE", "The AI service is temporarily unavailable.") from e

    elapsed = int((time.monotonic() - start) * 1000)
    try:
        with factory() as session:
            session.add(
                AIChatHistory(
                    user_id=user_id,
                    session_id=session_id,
                    message_type="user",
                    content=text,
                    response_time_ms=0,
                )
            )
            session.flush()
            session.add(
                AIChatHistory(
                    user_id=user_id,
                    session_id=session_id,
                    message_type="ai",
                    content=reply,
                    response_time_ms=elapsed,
                )
            )
    except Exception as e:
        logger.exception("Saving chat turn failed session_id=%s", session_id)
        raise QueryError("STORE_ERROR", "Chat history could not be saved.") from e

    return ChatReply(session_id=session_id, reply=reply, response_time_ms=elapsed, rate_limit=rate)
