"""Conversational endpoints: POST /ai/chat, GET /ai/chat?session_id=."""

from uuid import UUID

from fastapi import APIRouter, Query, Response

from apps.ai_query.schemas.requests import ChatRequest
from apps.ai_query.schemas.responses import ChatHistoryResponse, ChatMessage, ChatResponse
from apps.ai_query.services.caller_context import AIUser
from apps.ai_query.services.chat import list_history, send_chat_message

router = APIRouter()


@router.post("", response_model=ChatResponse)
def chat(body: ChatRequest, caller: AIUser, response: Response) -> ChatResponse:
    """Reply to one message; the session's recent turns are sent as context."""
    result = send_chat_message(str(body.session_id), body.message, caller.user_id)
    if result.rate_limit is not None:
        response.headers.update(result.rate_limit.headers())
    return ChatResponse(session_id=result.session_id, reply=result.reply, response_time_ms=result.response_time_ms)


@router.get("", response_model=ChatHistoryResponse)
def history(caller: AIUser, session_id: UUID = Query(...)) -> ChatHistoryResponse:
    """The caller's turns in this session, oldest first."""
    sid = str(session_id)
    return ChatHistoryResponse(
        session_id=sid,
        messages=[ChatMessage(**m) for m in list_history(sid, caller.user_id)],
    )
