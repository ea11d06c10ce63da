"""Natural-language query endpoints: POST /ai/query, GET /ai/query, POST /ai/query/validate.

Caller (user_id, factory_id) injected server-side from auth; never read from the body.
"""

from fastapi import APIRouter, Response

from apps.ai_query.schemas.requests import QueryRequest, ValidateQuestionRequest
from apps.ai_query.schemas.responses import (
    ErrorResponse,
    QueryResponse,
    QueryServiceInfo,
    RateLimitInfo,
    ValidateQuestionResponse,
)
from apps.ai_query.services.caller_context import AIUser
from apps.ai_query.services.query import enforce_rate_limit, execute_natural_language_query, validate_question
from apps.ai_query.services.rate_limit import get_rate_limiter

router = APIRouter()

SERVICE_VERSION = "1.0.0"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post("", response_model=QueryResponse, responses=ERROR_RESPONSES)
def query(body: QueryRequest, caller: AIUser, response: Response) -> QueryResponse:
    """Answer a question with generated, validated, read-only SQL. Rate-limited per user."""
    result = execute_natural_language_query(
        body.question,
        caller.user_id,
        caller.factory_id,
        history=[item.model_dump() for item in body.chat_history],
    )
    if result.rate_limit is not None:
        response.headers.update(result.rate_limit.headers())
    return QueryResponse(
        answer=result.answer,
        sql=result.sql,
        data=result.data,
        cached=result.cached,
        safety_score=result.safety_score,
        response_time_ms=result.response_time_ms,
        question=result.question,
    )


@router.get("", response_model=QueryServiceInfo)
async def service_info(caller: AIUser) -> QueryServiceInfo:
    """Service name, version and rate-limit configuration."""
    limiter = get_rate_limiter("query")
    return QueryServiceInfo(
        service="AI Natural Language Query",
        version=SERVICE_VERSION,
        status="operational",
        rate_limit=RateLimitInfo(max_requests=limiter.max_requests, window_ms=limiter.window_ms),
    )


@router.post("/validate", response_model=ValidateQuestionResponse, responses=ERROR_RESPONSES)
def validate(body: ValidateQuestionRequest, caller: AIUser, response: Response) -> ValidateQuestionResponse:
    """Dry run: generate and validate SQL for the question without executing it.
    Calls the model, so it draws on the same per-user budget as POST /ai/query."""
    rate = enforce_rate_limit(caller.user_id)
    response.headers.update(rate.headers())
    return ValidateQuestionResponse(**validate_question(body.question))
