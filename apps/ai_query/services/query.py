"""Natural-language query orchestrator.

Strictly sequential per call: rate limit -> cache -> LLM (SQL) -> validate -> execute -> LLM (answer) -> cache write.
Validation rejects before execution; nothing is cached unless the whole pipeline succeeded.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from apps.ai_query.config import config
from apps.ai_query.services.datastore import DataStoreError, run_select
from apps.ai_query.services.llm_provider import LLMError, LLMProvider, extract_sql, get_llm_provider
from apps.ai_query.services.query_cache import QueryCache, get_query_cache
from apps.ai_query.services.rate_limit import RateLimiter, RateLimitResult, get_rate_limiter
from apps.ai_query.services.schema_context import get_schema_context
from apps.ai_query.services.sql_validator import (
    SQLValidationError,
    execute_safe,
    safety_score,
    sanitize_sql,
    validate_sql,
)

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 3
MAX_QUESTION_LENGTH = 500

STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "RATE_LIMITED": 429,
    "STORE_ERROR": 502,
    "SERVICE_UNAVAILABLE": 503,
}


class QueryError(Exception):
    """Failure of one orchestrated query. code is stable for programmatic handling."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Any = None,
        rate_limit: RateLimitResult | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.rate_limit = rate_limit

    @property
    def status_code(self) -> int:
        """Validator and data-not-found codes are client errors (400)."""
        return STATUS_BY_CODE.get(self.code, 400)


@dataclass
class QueryResult:
    answer: str
    sql: str
    data: Any
    cached: bool
    safety_score: int
    response_time_ms: int
    question: str
    rate_limit: RateLimitResult | None = None


def check_question(question: Any) -> str:
    """Return the stripped question; VALIDATION_ERROR unless 3-500 characters of text."""
    if not isinstance(question, str) or len(question.strip()) < MIN_QUESTION_LENGTH:
        raise QueryError(
            "VALIDATION_ERROR",
            f"Question is too short. Enter at least {MIN_QUESTION_LENGTH} characters.",
        )
    if len(question) > MAX_QUESTION_LENGTH:
        raise QueryError(
            "VALIDATION_ERROR",
            f"Question is too long. At most {MAX_QUESTION_LENGTH} characters are allowed.",
        )
    return question.strip()


def _history_for_prompt(history: list[dict[str, Any]] | None) -> list[dict[str, str]]:
    return [
        {"role": "user" if h.get("role") == "user" else "assistant", "content": str(h.get("content", ""))}
        for h in (history or [])
    ]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def enforce_rate_limit(user_id: str, limiter: RateLimiter | None = None) -> RateLimitResult:
    """Count one model-backed request against user_id's window. Raises RATE_LIMITED when exhausted."""
    limiter = limiter if limiter is not None else get_rate_limiter("query")
    rate = limiter.check(user_id)
    if not rate.allowed:
        raise QueryError(
            "RATE_LIMITED",
            "Request limit exceeded. Please try again later.",
            rate_limit=rate,
        )
    return rate


def execute_natural_language_query(
    question: str,
    user_id: str,
    factory_id: str | None = None,
    history: list[dict[str, Any]] | None = None,
    *,
    provider: LLMProvider | None = None,
    cache: QueryCache | None = None,
    limiter: RateLimiter | None = None,
    executor: Callable[[str], list[dict[str, Any]]] | None = None,
    min_safety_score: int | None = None,
) -> QueryResult:
    """
    Answer one natural-language question for an authenticated user.

    user_id must come from the identity provider (it keys the rate limit).
    factory_id scopes the cache entry. Raises QueryError on any failure.
    """
    start = time.monotonic()
    question = check_question(question)
    cache = cache if cache is not None else get_query_cache()
    executor = executor if executor is not None else run_select
    min_score = min_safety_score if min_safety_score is not None else config.MIN_SAFETY_SCORE

    rate = enforce_rate_limit(user_id, limiter)

    cached = cache.get(question, factory_id)
    if cached is not None:
        logger.info("AI query cache hit user_id=%s hits=%s", user_id, cached.hit_count)
        return QueryResult(
            answer=cached.answer,
            sql=cached.sql_query,
            data=cached.result_data,
            cached=True,
            safety_score=safety_score(cached.sql_query),
            response_time_ms=_elapsed_ms(start),
            question=question,
            rate_limit=rate,
        )

    try:
        provider = provider if provider is not None else get_llm_provider()
        raw = provider.generate_sql(question, get_schema_context(), _history_for_prompt(history))
    except LLMError as e:
        logger.error("SQL generation failed: %s", e)
        raise QueryError("SERVICE_UNAVAILABLE", "The AI service is temporarily unavailable.") from e

    sql = sanitize_sql(extract_sql(raw))
    logger.info("AI query generated SQL user_id=%s sql=%s", user_id, sql[:500])

    try:
        rows = execute_safe(sql, executor, min_safety_score=min_score)
    except SQLValidationError as e:
        logger.warning("AI query rejected code=%s user_id=%s sql=%s", e.code, user_id, sql[:500])
        raise QueryError(e.code, e.message, e.details) from e
    except DataStoreError as e:
        logger.error("AI query execution failed sqlstate=%s: %s", e.sqlstate, e)
        raise QueryError("STORE_ERROR", "An error occurred while running the query.") from e

    try:
        answer = provider.explain_result(question, rows)
    except LLMError as e:
        logger.error("Result explanation failed: %s", e)
        raise QueryError("SERVICE_UNAVAILABLE", "The AI service is temporarily unavailable.") from e

    cache.put(question, answer, sql, rows, factory_id)

    return QueryResult(
        answer=answer,
        sql=sql,
        data=rows,
        cached=False,
        safety_score=safety_score(sql),
        response_time_ms=_elapsed_ms(start),
        question=question,
        rate_limit=rate,
    )


def validate_question(question: str, provider: LLMProvider | None = None) -> dict[str, Any]:
    """Dry run: generate and validate SQL without executing it. Returns {is_valid, reason?, sql?}."""
    if not isinstance(question, str) or len(question.strip()) < MIN_QUESTION_LENGTH:
        return {"is_valid": False, "reason": "Question is too short."}

    try:
        provider = provider if provider is not None else get_llm_provider()
        raw = provider.generate_sql(question.strip(), get_schema_context(), [])
    except LLMError:
        logger.exception("SQL generation failed during validation")
        return {"is_valid": False, "reason": "The AI service is temporarily unavailable."}

    sql = sanitize_sql(extract_sql(raw))
    try:
        validate_sql(sql)
    except SQLValidationError as e:
        return {"is_valid": False, "reason": e.message, "sql": sql}

    score = safety_score(sql)
    if score < config.MIN_SAFETY_SCORE:
        return {"is_valid": False, "reason": f"Safety score is too low: {score}/100", "sql": sql}
    return {"is_valid": True, "sql": sql}


def execute_batch_queries(
    questions: list[str],
    user_id: str,
    factory_id: str | None = None,
    **kwargs: Any,
) -> list[QueryResult]:
    """Run questions one after another in input order. The first failure propagates."""
    return [execute_natural_language_query(q, user_id, factory_id, **kwargs) for q in questions]
