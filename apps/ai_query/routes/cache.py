"""Cache administration endpoints. Admin or system_admin only."""

from dataclasses import asdict

from fastapi import APIRouter

from apps.ai_query.schemas.requests import CacheInvalidateRequest
from apps.ai_query.schemas.responses import CacheActionResponse, CacheStatsResponse, ClearExpiredResponse
from apps.ai_query.services.caller_context import Admin
from apps.ai_query.services.query_cache import get_query_cache

router = APIRouter()


@router.get("/stats", response_model=CacheStatsResponse)
def stats(caller: Admin) -> CacheStatsResponse:
    return CacheStatsResponse(**asdict(get_query_cache().stats()))


@router.post("/clear-expired", response_model=ClearExpiredResponse)
def clear_expired(caller: Admin) -> ClearExpiredResponse:
    """Sweep rows past expiry. Lazy expiry already hides them from lookups."""
    return ClearExpiredResponse(removed=get_query_cache().clear_expired())


@router.delete("", response_model=CacheActionResponse)
def clear_all(caller: Admin) -> CacheActionResponse:
    return CacheActionResponse(ok=get_query_cache().clear_all())


@router.post("/invalidate", response_model=CacheActionResponse)
def invalidate(body: CacheInvalidateRequest, caller: Admin) -> CacheActionResponse:
    """Drop the cached answer for a question in the caller's factory."""
    return CacheActionResponse(ok=get_query_cache().invalidate(body.question, caller.factory_id))
