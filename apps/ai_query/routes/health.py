"""GET /health: unauthenticated liveness probe for load balancers. Does not touch the database or the model."""

import os
from datetime import datetime, timezone

from fastapi import APIRouter

from apps.ai_query.schemas.health import HealthResponse

router = APIRouter()

SERVICE_NAME = "ai-query"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Build version comes from GIT_SHA set at deploy time; blank or unset reports "dev"."""
    return HealthResponse(
        ok=True,
        service=SERVICE_NAME,
        version=os.getenv("GIT_SHA", "").strip() or "dev",
        time=datetime.now(timezone.utc).isoformat(),
    )
