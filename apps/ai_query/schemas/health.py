"""Liveness payload for the AI query service."""

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """ok is always True when the process answers; version is the deployed GIT_SHA ("dev" locally)."""

    model_config = ConfigDict(extra="forbid")

    ok: bool
    service: str
    version: str
    time: str
