"""Pytest fixtures for AI query tests. SQLite in-memory (StaticPool) stands in for Postgres."""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Deterministic LLM provider in tests (no network)
os.environ.setdefault("ENV", "test")

from apps.ai_query.db import ensure_tables
from apps.ai_query.services import llm_provider, query_cache, rate_limit
from apps.ai_query.tests.fakes import make_session_factory

# Mirror: use shared marker from tests.conftest (single source of truth)
from tests.conftest import requires_db  # noqa: F401


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Each test gets fresh limiters, cache and provider."""
    monkeypatch.setattr(rate_limit, "_limiters", {})
    monkeypatch.setattr(query_cache, "_cache", None)
    monkeypatch.setattr(llm_provider, "_provider", None)


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return make_session_factory(sqlite_engine)
