"""Pytest fixtures for root-level tests (migrations, cron jobs)."""

import os

import pytest

# Ensure ENV=test (root conftest also does this; redundant but safe for tests/ only runs)
os.environ.setdefault("ENV", "test")

from tests._db_bootstrap import postgres_reachable


def _db_available_for_tests() -> bool:
    """True if DATABASE_TEST_URL is set and Postgres is reachable (short timeout)."""
    url = os.environ.get("DATABASE_TEST_URL")
    if not url:
        return False
    return postgres_reachable(url)


# Marker for DB tests: skip if DATABASE_TEST_URL not set or Postgres not reachable
requires_db = pytest.mark.skipif(
    not _db_available_for_tests(),
    reason="DATABASE_TEST_URL not set or Postgres not reachable",
)
