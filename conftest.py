"""Root conftest: env applies to ALL test paths (tests/, apps/ai_query/tests/)."""

import os

# Deterministic LLM provider, no network
os.environ.setdefault("ENV", "test")
os.environ.setdefault("PYTEST_RUNNING", "1")
