"""Query cache: key derivation, lazy expiry, hit counting, upsert reset, stats, failure degradation."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, func, select

from apps.ai_query.db import ensure_tables
from apps.ai_query.models.query_cache import AIQueryCache
from apps.ai_query.services.query_cache import (
    KEY_SEPARATOR,
    CachedQuery,
    InMemoryCacheStore,
    QueryCache,
    SqlCacheStore,
    hash_question,
    normalize_question,
)
from apps.ai_query.tests.fakes import FakeClock, make_session_factory

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def cache(request, session_factory):
    clock = FakeClock(T0)
    store = InMemoryCacheStore() if request.param == "memory" else SqlCacheStore(session_factory=session_factory)
    return QueryCache(store=store, ttl_seconds=300, clock=clock)


def test_normalize_question() -> None:
    assert normalize_question("  How   many\tTOOLS\n today? ") == "how many tools today?"
    assert normalize_question("") == ""


def test_hash_is_hex_sha256_and_normalization_insensitive() -> None:
    h = hash_question("How many tools were replaced today?")
    assert len(h) == 64
    assert all(c in "0123456789abcdef" for c in h)
    assert h == hash_question("  how MANY tools   were replaced today?  ")


def test_hash_separates_factories() -> None:
    q = "How many tools were replaced today?"
    assert hash_question(q, "factory-1") != hash_question(q, "factory-2")
    assert hash_question(q, "factory-1") != hash_question(q)


def test_separator_cannot_survive_normalization() -> None:
    assert KEY_SEPARATOR not in normalize_question(f"a{KEY_SEPARATOR}b")
    with pytest.raises(ValueError):
        hash_question("question", f"f{KEY_SEPARATOR}1")


def test_put_then_get_counts_hits(cache) -> None:
    assert cache.put("How many tools?", "Three.", "SELECT 1", [{"n": 3}], "f1") is True

    first = cache.get("how many tools?", "f1")
    second = cache.get("How many  tools?", "f1")
    assert first is not None and second is not None
    assert first.answer == "Three."
    assert first.result_data == [{"n": 3}]
    assert first.hit_count == 1
    assert second.hit_count == 2


def test_get_is_scoped_by_factory(cache) -> None:
    cache.put("How many tools?", "Three.", "SELECT 1", [], "f1")
    assert cache.get("How many tools?", "f2") is None
    assert cache.get("How many tools?") is None


def test_entry_expires_lazily_at_ttl(cache) -> None:
    cache.put("q one", "a", "SELECT 1", [])
    cache._clock.advance(timedelta(seconds=299))
    assert cache.get("q one") is not None
    cache._clock.advance(timedelta(seconds=1))
    assert cache.get("q one") is None
    # Still stored until swept
    assert cache.stats().total_entries == 1


def test_put_replaces_and_resets_hit_count(cache) -> None:
    cache.put("q one", "old", "SELECT 1", [])
    cache.get("q one")
    cache.get("q one")
    cache.put("q one", "new", "SELECT 2", [])
    entry = cache.get("q one")
    assert entry.answer == "new"
    assert entry.sql_query == "SELECT 2"
    assert entry.hit_count == 1


def _entry(answer: str, hit_count: int = 0) -> CachedQuery:
    return CachedQuery(
        query_hash=hash_question("How many tools?", "f1"),
        question="How many tools?",
        answer=answer,
        sql_query="SELECT 1",
        result_data=[{"n": 1}],
        created_at=T0,
        expires_at=T0 + timedelta(seconds=300),
        hit_count=hit_count,
        factory_id="f1",
    )


def test_sql_upsert_from_two_stores_keeps_last_write(session_factory) -> None:
    SqlCacheStore(session_factory=session_factory).upsert(_entry("first", hit_count=4))
    SqlCacheStore(session_factory=session_factory).upsert(_entry("second"))

    with session_factory() as session:
        rows = session.scalars(select(AIQueryCache)).all()
        assert len(rows) == 1
        assert rows[0].answer == "second"
        assert rows[0].hit_count == 0


def test_sql_upsert_concurrent_first_writes(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'cache.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    ensure_tables(bind=engine)
    session_factory = make_session_factory(engine)
    writers = 8
    barrier = threading.Barrier(writers)
    errors = []

    def write(i: int) -> None:
        store = SqlCacheStore(session_factory=session_factory)
        barrier.wait()
        try:
            store.upsert(_entry(f"answer-{i}"))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=write, args=(i,)) for i in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    try:
        assert errors == []
        with session_factory() as session:
            assert session.scalar(select(func.count()).select_from(AIQueryCache)) == 1
    finally:
        engine.dispose()


def test_invalidate_and_clear(cache) -> None:
    cache.put("q one", "a", "SELECT 1", [])
    cache.put("q two", "b", "SELECT 2", [])
    assert cache.invalidate("q one") is True
    assert cache.get("q one") is None
    assert cache.get("q two") is not None
    assert cache.clear_all() is True
    assert cache.stats().total_entries == 0


def test_clear_expired_and_stats(cache) -> None:
    cache.put("old", "a", "SELECT 1", [])
    cache._clock.advance(timedelta(seconds=200))
    cache.put("fresh", "b", "SELECT 2", [])
    cache.get("fresh")
    cache.get("fresh")
    cache.get("fresh")
    cache._clock.advance(timedelta(seconds=150))

    stats = cache.stats()
    assert stats.total_entries == 2
    assert stats.total_hits == 3
    assert stats.avg_hit_count == 1.5
    assert stats.expired_entries == 1

    assert cache.clear_expired() == 1
    stats = cache.stats()
    assert stats.total_entries == 1
    assert stats.expired_entries == 0


def test_stats_empty(cache) -> None:
    stats = cache.stats()
    assert (stats.total_entries, stats.total_hits, stats.avg_hit_count, stats.expired_entries) == (0, 0, 0.0, 0)


def test_store_failures_degrade() -> None:
    store = MagicMock()
    for name in ("fetch_and_touch", "upsert", "delete", "delete_expired", "delete_all", "scan"):
        getattr(store, name).side_effect = RuntimeError("store down")
    cache = QueryCache(store=store, ttl_seconds=300)

    assert cache.get("q") is None
    assert cache.put("q", "a", "SELECT 1", []) is False
    assert cache.invalidate("q") is False
    assert cache.clear_expired() == 0
    assert cache.clear_all() is False
    assert cache.stats().total_entries == 0
