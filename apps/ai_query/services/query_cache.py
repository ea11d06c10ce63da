"""Content-addressed cache of answered questions. Keyed by SHA-256 of normalized question + factory.

Caching is an optimization only: store errors are logged and degrade to a miss or a failed write.
"""

import logging
import re
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol, runtime_checkable

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from apps.ai_query.config import config
from apps.ai_query.models.query_cache import AIQueryCache
from apps.ai_query.utils.hashing import sha256_hex

logger = logging.getLogger(__name__)

# Whitespace, so normalize_question collapses it away; never present in a normalized question.
KEY_SEPARATOR = "\x1f"


@dataclass(frozen=True)
class CachedQuery:
    """A cached answer. Logically absent once now >= expires_at."""

    query_hash: str
    question: str
    answer: str
    sql_query: str
    result_data: Any
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0
    factory_id: str | None = None


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    total_hits: int
    avg_hit_count: float
    expired_entries: int


def _utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_question(question: str) -> str:
    """Trim, lowercase, collapse whitespace."""
    if not question:
        return ""
    return " ".join(re.split(r"\s+", question.strip().lower())).strip()


def hash_question(question: str, factory_id: str | None = None) -> str:
    """Hex SHA-256 of the normalized question, joined with factory_id when present."""
    normalized = normalize_question(question)
    if factory_id:
        if KEY_SEPARATOR in factory_id:
            raise ValueError("factory_id contains a reserved character")
        return sha256_hex(f"{normalized}{KEY_SEPARATOR}{factory_id}")
    return sha256_hex(normalized)


@runtime_checkable
class CacheStore(Protocol):
    """Table-like store of CachedQuery rows keyed by query_hash."""

    def fetch_and_touch(self, query_hash: str, now: datetime) -> CachedQuery | None:
        """Return the live row (expires_at > now) after incrementing hit_count; None otherwise."""
        ...

    def upsert(self, entry: CachedQuery) -> None:
        ...

    def delete(self, query_hash: str) -> None:
        ...

    def delete_expired(self, now: datetime) -> int:
        ...

    def delete_all(self) -> None:
        ...

    def scan(self) -> list[tuple[int, datetime]]:
        """(hit_count, expires_at) for every row, expired or not."""
        ...


class InMemoryCacheStore:
    """Lock-guarded dict store for single-process deployments and tests."""

    def __init__(self) -> None:
        self._rows: dict[str, CachedQuery] = {}
        self._lock = threading.Lock()

    def fetch_and_touch(self, query_hash: str, now: datetime) -> CachedQuery | None:
        with self._lock:
            row = self._rows.get(query_hash)
            if row is None or row.expires_at <= now:
                return None
            row = replace(row, hit_count=row.hit_count + 1)
            self._rows[query_hash] = row
            return row

    def upsert(self, entry: CachedQuery) -> None:
        with self._lock:
            self._rows[entry.query_hash] = entry

    def delete(self, query_hash: str) -> None:
        with self._lock:
            self._rows.pop(query_hash, None)

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [h for h, row in self._rows.items() if row.expires_at <= now]
            for h in expired:
                del self._rows[h]
            return len(expired)

    def delete_all(self) -> None:
        with self._lock:
            self._rows.clear()

    def scan(self) -> list[tuple[int, datetime]]:
        with self._lock:
            return [(row.hit_count, row.expires_at) for row in self._rows.values()]


class SqlCacheStore:
    """ai_query_cache table via SQLAlchemy. hit_count is incremented in SQL, not read-modify-write."""

    def __init__(self, session_factory: Callable[[], Any] | None = None) -> None:
        if session_factory is None:
            from apps.ai_query.db import get_db

            session_factory = get_db
        self._session_factory = session_factory

    @staticmethod
    def _to_entry(row: AIQueryCache) -> CachedQuery:
        return CachedQuery(
            query_hash=row.query_hash,
            question=row.question,
            answer=row.answer,
            sql_query=row.sql_query,
            result_data=row.result_data,
            created_at=_utc(row.created_at),
            expires_at=_utc(row.expires_at),
            hit_count=row.hit_count,
            factory_id=row.factory_id,
        )

    def fetch_and_touch(self, query_hash: str, now: datetime) -> CachedQuery | None:
        with self._session_factory() as session:
            result = session.execute(
                update(AIQueryCache)
                .where(AIQueryCache.query_hash == query_hash)
                .where(AIQueryCache.expires_at > now)
                .values(hit_count=AIQueryCache.hit_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            row = session.scalars(select(AIQueryCache).where(AIQueryCache.query_hash == query_hash)).first()
            return self._to_entry(row) if row is not None else None

    def upsert(self, entry: CachedQuery) -> None:
        """Single INSERT .. ON CONFLICT (query_hash) DO UPDATE; concurrent first writes for one key both succeed."""
        values = {
            "query_hash": entry.query_hash,
            "factory_id": entry.factory_id,
            "question": entry.question,
            "answer": entry.answer,
            "sql_query": entry.sql_query,
            "result_data": entry.result_data,
            "created_at": entry.created_at,
            "expires_at": entry.expires_at,
            "hit_count": entry.hit_count,
        }
        with self._session_factory() as session:
            dialect_name = session.get_bind().dialect.name
            insert = pg_insert if dialect_name == "postgresql" else sqlite_insert
            stmt = insert(AIQueryCache).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["query_hash"],
                set_={col: getattr(stmt.excluded, col) for col in values if col != "query_hash"},
            )
            session.execute(stmt)

    def delete(self, query_hash: str) -> None:
        with self._session_factory() as session:
            session.execute(
                delete(AIQueryCache)
                .where(AIQueryCache.query_hash == query_hash)
                .execution_options(synchronize_session=False)
            )

    def delete_expired(self, now: datetime) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(AIQueryCache)
                .where(AIQueryCache.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def delete_all(self) -> None:
        with self._session_factory() as session:
            session.execute(delete(AIQueryCache))

    def scan(self) -> list[tuple[int, datetime]]:
        with self._session_factory() as session:
            rows = session.execute(select(AIQueryCache.hit_count, AIQueryCache.expires_at)).all()
            return [(hits or 0, _utc(expires_at)) for hits, expires_at in rows]


class QueryCache:
    """Question-level cache facade. Never raises on store errors."""

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store if store is not None else SqlCacheStore()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_SECONDS
        self._clock = clock

    def get(self, question: str, factory_id: str | None = None) -> CachedQuery | None:
        """Return the live entry and count a hit; None if missing, expired, or on store error."""
        try:
            return self.store.fetch_and_touch(hash_question(question, factory_id), self._clock())
        except Exception as e:
            logger.warning("Cache lookup failed: %s", e)
            return None

    def put(
        self,
        question: str,
        answer: str,
        sql_query: str,
        result_data: Any,
        factory_id: str | None = None,
    ) -> bool:
        """Upsert with expires_at = now + ttl and hit_count reset to 0. False on store error."""
        try:
            now = self._clock()
            self.store.upsert(
                CachedQuery(
                    query_hash=hash_question(question, factory_id),
                    question=question.strip(),
                    answer=answer,
                    sql_query=sql_query,
                    result_data=result_data,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.ttl_seconds),
                    hit_count=0,
                    factory_id=factory_id,
                )
            )
            return True
        except Exception as e:
            logger.warning("Cache write failed: %s", e)
            return False

    def invalidate(self, question: str, factory_id: str | None = None) -> bool:
        try:
            self.store.delete(hash_question(question, factory_id))
            return True
        except Exception as e:
            logger.warning("Cache invalidation failed: %s", e)
            return False

    def clear_expired(self) -> int:
        """Delete rows past expiry. Returns count removed (0 on store error)."""
        try:
            return self.store.delete_expired(self._clock())
        except Exception as e:
            logger.warning("Expired cache sweep failed: %s", e)
            return 0

    def clear_all(self) -> bool:
        try:
            self.store.delete_all()
            return True
        except Exception as e:
            logger.warning("Cache clear failed: %s", e)
            return False

    def stats(self) -> CacheStats:
        """Scan all rows. avg_hit_count rounded to one decimal. Zeros on store error."""
        try:
            rows = self.store.scan()
        except Exception as e:
            logger.warning("Cache stats failed: %s", e)
            return CacheStats(0, 0, 0.0, 0)

        now = self._clock()
        total_hits = sum(hits for hits, _ in rows)
        expired = sum(1 for _, expires_at in rows if expires_at <= now)
        avg = round(total_hits / len(rows), 1) if rows else 0.0
        return CacheStats(
            total_entries=len(rows),
            total_hits=total_hits,
            avg_hit_count=avg,
            expired_entries=expired,
        )


_cache: QueryCache | None = None


def get_query_cache(*, force_refresh: bool = False) -> QueryCache:
    """Return the process-wide QueryCache (SQL-backed). Lazy-initialized."""
    global _cache
    if force_refresh:
        _cache = None
    if _cache is None:
        _cache = QueryCache()
    return _cache
