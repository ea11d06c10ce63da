#!/usr/bin/env python3
"""Cache sweep: delete expired ai_query_cache rows and log post-sweep stats.

Lookups already treat expired rows as absent; this only reclaims storage.
Exit 0 on success, 1 when the store failed or AI_CACHE_MAX_ENTRIES is exceeded.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from apps.ai_query.services.query_cache import QueryCache, SqlCacheStore
from cron.config import config
from cron.db import get_session
from cron.logging import get_logger

logger = get_logger("cache_sweep")


def sweep(cache: QueryCache | None = None) -> int:
    """Run one sweep. Returns the process exit code."""
    if cache is None:
        cache = QueryCache(store=SqlCacheStore(session_factory=get_session))

    logger.info("cache_sweep start")
    try:
        before = cache.store.scan()
    except Exception as e:
        logger.error("cache store unavailable: %s", e)
        return 1

    removed = cache.clear_expired()
    stats = cache.stats()
    logger.info(
        "cache_sweep done scanned=%s removed=%s entries=%s hits=%s avg_hits=%s",
        len(before),
        removed,
        stats.total_entries,
        stats.total_hits,
        stats.avg_hit_count,
    )

    if config.CACHE_MAX_ENTRIES and stats.total_entries > config.CACHE_MAX_ENTRIES:
        logger.warning("cache has %s entries, above AI_CACHE_MAX_ENTRIES=%s", stats.total_entries, config.CACHE_MAX_ENTRIES)
        return 1
    return 0


def main() -> int:
    return sweep()


if __name__ == "__main__":
    sys.exit(main())
