"""
Store Maintenance Jobs

- cleanup: janitor sweep deleting records not checked for N days
- refill: wipe the store and re-probe the popular listings
- status: counts per kind and verdict, and the latest confirmed movies
"""

import logging
from typing import Any, Dict

from availarr.models.content import ContentKind
from availarr.services.content_store import ContentStore
from availarr.services.reconciliation import EvictionPolicy
from availarr.services.scheduler import run_in_chunks
from availarr.jobs.runtime import JobRuntime, JobStats

logger = logging.getLogger(__name__)


def cleanup_old_content(store: ContentStore, days: int) -> int:
    """
    Delete every record whose last check is older than ``days``.

    Returns:
        Number of records deleted
    """
    deleted = store.delete_older_than(days)
    logger.info(f"✓ Cleaned up {deleted} records not checked in {days} days")
    return deleted


async def refill(runtime: JobRuntime, max_pages: int = 10, concurrency: int = 10) -> Dict[ContentKind, JobStats]:
    """
    Delete every record, then rebuild from the popular listings.

    Pages 1..max_pages of movie/popular and tv/popular are reconciled;
    only positive verdicts are stored.
    """
    deleted = runtime.store.delete_many()
    logger.info(f"🗑 Deleted {deleted} records, refilling from popular listings")

    results = {}
    for kind in (ContentKind.MOVIE, ContentKind.SERIES):
        engine = runtime.engine(kind, eviction=EvictionPolicy.DELETE)
        endpoint = engine.strategy.popular_endpoint
        stats = JobStats()
        for page_number in range(1, max_pages + 1):
            page = await runtime.catalog.fetch_page(endpoint, page_number)
            if page.failed:
                continue
            for outcome in await run_in_chunks(page.items, concurrency, engine.reconcile):
                stats.record(outcome)
            logger.info(f"{endpoint} page {page_number}/{max_pages}: {stats.available} available so far")
        results[kind] = stats
        logger.info(f"✓ Refilled {endpoint}: {stats.summary()}")
    return results


def collect_status(store: ContentStore) -> Dict[str, Any]:
    """Store statistics, logged and returned."""
    stats = store.get_stats()
    logger.info(f"Total records: {stats['total']} (never checked: {stats['never_checked']})")
    for kind, counts in stats['by_kind'].items():
        logger.info(
            f"  {kind}: {counts['total']} total, {counts['available']} available, "
            f"{counts['unavailable']} unavailable"
        )
    if stats['recent_available_movies']:
        logger.info("Most recently confirmed movies:")
        for movie in stats['recent_available_movies']:
            logger.info(f"  - {movie['title']} (TMDB {movie['tmdb_id']}) checked {movie['last_checked']}")
    return stats
