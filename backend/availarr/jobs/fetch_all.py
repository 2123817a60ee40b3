"""
Full Catalog Fetch

One-shot crawl of the whole discover listing for movies and then series.
Pages are fetched in groups (FETCH_ALL_PAGE_CHUNK pages concurrently) and
every item is reconciled with a short freshness window, so titles checked
within the last hour are not probed again. Only positive verdicts are
stored; a stale record that now fails is deleted.

There is no checkpoint: an interrupted crawl simply starts again and the
freshness window absorbs the repeated work.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.services.reconciliation import EvictionPolicy
from availarr.services.scheduler import chunked, run_in_chunks
from availarr.jobs.runtime import JobRuntime, JobStats

logger = logging.getLogger(__name__)


class FetchAllJob:
    """
    Crawl every discover page of every content kind.

    Attributes:
        runtime: Shared job collaborators
        concurrency: Items reconciled concurrently
        max_pages: Page cap per kind (TMDB stops at 500)
        page_chunk: Pages fetched concurrently
        dry_run: Probe and log only
    """

    def __init__(
        self,
        runtime: JobRuntime,
        concurrency: int = 5,
        max_pages: Optional[int] = None,
        page_chunk: Optional[int] = None,
        dry_run: bool = False
    ):
        self.runtime = runtime
        self.concurrency = concurrency
        self.max_pages = min(max_pages or Config.TMDB_MAX_PAGES, Config.TMDB_MAX_PAGES)
        self.page_chunk = page_chunk or Config.FETCH_ALL_PAGE_CHUNK
        self.dry_run = dry_run
        self.window = timedelta(hours=Config.FETCH_ALL_FRESHNESS_WINDOW_HOURS)

    async def run_kind(self, kind: ContentKind) -> JobStats:
        engine = self.runtime.engine(
            kind, eviction=EvictionPolicy.DELETE, dry_run=self.dry_run, freshness_window=self.window
        )
        catalog = self.runtime.catalog
        endpoint = engine.strategy.endpoint
        stats = JobStats()

        total_pages = min(await catalog.get_total_pages(endpoint), self.max_pages)
        logger.info(f"Fetching {total_pages} pages of {endpoint}")

        for page_numbers in chunked(list(range(1, total_pages + 1)), self.page_chunk):
            pages = await asyncio.gather(*(catalog.fetch_page(endpoint, n) for n in page_numbers))
            items: List[Dict] = [item for page in pages for item in page.items]
            failed = [page.page for page in pages if page.failed]
            if failed:
                logger.warning(f"⚠ Pages {failed} of {endpoint} failed to load")

            outcomes = await run_in_chunks(items, self.concurrency, engine.reconcile)
            for outcome in outcomes:
                stats.record(outcome)

            logger.info(
                f"Pages {page_numbers[0]}-{page_numbers[-1]} of {total_pages}: "
                f"{stats.available} available so far out of {stats.processed}"
            )

        logger.info(f"✓ {endpoint} done: {stats.summary()}")
        return stats

    async def run(self) -> Dict[ContentKind, JobStats]:
        results = {}
        for kind in (ContentKind.MOVIE, ContentKind.SERIES):
            results[kind] = await self.run_kind(kind)
        total = sum(stats.available for stats in results.values())
        logger.info(f"✓ Fetch-all complete: {total} available titles confirmed")
        return results
