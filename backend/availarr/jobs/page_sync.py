"""
Catalog Page Sync

Walks the TMDB discover listing for one content kind page by page and
reconciles every title, checkpointing after each chunk so an interrupted
run resumes at the exact item it stopped on.

Run Flow:
    1. Load the checkpoint (or honour --start-page)
    2. Resolve total_pages from page 1 (500 when TMDB omits it), capped at TMDB_MAX_PAGES;
       --max-pages only bounds this run and is never written to the checkpoint
    3. For each page from the checkpoint on: fetch it, skip the items already
       handled, reconcile the rest in chunks of --concurrency
    4. Save the checkpoint after every chunk and every page
    5. After the last page, reset the checkpoint so the next run starts a new pass

A page that fails to load is logged and skipped.
"""

import logging
from typing import Optional

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.schemas.checkpoints import PageCheckpoint
from availarr.services.catalog_client import CatalogClient
from availarr.services.checkpoint_store import CheckpointStore
from availarr.services.reconciliation import ReconciliationEngine
from availarr.services.scheduler import run_in_chunks
from availarr.jobs.runtime import JobStats

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_PAGES = 500


class PageSyncJob:
    """
    Resumable page-by-page sync of one catalog listing.

    Attributes:
        engine: Reconciliation engine for the content kind
        catalog: TMDB client
        checkpoints: Progress file store
        concurrency: Items reconciled concurrently per chunk
        pause: Seconds between chunks
        start_page: Explicit first page; overrides the checkpoint
        max_pages: Upper bound on pages for this run
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        catalog: CatalogClient,
        checkpoints: CheckpointStore[PageCheckpoint],
        concurrency: int = 10,
        pause: Optional[float] = None,
        start_page: Optional[int] = None,
        max_pages: Optional[int] = None,
        endpoint: Optional[str] = None
    ):
        self.engine = engine
        self.catalog = catalog
        self.checkpoints = checkpoints
        self.concurrency = concurrency
        self.pause = pause if pause is not None else engine.prober.attempt_delay * concurrency
        self.start_page = start_page
        self.max_pages = max_pages
        self.endpoint = endpoint or engine.strategy.endpoint
        self.stats = JobStats()

    @property
    def kind(self) -> ContentKind:
        return self.engine.kind

    def _save(self, checkpoint: PageCheckpoint) -> None:
        if self.engine.dry_run:
            return
        self.checkpoints.save(checkpoint)

    async def _resolve_total_pages(self, checkpoint: PageCheckpoint) -> int:
        """Catalog page count as stored in the checkpoint; max_pages is applied by run()."""
        total = checkpoint.total_pages
        if not total:
            total = await self.catalog.get_total_pages(self.endpoint, default=DEFAULT_TOTAL_PAGES)
        return min(total, Config.TMDB_MAX_PAGES)

    async def run(self) -> JobStats:
        """Run the sync and return its statistics."""
        checkpoint = self.checkpoints.load()
        if self.start_page:
            logger.info(f"Starting {self.kind.value} sync at page {self.start_page} (checkpoint reset)")
            checkpoint = PageCheckpoint(last_page=self.start_page, last_index_within_page=0)

        checkpoint.total_pages = await self._resolve_total_pages(checkpoint)
        self._save(checkpoint)

        first_page = checkpoint.last_page
        last_page = checkpoint.total_pages
        if self.max_pages:
            last_page = min(last_page, self.max_pages)
        logger.info(
            f"Syncing {self.endpoint}: pages {first_page}..{last_page} of {checkpoint.total_pages}, "
            f"resuming at item {checkpoint.last_index_within_page}, concurrency={self.concurrency}"
        )

        for page_number in range(first_page, last_page + 1):
            page = await self.catalog.fetch_page(self.endpoint, page_number)
            if page.failed:
                logger.warning(f"⚠ Skipping page {page_number}/{last_page}: fetch failed")
            else:
                start = checkpoint.last_index_within_page if page_number == checkpoint.last_page else 0
                items = page.items[start:]
                logger.info(
                    f"Page {page_number}/{last_page}: {len(items)} items"
                    + (f" (skipping {start} already processed)" if start else "")
                )
                await self._process_page(page_number, start, items, checkpoint)

            checkpoint.last_page = page_number + 1
            checkpoint.last_index_within_page = 0
            self._save(checkpoint)

        logger.info(f"✓ {self.endpoint} pass complete: {self.stats.summary()}")
        if not self.engine.dry_run:
            self.checkpoints.save(PageCheckpoint())
        return self.stats

    async def _process_page(self, page_number: int, start: int, items, checkpoint: PageCheckpoint) -> None:
        def on_chunk_done(_index: int, done: int) -> None:
            checkpoint.last_page = page_number
            checkpoint.last_index_within_page = start + done
            self._save(checkpoint)

        outcomes = await run_in_chunks(
            items,
            self.concurrency,
            self.engine.reconcile,
            pause=self.pause,
            on_chunk_done=on_chunk_done,
        )
        for outcome in outcomes:
            self.stats.record(outcome)
