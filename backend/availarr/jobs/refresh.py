"""
Stored Content Refresh

Re-probes every record in the content store through the probe worker pool
and applies the result: available records get a fresh last_checked (and a
title refreshed from TMDB when a key is configured), unavailable ones are
marked and then evicted.

Run Flow:
    1. Page through the store in id order, REFRESH_BATCH_SIZE at a time
    2. Split each batch round-robin across NUM_WORKERS workers
    3. Workers probe (GET, 404 is final) and look up titles (and series
       season lists) concurrently
    4. Once every worker has answered for the cycle, the main loop writes
       the batch's results; a record whose probe crashed is left untouched.
       Season lists of the batch's available series go out in one commit
    5. Progress, rate and ETA are logged at most every PROGRESS_INTERVAL seconds
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from availarr.models.content import ContentKind, ContentRecord
from availarr.services.catalog_client import CatalogClient
from availarr.services.content_store import ContentStore
from availarr.services.exceptions import StoreWriteError
from availarr.services.prober import AvailabilityProber
from availarr.services.reconciliation import EvictionPolicy, ReconcileOutcome, ReconciliationEngine
from availarr.services.strategies import strategy_for
from availarr.workers.probe_pool import ProbeWorkerPool
from availarr.jobs.runtime import JobStats

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 30.0


@dataclass
class RefreshItem:
    """Snapshot of a record handed to a worker."""
    record_id: int
    tmdb_id: int
    kind: ContentKind
    title: Optional[str]


@dataclass
class RefreshResult:
    available: bool
    title: Optional[str]
    seasons: List[Dict[str, Any]] = field(default_factory=list)


class RefreshJob:
    """
    Worker-pool refresh of every stored record.

    Attributes:
        store: Content store
        prober: Prober configured for GET with 404 short-circuit
        catalog: Optional TMDB client for title lookups
        num_workers: Pool size
        batch_size: Records per store batch
        eviction: Policy for negative verdicts (mark-then-delete by default)
    """

    def __init__(
        self,
        store: ContentStore,
        prober: AvailabilityProber,
        catalog: Optional[CatalogClient] = None,
        num_workers: int = 1,
        batch_size: int = 100,
        eviction: EvictionPolicy = EvictionPolicy.MARK_THEN_DELETE,
        dry_run: bool = False
    ):
        self.store = store
        self.prober = prober
        self.catalog = catalog
        self.num_workers = num_workers
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.engines: Dict[ContentKind, ReconciliationEngine] = {
            kind: ReconciliationEngine(
                store, prober, strategy_for(kind), catalog=None, eviction=eviction, dry_run=dry_run
            )
            for kind in ContentKind
        }
        self.stats = JobStats()
        self._last_progress = 0.0

    async def _lookup(self, item: RefreshItem) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Current title and, for series, the season list from TMDB."""
        if self.catalog is None:
            return item.title, []
        details = await self.catalog.fetch_details(item.kind, item.tmdb_id) or {}
        title = details.get('title' if item.kind is ContentKind.MOVIE else 'name')
        seasons = self.engines[item.kind].strategy.extract_children(details)
        return title or item.title or "Unknown Title", seasons

    async def check_item(self, item: RefreshItem) -> RefreshResult:
        """
        Worker handler: probe one record and resolve its title and seasons.

        Probe errors propagate; the pool reports them as a missing result and
        the stored verdict stays as it is.
        """
        probed = await self.prober.probe_detailed(item.kind, item.tmdb_id)
        title, seasons = await self._lookup(item)
        return RefreshResult(available=probed.available, title=title, seasons=seasons)

    async def _apply(self, record: ContentRecord, result: Optional[RefreshResult]) -> Optional[ReconcileOutcome]:
        """Write one worker result back to the store."""
        if result is None:
            return None

        label = f"{record.content_type.upper()} {record.tmdb_id} - \"{result.title}\""
        data = dict(record.data or {})
        data['id'] = record.tmdb_id
        if result.available:
            logger.info(f"✓ {label}: AVAILABLE")
            if result.title:
                data['title' if record.kind is ContentKind.MOVIE else 'name'] = result.title
        else:
            logger.info(f"✗ {label}: NOT AVAILABLE - EVICTING")

        engine = self.engines[record.kind]
        return await engine.apply_verdict(data, record, result.available, datetime.utcnow())

    def _write_seasons(self, updates: List[Tuple[ContentRecord, List[Dict[str, Any]]]]) -> None:
        """Store the season lists of a batch's available series in one commit."""
        if not updates or self.dry_run:
            return
        try:
            count = self.store.bulk_set_seasons(updates, True, datetime.utcnow())
        except StoreWriteError as e:
            logger.error(f"✗ {e}")
            return
        logger.info(f"Updated seasons of {count} series")

    def _log_progress(self, total: int, force: bool = False) -> None:
        now = time.monotonic()
        if not force and now - self._last_progress < PROGRESS_INTERVAL:
            return
        self._last_progress = now
        done = self.stats.processed
        rate = done / self.stats.elapsed if self.stats.elapsed > 0 else 0.0
        eta = (total - done) / rate if rate > 0 else 0.0
        percent = (done / total * 100) if total else 100.0
        logger.info(
            f"[PROGRESS] {done}/{total} ({percent:.2f}%) rate={rate:.2f}/s "
            f"eta={eta / 60:.1f}min updated={self.stats.available} evicted={self.stats.evicted}"
        )

    async def run(self) -> JobStats:
        total = self.store.count()
        logger.info(
            f"Refreshing {total} records with {self.num_workers} workers, "
            f"{self.batch_size} records per batch"
        )

        async with ProbeWorkerPool(self.check_item, num_workers=self.num_workers) as pool:
            for batch_number, batch in enumerate(self.store.iter_batches(self.batch_size), start=1):
                records = {record.id: record for record in batch}
                items = [
                    RefreshItem(record.id, record.tmdb_id, record.kind, record.title)
                    for record in batch
                ]
                logger.info(f"Batch {batch_number}: {len(items)} records")

                season_updates = []
                for item, result in await pool.run_cycle(items):
                    record = records[item.record_id]
                    outcome = await self._apply(record, result)
                    self.stats.record(outcome)
                    if outcome is not None and outcome.available and result.seasons:
                        season_updates.append((record, result.seasons))
                    self._log_progress(total)

                self._write_seasons(season_updates)

                if pool.alive_count == 0:
                    logger.error("✗ All probe workers are dead, stopping refresh")
                    break

        self._log_progress(total, force=True)
        logger.info(f"✓ Refresh complete: {self.stats.summary()}")
        return self.stats
