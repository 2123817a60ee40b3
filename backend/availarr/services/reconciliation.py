"""
Reconciliation Engine for Availarr

Decides, for one catalog title, whether the cached verdict can be trusted or
the embed service must be probed again, and writes the outcome back to the
content store.

State Machine:
    UNSEEN ──────────────┐
    CACHED_STALE ────────┼──> PROBING ──> CONFIRMED_AVAILABLE ──> PERSISTED
    CACHED_FRESH (touch) │             └─> CONFIRMED_UNAVAILABLE ──> EVICTED / PERSISTED (mark-only)

    - UNSEEN: no record yet
    - CACHED_FRESH: now - last_checked < window; verdict trusted, last_checked refreshed
    - CACHED_STALE: window elapsed; probe again
    - CONFIRMED_AVAILABLE: upsert payload, available=True, last_checked=now
      (series are enriched with their detail payload and season list first)
    - CONFIRMED_UNAVAILABLE: handled by the job's EvictionPolicy

Failure Handling:
    - The engine works on the prober's tagged ProbeResult; a probe that
      raises falls back to the cached verdict (or unavailable) and nothing
      is written
    - Failed upserts are logged and skipped; deletes are retried by the store
    - Episodes are probed only for series whose own verdict is available

Usage:
    engine = ReconciliationEngine(store, prober, MovieStrategy(), catalog=catalog,
                                  eviction=EvictionPolicy.MARK_ONLY)
    outcome = await engine.reconcile({"id": 550, "title": "Fight Club"})
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from availarr.models.content import ContentRecord
from availarr.services.catalog_client import CatalogClient
from availarr.services.content_store import ContentStore
from availarr.services.exceptions import StoreWriteError
from availarr.services.prober import AvailabilityProber
from availarr.services.strategies import ContentStrategy
from availarr.services.structured_logging import CorrelationContext

logger = logging.getLogger(__name__)


class ReconcileState(str, Enum):
    UNSEEN = "unseen"
    CACHED_FRESH = "cached_fresh"
    CACHED_STALE = "cached_stale"
    PROBING = "probing"
    CONFIRMED_AVAILABLE = "confirmed_available"
    CONFIRMED_UNAVAILABLE = "confirmed_unavailable"
    PERSISTED = "persisted"
    EVICTED = "evicted"


class EvictionPolicy(str, Enum):
    """What to do with a title whose probe came back negative."""
    DELETE = "delete"
    MARK_THEN_DELETE = "mark-then-delete"  # record the negative, then remove
    MARK_ONLY = "mark-only"  # keep the record with available=False


@dataclass
class ReconcileOutcome:
    """Result of reconciling one title."""
    tmdb_id: int
    state: ReconcileState
    available: bool
    probed: bool = False
    fallback: bool = False


class ReconciliationEngine:
    """
    One engine for every content kind, parameterized by a ContentStrategy.

    Attributes:
        store: Content store
        prober: Availability prober
        strategy: Movie or series behaviour
        catalog: Catalog client used to enrich positive series verdicts
        eviction: Policy for negative verdicts
        dry_run: Probe and log, but never write
    """

    def __init__(
        self,
        store: ContentStore,
        prober: AvailabilityProber,
        strategy: ContentStrategy,
        catalog: Optional[CatalogClient] = None,
        eviction: EvictionPolicy = EvictionPolicy.MARK_THEN_DELETE,
        dry_run: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.store = store
        self.prober = prober
        self.strategy = strategy
        self.catalog = catalog
        self.eviction = EvictionPolicy(eviction)
        self.dry_run = dry_run
        self.clock = clock

    @property
    def kind(self):
        return self.strategy.kind

    def classify(self, record: Optional[ContentRecord], now: Optional[datetime] = None) -> ReconcileState:
        """Place a cached record in the state machine."""
        if record is None:
            return ReconcileState.UNSEEN
        if record.is_fresh(self.strategy.freshness_window, now or self.clock()):
            return ReconcileState.CACHED_FRESH
        return ReconcileState.CACHED_STALE

    async def reconcile(
        self,
        item: Dict[str, Any],
        record: Optional[ContentRecord] = None,
        force: bool = False
    ) -> ReconcileOutcome:
        """
        Reconcile one catalog item.

        Args:
            item: Catalog payload (must carry ``id``)
            record: Already-loaded record, skips the lookup
            force: Probe even when the cached verdict is fresh

        Returns:
            ReconcileOutcome with the final state and verdict
        """
        tmdb_id = int(item['id'])
        title = self.strategy.title(item)

        with CorrelationContext(content_id=f"{self.kind.value}:{tmdb_id}"):
            now = self.clock()
            if record is None:
                record = self.store.find_one(self.kind, tmdb_id)

            state = self.classify(record, now)
            if state is ReconcileState.CACHED_FRESH and not force:
                logger.info(f"↺ {title} ({tmdb_id}) checked recently, keeping available={record.available}")
                if not self.dry_run:
                    self._safe_write(self.store.touch, record, now)
                return ReconcileOutcome(tmdb_id, state, record.available)

            try:
                result = await self.prober.probe_detailed(self.kind, tmdb_id)
            except Exception as e:
                cached = bool(record and record.available)
                logger.error(
                    f"✗ Probe failed for {title} ({tmdb_id}): {type(e).__name__}: {e}. "
                    f"Keeping cached verdict available={cached}"
                )
                return ReconcileOutcome(tmdb_id, state, cached, fallback=True)

            verdict = result.available
            logger.info(
                f"{'✓' if verdict else '✗'} {title} ({tmdb_id}) "
                f"{'available' if verdict else 'unavailable'} at {self.strategy.build_probe_path(tmdb_id)} "
                f"({result.outcome.value}, {result.attempts} attempts)"
            )
            return await self.apply_verdict(item, record, verdict, now)

    async def apply_verdict(
        self,
        item: Dict[str, Any],
        record: Optional[ContentRecord],
        verdict: bool,
        now: Optional[datetime] = None
    ) -> ReconcileOutcome:
        """
        Persist a probe verdict: upsert when available, eviction policy otherwise.

        Args:
            item: Payload to store (must carry ``id``)
            record: Existing record, if any
            verdict: Probe result
            now: Check timestamp
        """
        tmdb_id = int(item['id'])
        now = now or self.clock()
        confirmed = ReconcileState.CONFIRMED_AVAILABLE if verdict else ReconcileState.CONFIRMED_UNAVAILABLE

        if self.dry_run:
            logger.info(f"[DRY RUN] Would record {self.kind.value}:{tmdb_id} as available={verdict}")
            return ReconcileOutcome(tmdb_id, confirmed, verdict, probed=True)

        if verdict:
            final = await self._persist_available(item, now)
        else:
            final = self._apply_eviction(item, record, now)
        return ReconcileOutcome(tmdb_id, final or confirmed, verdict, probed=True)

    async def _persist_available(self, item: Dict[str, Any], now: datetime) -> Optional[ReconcileState]:
        tmdb_id = int(item['id'])
        data = item

        if self.strategy.enrich_on_available and self.catalog is not None:
            details = await self.catalog.fetch_details(self.kind, tmdb_id)
            if details and details.get('id'):
                data = details

        try:
            record = self.store.upsert(self.kind, tmdb_id, data, True, now)
        except StoreWriteError as e:
            logger.error(f"✗ {e}")
            return None

        children = self.strategy.extract_children(data)
        if children:
            self._safe_write(self.store.set_seasons, record, children, True, now)
        return ReconcileState.PERSISTED

    def _apply_eviction(
        self,
        item: Dict[str, Any],
        record: Optional[ContentRecord],
        now: datetime
    ) -> Optional[ReconcileState]:
        tmdb_id = int(item['id'])

        if self.eviction is EvictionPolicy.MARK_ONLY:
            data = record.data if record is not None and record.data else item
            if self._safe_write(self.store.upsert, self.kind, tmdb_id, data, False, now):
                return ReconcileState.PERSISTED
            return None

        if record is None:
            return ReconcileState.EVICTED

        if self.eviction is EvictionPolicy.MARK_THEN_DELETE:
            if not self._safe_write(self.store.mark_unavailable, record, now):
                return None

        try:
            self.store.delete_one(self.kind, tmdb_id)
        except StoreWriteError as e:
            logger.error(f"✗ Could not evict {self.kind.value}:{tmdb_id}: {e}")
            return None

        logger.info(f"🗑 Evicted {self.kind.value}:{tmdb_id} ({self.eviction.value})")
        return ReconcileState.EVICTED

    def _safe_write(self, operation: Callable, *args) -> bool:
        """Run a store write; log and report failure instead of raising."""
        try:
            operation(*args)
        except StoreWriteError as e:
            logger.error(f"✗ {e}")
            return False
        return True

    async def reconcile_episode(
        self,
        record: ContentRecord,
        season_number: int,
        episode_number: int
    ) -> Optional[bool]:
        """
        Reconcile one episode of a series.

        Returns:
            The episode verdict, or None when the series itself is unavailable
            and no probe was made
        """
        if not record.available:
            logger.info(f"Skipping episodes of {record.key}: series is not available")
            return None

        label = f"{record.title} S{season_number}E{episode_number}"
        with CorrelationContext(content_id=record.key, season=season_number, episode=episode_number):
            now = self.clock()
            existing = self.store.get_episode(record, season_number, episode_number)
            if existing is not None and existing.is_fresh(self.strategy.freshness_window, now):
                logger.debug(f"↺ {label} checked recently, keeping available={existing.available}")
                if not self.dry_run:
                    self._safe_write(
                        self.store.upsert_episode, record, season_number, episode_number,
                        existing.available, now
                    )
                return existing.available

            try:
                result = await self.prober.probe_detailed(self.kind, record.tmdb_id, season_number, episode_number)
            except Exception as e:
                cached = bool(existing and existing.available)
                logger.error(f"✗ Probe failed for {label}: {type(e).__name__}: {e}")
                return cached

            verdict = result.available

            if self.dry_run:
                logger.info(f"[DRY RUN] Would record {label} as available={verdict}")
                return verdict

            self._safe_write(self.store.upsert_episode, record, season_number, episode_number, verdict, now)
            logger.info(f"{'✓' if verdict else '✗'} {label} available={verdict}")
            return verdict
