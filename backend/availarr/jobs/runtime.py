"""
Job Runtime

Wires the shared pieces every job needs (content store, rotator, prober,
catalog client, checkpoint directory) and collects run statistics.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.orm import Session

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.schemas.checkpoints import PageCheckpoint, EpisodeCheckpoint
from availarr.services.catalog_client import CatalogClient
from availarr.services.checkpoint_store import CheckpointStore
from availarr.services.content_store import ContentStore
from availarr.services.prober import AvailabilityProber, ProbeMethod
from availarr.services.reconciliation import (
    EvictionPolicy, ReconcileOutcome, ReconcileState, ReconciliationEngine
)
from availarr.services.rotator import Rotator
from availarr.services.strategies import strategy_for

logger = logging.getLogger(__name__)

CHECKPOINT_FILES = {
    ContentKind.MOVIE: "progress.json",
    ContentKind.SERIES: "tv-progress.json",
}
EPISODE_CHECKPOINT_FILE = "tv-episodes-progress.json"


@dataclass
class JobStats:
    """Counters reported at the end of a run."""
    processed: int = 0
    available: int = 0
    unavailable: int = 0
    cached: int = 0
    evicted: int = 0
    failed: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def record(self, outcome: Optional[ReconcileOutcome]) -> None:
        self.processed += 1
        if outcome is None:
            self.failed += 1
            return
        if outcome.state is ReconcileState.CACHED_FRESH:
            self.cached += 1
        if outcome.state is ReconcileState.EVICTED:
            self.evicted += 1
        if outcome.available:
            self.available += 1
        else:
            self.unavailable += 1

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def summary(self) -> str:
        rate = self.processed / self.elapsed if self.elapsed > 0 else 0.0
        return (
            f"processed={self.processed} available={self.available} "
            f"unavailable={self.unavailable} cached={self.cached} evicted={self.evicted} "
            f"failed={self.failed} elapsed={self.elapsed:.1f}s rate={rate:.2f}/s"
        )


class JobRuntime:
    """
    Shared collaborators for one job run.

    Attributes:
        store: Content store bound to the run's session
        prober: Availability prober with its own rotator
        catalog: TMDB client (None for store-only jobs)
        checkpoint_dir: Directory holding the progress files
    """

    def __init__(
        self,
        store: ContentStore,
        prober: AvailabilityProber,
        catalog: Optional[CatalogClient] = None,
        checkpoint_dir: Optional[Path] = None
    ):
        self.store = store
        self.prober = prober
        self.catalog = catalog
        self.checkpoint_dir = Path(checkpoint_dir or Config.CHECKPOINT_DIR)

    def engine(
        self,
        kind: ContentKind,
        eviction: EvictionPolicy = EvictionPolicy.MARK_THEN_DELETE,
        dry_run: bool = False,
        freshness_window: Optional[timedelta] = None
    ) -> ReconciliationEngine:
        return ReconciliationEngine(
            store=self.store,
            prober=self.prober,
            strategy=strategy_for(kind, freshness_window),
            catalog=self.catalog,
            eviction=eviction,
            dry_run=dry_run,
        )

    def page_checkpoints(self, kind: ContentKind) -> CheckpointStore[PageCheckpoint]:
        return CheckpointStore(self.checkpoint_dir / CHECKPOINT_FILES[ContentKind(kind)], PageCheckpoint)

    def episode_checkpoints(self) -> CheckpointStore[EpisodeCheckpoint]:
        return CheckpointStore(self.checkpoint_dir / EPISODE_CHECKPOINT_FILE, EpisodeCheckpoint)

    def close(self) -> None:
        self.store.db.close()


def build_runtime(
    session_factory: Callable[[], Session],
    require_catalog: bool = True,
    probe_method: ProbeMethod = ProbeMethod.HEAD,
    not_found_is_final: bool = False
) -> JobRuntime:
    """
    Build the runtime from configuration.

    Raises:
        ConfigurationError: If the configuration is incomplete
    """
    Config.validate(require_catalog=require_catalog)
    prober = AvailabilityProber(
        Rotator.from_config(),
        method=probe_method,
        not_found_is_final=not_found_is_final,
    )
    catalog = CatalogClient() if require_catalog or Config.TMDB_API_KEY else None
    return JobRuntime(ContentStore(session_factory()), prober, catalog)
