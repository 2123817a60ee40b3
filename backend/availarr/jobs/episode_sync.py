"""
Series Episode Sync

Probes individual episodes of series already known to be available, most
popular first. Progress is checkpointed after every chunk of episodes and
every season, and each finished show is added to processedShowIds so the
next run moves on to new shows.

Selection:
    Available series not yet in processedShowIds, by popularity, ``limit * 2``
    fetched and at most ``limit`` processed. Because finished shows are
    excluded, an interrupted show is always the first of the next selection;
    its saved season and episode indices are applied to it only.
"""

import logging
from typing import Any, Dict, List

from availarr.models.content import ContentKind, ContentRecord
from availarr.schemas.checkpoints import EpisodeCheckpoint
from availarr.services.catalog_client import CatalogClient
from availarr.services.checkpoint_store import CheckpointStore
from availarr.services.reconciliation import ReconciliationEngine
from availarr.services.scheduler import run_in_chunks
from availarr.jobs.runtime import JobStats

logger = logging.getLogger(__name__)


class EpisodeSyncJob:
    """
    Resumable episode-level sync.

    Attributes:
        engine: Series reconciliation engine
        catalog: TMDB client for season episode lists
        checkpoints: Progress file store
        limit: Shows to process this run
        concurrency: Episodes probed concurrently
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        catalog: CatalogClient,
        checkpoints: CheckpointStore[EpisodeCheckpoint],
        limit: int = 10,
        concurrency: int = 5
    ):
        if engine.kind is not ContentKind.SERIES:
            raise ValueError("Episode sync needs a series engine")
        self.engine = engine
        self.catalog = catalog
        self.checkpoints = checkpoints
        self.limit = limit
        self.concurrency = concurrency
        self.pause = engine.prober.attempt_delay * concurrency
        self.stats = JobStats()

    def _save(self, checkpoint: EpisodeCheckpoint) -> None:
        if not self.engine.dry_run:
            self.checkpoints.save(checkpoint)

    def select_shows(self, checkpoint: EpisodeCheckpoint) -> List[ContentRecord]:
        return self.engine.store.find(
            ContentKind.SERIES,
            available=True,
            exclude_ids=checkpoint.processed_show_ids,
            sort="popularity",
            limit=self.limit * 2,
        )

    async def run(self) -> JobStats:
        checkpoint = self.checkpoints.load()
        shows = self.select_shows(checkpoint)

        if not shows:
            logger.info("No series to process: all available shows are done or none are available")
            return self.stats

        for position, show in enumerate(shows[:self.limit]):
            resume = position == 0 and (checkpoint.last_season_index or checkpoint.last_episode_index)
            if not resume:
                checkpoint.last_season_index = 0
                checkpoint.last_episode_index = 0

            logger.info(f"Processing series {show.tmdb_id} ({show.title}), {position + 1} of {min(self.limit, len(shows))}")
            await self._process_show(show, checkpoint)

            checkpoint.last_show_index += 1
            checkpoint.last_season_index = 0
            checkpoint.last_episode_index = 0
            checkpoint.processed_show_ids.append(show.tmdb_id)
            self._save(checkpoint)

        logger.info(f"✓ Episode sync complete: {self.stats.summary()}")
        return self.stats

    async def _process_show(self, show: ContentRecord, checkpoint: EpisodeCheckpoint) -> None:
        total_seasons = int((show.data or {}).get('number_of_seasons') or 0)
        if total_seasons == 0:
            logger.warning(f"⚠ {show.title} has no season count in its payload, skipping")
            return

        for season_index in range(checkpoint.last_season_index, total_seasons):
            season_number = season_index + 1
            episodes = await self.catalog.fetch_season(show.tmdb_id, season_number)

            if not episodes:
                logger.warning(f"⚠ Skipping season {season_number} of {show.title}: no episode list")
            else:
                start = checkpoint.last_episode_index if season_index == checkpoint.last_season_index else 0
                logger.info(
                    f"Season {season_number} of {show.title}: {len(episodes) - start} episodes to check"
                )
                await self._process_season(show, season_index, start, episodes, checkpoint)

            checkpoint.last_season_index = season_index + 1
            checkpoint.last_episode_index = 0
            self._save(checkpoint)

    async def _process_season(
        self,
        show: ContentRecord,
        season_index: int,
        start: int,
        episodes: List[Dict[str, Any]],
        checkpoint: EpisodeCheckpoint
    ) -> None:
        season_number = season_index + 1

        async def check(episode: Dict[str, Any]):
            return await self.engine.reconcile_episode(show, season_number, int(episode['episode_number']))

        def on_chunk_done(_index: int, done: int) -> None:
            checkpoint.last_season_index = season_index
            checkpoint.last_episode_index = start + done
            self._save(checkpoint)

        verdicts = await run_in_chunks(
            episodes[start:], self.concurrency, check, pause=self.pause, on_chunk_done=on_chunk_done
        )
        for verdict in verdicts:
            self.stats.processed += 1
            if verdict:
                self.stats.available += 1
            elif verdict is None:
                self.stats.failed += 1
            else:
                self.stats.unavailable += 1
