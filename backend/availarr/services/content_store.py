"""
Content Store for Availarr

Repository over the content tables. Jobs talk to the store only through the
operations below, which mirror the document-store vocabulary the HTTP app and
the janitors were written against (find_one, find, count, upsert, delete_one,
delete_many, bulk season update).

Write Semantics:
    - upsert keys on (tmdb_id, content_type); title and popularity are
      denormalized from the payload for sorting
    - seasons and episodes are find-or-append, never duplicated
    - delete_one is retried with a fixed delay before giving up
    - every write commits immediately; a failed write rolls the session back
      and raises StoreWriteError

All methods are synchronous and never await, so callers on the event loop
can share one session without interleaving inside a write.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Iterable, Iterator, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from availarr.config import Config
from availarr.models.content import ContentKind, ContentRecord, SeasonRecord, EpisodeRecord
from availarr.services.exceptions import StoreWriteError, retry_on_network_error

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "popularity": ContentRecord.popularity.desc(),
    "last_checked": ContentRecord.last_checked.desc(),
    "id": ContentRecord.id.asc(),
}


def _title_of(data: Dict[str, Any]) -> Optional[str]:
    return data.get('title') or data.get('name')


def _kind_value(kind) -> str:
    return ContentKind(kind).value


class ContentStore:
    """
    Content repository bound to one SQLAlchemy session.

    Example:
        >>> store = ContentStore(SessionLocal())
        >>> store.upsert(ContentKind.MOVIE, 550, {"title": "Fight Club"}, available=True)
        >>> store.find_one(ContentKind.MOVIE, 550).available
        True
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreWriteError(f"{action} failed: {e}", original_exception=e) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_one(self, kind: ContentKind, tmdb_id: int) -> Optional[ContentRecord]:
        return self.db.query(ContentRecord).filter(
            ContentRecord.tmdb_id == int(tmdb_id),
            ContentRecord.content_type == _kind_value(kind)
        ).first()

    def _filtered(
        self,
        kind: Optional[ContentKind] = None,
        available: Optional[bool] = None,
        exclude_ids: Optional[Iterable[int]] = None
    ):
        query = self.db.query(ContentRecord)
        if kind is not None:
            query = query.filter(ContentRecord.content_type == _kind_value(kind))
        if available is not None:
            query = query.filter(ContentRecord.available == available)
        if exclude_ids:
            query = query.filter(ContentRecord.tmdb_id.notin_(list(exclude_ids)))
        return query

    def find(
        self,
        kind: Optional[ContentKind] = None,
        available: Optional[bool] = None,
        exclude_ids: Optional[Iterable[int]] = None,
        sort: str = "popularity",
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[ContentRecord]:
        """
        Filtered, sorted, paged lookup.

        Args:
            kind: Restrict to one content kind
            available: Restrict to one verdict
            exclude_ids: TMDB ids to leave out
            sort: ``popularity`` (desc), ``last_checked`` (desc) or ``id`` (asc)
            skip: Rows to skip
            limit: Maximum rows
        """
        query = self._filtered(kind, available, exclude_ids).order_by(
            SORT_COLUMNS[sort], ContentRecord.id.asc()
        )
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, kind: Optional[ContentKind] = None, available: Optional[bool] = None) -> int:
        return self._filtered(kind, available).count()

    def iter_batches(self, batch_size: int, kind: Optional[ContentKind] = None) -> Iterator[List[ContentRecord]]:
        """
        Yield every record in id order, ``batch_size`` at a time.

        Paging uses an id cursor rather than offsets, so evictions made while
        a batch is processed never shift later records out of view.
        """
        last_id = 0
        while True:
            query = self._filtered(kind).filter(ContentRecord.id > last_id)
            batch = query.order_by(ContentRecord.id.asc()).limit(batch_size).all()
            if not batch:
                return
            last_id = batch[-1].id
            yield batch

    def get_episode(
        self,
        record: ContentRecord,
        season_number: int,
        episode_number: int
    ) -> Optional[EpisodeRecord]:
        season = record.get_season(season_number)
        return season.get_episode(episode_number) if season else None

    def list_available(self, kind: ContentKind, page: int = 1, limit: int = 20) -> Tuple[List[ContentRecord], int]:
        """
        Page through available titles by popularity.

        Returns:
            (records, total_pages)
        """
        page = max(1, page)
        total = self.count(kind, available=True)
        records = self.find(kind, available=True, sort="popularity", skip=(page - 1) * limit, limit=limit)
        return records, math.ceil(total / limit) if limit else 0

    def get_stats(self) -> Dict[str, Any]:
        """Counts per kind and verdict, plus the five most recently confirmed movies."""
        rows = self.db.query(
            ContentRecord.content_type, ContentRecord.available, func.count(ContentRecord.id)
        ).group_by(ContentRecord.content_type, ContentRecord.available).all()

        by_kind: Dict[str, Dict[str, int]] = {
            kind.value: {"total": 0, "available": 0, "unavailable": 0} for kind in ContentKind
        }
        for content_type, available, total in rows:
            bucket = by_kind.setdefault(content_type, {"total": 0, "available": 0, "unavailable": 0})
            bucket["total"] += total
            bucket["available" if available else "unavailable"] += total

        never_checked = self.db.query(ContentRecord).filter(ContentRecord.last_checked.is_(None)).count()
        recent = self.find(ContentKind.MOVIE, available=True, sort="last_checked", limit=5)

        return {
            "total": sum(bucket["total"] for bucket in by_kind.values()),
            "by_kind": by_kind,
            "never_checked": never_checked,
            "recent_available_movies": [
                {"tmdb_id": r.tmdb_id, "title": r.title, "last_checked": r.last_checked}
                for r in recent
            ],
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        kind: ContentKind,
        tmdb_id: int,
        data: Dict[str, Any],
        available: bool,
        checked_at: Optional[datetime] = None
    ) -> ContentRecord:
        """
        Insert or update the record for (tmdb_id, kind).

        Raises:
            StoreWriteError: If the commit fails
        """
        checked_at = checked_at or datetime.utcnow()
        record = self.find_one(kind, tmdb_id)
        if record is None:
            record = ContentRecord(tmdb_id=int(tmdb_id), content_type=_kind_value(kind))
            self.db.add(record)

        record.data = data
        record.title = _title_of(data)
        record.popularity = float(data.get('popularity') or 0.0)
        record.available = available
        record.last_checked = checked_at

        self._commit(f"Upsert of {_kind_value(kind)}:{tmdb_id}")
        return record

    def touch(self, record: ContentRecord, checked_at: Optional[datetime] = None) -> None:
        """Refresh ``last_checked`` without changing the verdict."""
        record.last_checked = checked_at or datetime.utcnow()
        self._commit(f"Touch of {record.key}")

    def mark_unavailable(self, record: ContentRecord, checked_at: Optional[datetime] = None) -> None:
        record.available = False
        record.last_checked = checked_at or datetime.utcnow()
        self._commit(f"Mark-unavailable of {record.key}")

    @retry_on_network_error(
        max_retries=Config.DELETE_MAX_ATTEMPTS - 1,
        base_delay=Config.DELETE_RETRY_DELAY,
        exponential_base=1,
        retryable_exceptions=(StoreWriteError,)
    )
    def delete_one(self, kind: ContentKind, tmdb_id: int) -> bool:
        """
        Delete one record with its seasons and episodes.

        Retried with a fixed delay on write failure.

        Returns:
            True if a record was deleted
        """
        record = self.find_one(kind, tmdb_id)
        if record is None:
            return False
        self.db.delete(record)
        self._commit(f"Delete of {_kind_value(kind)}:{tmdb_id}")
        return True

    def delete_many(self, kind: Optional[ContentKind] = None) -> int:
        """Delete every record (of one kind, if given)."""
        records = self._filtered(kind).all()
        for record in records:
            self.db.delete(record)
        self._commit("Bulk delete")
        return len(records)

    def delete_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """
        Janitor sweep: delete records whose ``last_checked`` is older than ``days``.

        Returns:
            Number of records deleted
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)
        records = self.db.query(ContentRecord).filter(ContentRecord.last_checked < cutoff).all()
        for record in records:
            self.db.delete(record)
        self._commit(f"Cleanup of records older than {days} days")
        return len(records)

    def _apply_seasons(
        self,
        record: ContentRecord,
        seasons: Iterable[Dict[str, Any]],
        available: bool,
        checked_at: datetime
    ) -> None:
        for entry in seasons:
            number = entry.get('season_number')
            if number is None:
                continue
            season = record.get_season(number)
            if season is None:
                season = SeasonRecord(season_number=number)
                record.seasons.append(season)
            season.episode_count = int(entry.get('episode_count') or 0)
            season.available = available
            season.last_checked = checked_at

    def set_seasons(
        self,
        record: ContentRecord,
        seasons: Iterable[Dict[str, Any]],
        available: bool = True,
        checked_at: Optional[datetime] = None
    ) -> None:
        """
        Find-or-append each season (dicts with ``season_number`` and ``episode_count``).
        """
        self._apply_seasons(record, seasons, available, checked_at or datetime.utcnow())
        self._commit(f"Season update of {record.key}")

    def bulk_set_seasons(
        self,
        updates: Iterable[Tuple[ContentRecord, Iterable[Dict[str, Any]]]],
        available: bool = True,
        checked_at: Optional[datetime] = None
    ) -> int:
        """Apply several season updates in one commit."""
        checked_at = checked_at or datetime.utcnow()
        count = 0
        for record, seasons in updates:
            self._apply_seasons(record, seasons, available, checked_at)
            count += 1
        self._commit("Bulk season update")
        return count

    def upsert_episode(
        self,
        record: ContentRecord,
        season_number: int,
        episode_number: int,
        available: bool,
        checked_at: Optional[datetime] = None
    ) -> EpisodeRecord:
        """
        Find-or-append the season and the episode, then record the verdict.
        """
        checked_at = checked_at or datetime.utcnow()
        season = record.get_season(season_number)
        if season is None:
            season = SeasonRecord(season_number=season_number, available=False)
            record.seasons.append(season)

        episode = season.get_episode(episode_number)
        if episode is None:
            episode = EpisodeRecord(episode_number=episode_number)
            season.episodes.append(episode)

        episode.available = available
        episode.last_checked = checked_at
        if available:
            season.available = True
        season.last_checked = checked_at
        season.episode_count = max(season.episode_count or 0, episode_number)

        self._commit(f"Episode update of {record.key} S{season_number}E{episode_number}")
        return episode
