"""
Content Database Models for Availarr

One row per catalog title the jobs have seen, keyed by (tmdb_id, content_type),
holding the raw TMDB payload next to the latest playability verdict. Series
carry their seasons, and seasons carry their episodes, each with its own
verdict and check timestamp.

Features:
    - Opaque catalog payload stored as JSON (the UI reads it as-is)
    - Unique (tmdb_id, content_type) so upserts never duplicate a title
    - Seasons unique per record, episodes unique per season
    - Cascade delete: evicting a series removes its seasons and episodes
    - Indexed for the queries the jobs run: by id, by (type, available), by age

Freshness:
    A verdict is trusted while now - last_checked < window. The boundary
    itself is stale, so a record checked exactly one window ago is re-probed.
"""

from datetime import datetime, timedelta
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, JSON, ForeignKey,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from typing import Optional, Dict, Any

from .base import Base


class ContentKind(str, Enum):
    """Catalog content kinds, stored by value in ``content_type``."""
    MOVIE = "movie"
    SERIES = "tvshow"

    @property
    def tmdb_path(self) -> str:
        """Path segment TMDB uses for this kind (``movie`` / ``tv``)."""
        return "movie" if self is ContentKind.MOVIE else "tv"

    @classmethod
    def parse(cls, value: str) -> 'ContentKind':
        """Accept ``movie``, ``tv``, ``tvshow`` or ``series``."""
        normalized = value.strip().lower()
        if normalized in ("tv", "tvshow", "series", "show"):
            return cls.SERIES
        if normalized in ("movie", "movies", "film"):
            return cls.MOVIE
        raise ValueError(f"Unknown content kind: {value}")


def _is_fresh(last_checked: Optional[datetime], window: timedelta, now: datetime) -> bool:
    if last_checked is None:
        return False
    return now - last_checked < window


class ContentRecord(Base):
    """
    A movie or series and its latest availability verdict.

    Table Structure:
        - id: Primary key
        - tmdb_id: TMDB id
        - content_type: "movie" or "tvshow"
        - title: Display title (denormalized from data)
        - popularity: TMDB popularity (denormalized for sorting)
        - data: Full TMDB payload
        - available: Last verdict
        - last_checked: When the verdict was last confirmed
    """

    __tablename__ = 'content'
    __table_args__ = (
        UniqueConstraint('tmdb_id', 'content_type', name='uq_content_tmdb_id_type'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    tmdb_id = Column(Integer, nullable=False)
    content_type = Column(String(16), nullable=False)

    title = Column(String(500), nullable=True)
    popularity = Column(Float, nullable=False, default=0.0)

    # Note: 'metadata' is reserved by SQLAlchemy
    data = Column(JSON, nullable=False, default=dict)

    available = Column(Boolean, nullable=False, default=False)
    last_checked = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    seasons = relationship(
        "SeasonRecord",
        back_populates="content",
        cascade="all, delete-orphan",
        order_by="SeasonRecord.season_number",
    )

    @property
    def kind(self) -> ContentKind:
        return ContentKind(self.content_type)

    @property
    def key(self) -> str:
        """Correlation key used in logs, e.g. ``movie:550``."""
        return f"{self.content_type}:{self.tmdb_id}"

    def is_fresh(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        """True while the verdict is younger than ``window``."""
        return _is_fresh(self.last_checked, window, now or datetime.utcnow())

    def get_season(self, season_number: int) -> Optional['SeasonRecord']:
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def to_dict(self, include_seasons: bool = False) -> Dict[str, Any]:
        result = {
            'tmdb_id': self.tmdb_id,
            'type': self.content_type,
            'title': self.title,
            'popularity': self.popularity,
            'data': self.data,
            'available': self.available,
            'last_checked': self.last_checked.isoformat() if self.last_checked else None,
        }
        if include_seasons:
            result['seasons'] = [season.to_dict() for season in self.seasons]
        return result

    def __repr__(self) -> str:
        status = "AVAILABLE" if self.available else "UNAVAILABLE"
        return f"<ContentRecord({self.key}, title='{self.title}', status={status})>"


class SeasonRecord(Base):
    """A season of a series, with its episode count and verdict."""

    __tablename__ = 'content_seasons'
    __table_args__ = (
        UniqueConstraint('content_id', 'season_number', name='uq_season_content_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey('content.id', ondelete='CASCADE'), nullable=False, index=True)

    season_number = Column(Integer, nullable=False)
    episode_count = Column(Integer, nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=False)
    last_checked = Column(DateTime, nullable=True)

    content = relationship("ContentRecord", back_populates="seasons")
    episodes = relationship(
        "EpisodeRecord",
        back_populates="season",
        cascade="all, delete-orphan",
        order_by="EpisodeRecord.episode_number",
    )

    def get_episode(self, episode_number: int) -> Optional['EpisodeRecord']:
        for episode in self.episodes:
            if episode.episode_number == episode_number:
                return episode
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'season_number': self.season_number,
            'episode_count': self.episode_count,
            'available': self.available,
            'last_checked': self.last_checked.isoformat() if self.last_checked else None,
            'episodes': [episode.to_dict() for episode in self.episodes],
        }

    def __repr__(self) -> str:
        return f"<SeasonRecord(content_id={self.content_id}, season={self.season_number})>"


class EpisodeRecord(Base):
    """One episode verdict within a season."""

    __tablename__ = 'content_episodes'
    __table_args__ = (
        UniqueConstraint('season_id', 'episode_number', name='uq_episode_season_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey('content_seasons.id', ondelete='CASCADE'), nullable=False, index=True)

    episode_number = Column(Integer, nullable=False)
    available = Column(Boolean, nullable=False, default=False)
    last_checked = Column(DateTime, nullable=True)

    season = relationship("SeasonRecord", back_populates="episodes")

    def is_fresh(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        return _is_fresh(self.last_checked, window, now or datetime.utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'episode_number': self.episode_number,
            'available': self.available,
            'last_checked': self.last_checked.isoformat() if self.last_checked else None,
        }

    def __repr__(self) -> str:
        return f"<EpisodeRecord(season_id={self.season_id}, episode={self.episode_number})>"


# Create indexes for the job queries
Index('idx_content_tmdb_id', ContentRecord.tmdb_id)
Index('idx_content_type_available', ContentRecord.content_type, ContentRecord.available)
Index('idx_content_last_checked', ContentRecord.last_checked)
Index('idx_content_popularity', ContentRecord.popularity)
Index('idx_season_number', SeasonRecord.season_number)
Index('idx_episode_number', EpisodeRecord.episode_number)
