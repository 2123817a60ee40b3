"""
Content Kind Strategies

The reconciliation engine is the same for movies and series; what differs
is captured here: which catalog listing feeds the job, how the embed path
is built, how long a verdict stays fresh, and which children (seasons) a
detail payload carries.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.services.prober import embed_path


class ContentStrategy:
    """Behaviour shared by every content kind."""

    kind: ContentKind
    endpoint: str
    popular_endpoint: str
    # Fetch the detail payload before persisting a positive verdict
    enrich_on_available: bool = False

    def __init__(self, freshness_window: Optional[timedelta] = None):
        self.freshness_window = freshness_window or timedelta(hours=Config.FRESHNESS_WINDOW_HOURS)

    def build_probe_path(
        self,
        external_id: int,
        season: Optional[int] = None,
        episode: Optional[int] = None
    ) -> str:
        return embed_path(self.kind, external_id, season, episode)

    def title(self, item: Dict[str, Any]) -> str:
        return item.get('title') or item.get('name') or f"#{item.get('id')}"

    def extract_children(self, details: Dict[str, Any]) -> List[Dict[str, Any]]:
        return []

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(window={self.freshness_window})>"


class MovieStrategy(ContentStrategy):
    kind = ContentKind.MOVIE
    endpoint = "discover/movie"
    popular_endpoint = "movie/popular"

    def title(self, item: Dict[str, Any]) -> str:
        return item.get('title') or f"#{item.get('id')}"


class SeriesStrategy(ContentStrategy):
    kind = ContentKind.SERIES
    endpoint = "discover/tv"
    popular_endpoint = "tv/popular"
    enrich_on_available = True

    def title(self, item: Dict[str, Any]) -> str:
        return item.get('name') or f"#{item.get('id')}"

    def extract_children(self, details: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Season summaries (``season_number``, ``episode_count``) from a detail payload."""
        return [
            {
                'season_number': season['season_number'],
                'episode_count': season.get('episode_count') or 0,
            }
            for season in details.get('seasons') or []
            if season.get('season_number') is not None
        ]


def strategy_for(kind: ContentKind, freshness_window: Optional[timedelta] = None) -> ContentStrategy:
    """Return the strategy for a content kind."""
    if ContentKind(kind) is ContentKind.MOVIE:
        return MovieStrategy(freshness_window)
    return SeriesStrategy(freshness_window)
