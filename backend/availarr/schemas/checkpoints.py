"""
Checkpoint Schemas

Pydantic models for the resumable-progress files written by the page and
episode syncs. Field aliases keep the on-disk JSON in camelCase, so
checkpoint files left by earlier runs still load.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class PageCheckpoint(BaseModel):
    """
    Cursor of a page sync.

    ``last_page`` is the page being worked on and ``last_index_within_page``
    the number of its items already handled, so a resumed run starts at
    item ``last_index_within_page`` of ``last_page``.
    """
    model_config = ConfigDict(populate_by_name=True)

    last_page: int = Field(1, alias="lastPage", ge=1)
    last_index_within_page: int = Field(0, alias="lastIndexWithinPage", ge=0)
    total_pages: Optional[int] = Field(None, alias="totalPages")


class EpisodeCheckpoint(BaseModel):
    """
    Cursor of the episode sync.

    Indices point at the show in the current selection, the season index
    within that show and the episode index within that season.
    """
    model_config = ConfigDict(populate_by_name=True)

    last_show_index: int = Field(0, alias="lastShowIndex", ge=0)
    last_season_index: int = Field(0, alias="lastSeasonIndex", ge=0)
    last_episode_index: int = Field(0, alias="lastEpisodeIndex", ge=0)
    processed_show_ids: List[int] = Field(default_factory=list, alias="processedShowIds")
