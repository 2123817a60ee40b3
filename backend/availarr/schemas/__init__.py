"""
Schemas Package

Pydantic models for the checkpoint files and the API responses.
"""

from availarr.schemas.checkpoints import PageCheckpoint, EpisodeCheckpoint
from availarr.schemas.responses import (
    EpisodeResponse,
    SeasonResponse,
    ContentResponse,
    ContentListResponse,
    CleanupResponse,
)

__all__ = [
    # Checkpoints
    'PageCheckpoint',
    'EpisodeCheckpoint',
    # Responses
    'EpisodeResponse',
    'SeasonResponse',
    'ContentResponse',
    'ContentListResponse',
    'CleanupResponse',
]
