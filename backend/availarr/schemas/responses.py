"""
API Response Schemas

Pydantic models for the content and cron endpoints.
Used for OpenAPI documentation and response validation.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


# ============================================================================
# Content Responses
# ============================================================================

class EpisodeResponse(BaseModel):
    """Verdict for one episode."""
    episode_number: int = Field(..., description="Episode number within the season")
    available: bool = Field(..., description="Whether the embed service serves this episode")
    last_checked: Optional[str] = Field(None, description="Last probe timestamp (ISO 8601)")


class SeasonResponse(BaseModel):
    """Season of a series with its episode verdicts."""
    season_number: int = Field(..., description="Season number")
    episode_count: int = Field(0, description="Known episode count")
    available: bool = Field(False, description="True when at least one episode is available")
    last_checked: Optional[str] = Field(None, description="Last probe timestamp (ISO 8601)")
    episodes: List[EpisodeResponse] = Field(default_factory=list, description="Episode verdicts")


class ContentResponse(BaseModel):
    """One catalog title and its availability verdict."""
    tmdb_id: int = Field(..., description="TMDB id")
    type: str = Field(..., description="Content type (movie or tvshow)")
    title: Optional[str] = Field(None, description="Display title")
    popularity: Optional[float] = Field(None, description="TMDB popularity")
    data: Optional[Dict[str, Any]] = Field(None, description="Raw TMDB payload")
    available: bool = Field(..., description="Latest verdict")
    last_checked: Optional[str] = Field(None, description="Last probe timestamp (ISO 8601)")
    seasons: Optional[List[SeasonResponse]] = Field(None, description="Seasons (series only)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "tmdb_id": 550,
                "type": "movie",
                "title": "Fight Club",
                "popularity": 61.4,
                "data": {"id": 550, "title": "Fight Club"},
                "available": True,
                "last_checked": "2026-01-24T12:00:00"
            }
        }
    }


class ContentListResponse(BaseModel):
    """A page of available titles sorted by popularity."""
    results: List[ContentResponse] = Field(..., description="Titles on this page")
    page: int = Field(..., description="Current page number")
    total_pages: int = Field(..., description="Total number of pages")


# ============================================================================
# Maintenance Responses
# ============================================================================

class CleanupResponse(BaseModel):
    """Result of a janitor sweep."""
    success: bool = Field(True, description="Operation success status")
    deleted: int = Field(..., description="Records deleted")
    max_age_days: int = Field(..., description="Age threshold in days")
    timestamp: Optional[str] = Field(None, description="Sweep timestamp (ISO 8601)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "deleted": 42,
                "max_age_days": 7,
                "timestamp": "2026-01-24T12:00:00"
            }
        }
    }
