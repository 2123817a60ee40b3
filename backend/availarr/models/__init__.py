"""
Database models for Availarr
"""

from .base import Base
from .content import ContentKind, ContentRecord, SeasonRecord, EpisodeRecord

__all__ = ['Base', 'ContentKind', 'ContentRecord', 'SeasonRecord', 'EpisodeRecord']
