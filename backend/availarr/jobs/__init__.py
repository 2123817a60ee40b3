"""
Batch Jobs

Each job wires the reconciliation engine to a work source (catalog pages,
stored series, the whole store) and a scheduler.
"""

from .runtime import JobRuntime, JobStats, build_runtime
from .page_sync import PageSyncJob
from .episode_sync import EpisodeSyncJob
from .refresh import RefreshJob
from .fetch_all import FetchAllJob
from .maintenance import cleanup_old_content, refill, collect_status

__all__ = [
    'JobRuntime', 'JobStats', 'build_runtime', 'PageSyncJob', 'EpisodeSyncJob',
    'RefreshJob', 'FetchAllJob', 'cleanup_old_content', 'refill', 'collect_status'
]
