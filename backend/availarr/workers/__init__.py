"""
Background Workers

This package contains the probe worker pool used by the refresh job.
"""

from .probe_pool import ProbeWorkerPool

__all__ = ['ProbeWorkerPool']
