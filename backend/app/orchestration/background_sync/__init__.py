"""
进程内后台同步队列的对外入口。
默认例程在 runner.run_shop_sync（依赖 DB 与 WooCommerce client，按需单独 import）。
"""

from .jobs import (
    ACTIVE_STATUSES,
    CANCELLED_ERROR,
    TERMINAL_STATUSES,
    JobCancelled,
    JobControl,
    JobStatus,
    SyncJob,
    SyncProgress,
    SyncResult,
)
from .queue import (
    BackgroundSyncQueue,
    JobNotFoundError,
    JobStateError,
    ProgressReporter,
    SyncQueueError,
    SyncRoutine,
)
from .store import InMemoryJobStore, JobStore


__all__ = [
    "ACTIVE_STATUSES", "CANCELLED_ERROR", "TERMINAL_STATUSES",
    "JobCancelled", "JobControl", "JobStatus", "SyncJob", "SyncProgress", "SyncResult",
    "BackgroundSyncQueue", "JobNotFoundError", "JobStateError", "ProgressReporter", "SyncQueueError", "SyncRoutine",
    "InMemoryJobStore", "JobStore",
]
