"""定时任务."""

from feedsync.scheduler.tasks import SyncScheduler

__all__ = ["SyncScheduler"]
