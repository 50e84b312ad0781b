"""定时任务定义."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "feed_sync"
INITIAL_SYNC_JOB_ID = "feed_sync_initial"


class SyncScheduler:
    """周期同步调度器：固定间隔执行，并在启动后延迟执行一次."""

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        initial_delay_seconds: float = 10,
    ) -> None:
        self._job = job
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        """调度器是否在运行."""
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> AsyncIOScheduler:
        """创建并启动调度器（需在事件循环中调用）."""
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("定时任务调度器已在运行")
            return self._scheduler

        scheduler = AsyncIOScheduler()

        # 定时同步任务
        scheduler.add_job(
            self._job,
            "interval",
            seconds=self.interval_seconds,
            id=SYNC_JOB_ID,
            name="Feed 定时同步",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # 启动后延迟执行一次
        scheduler.add_job(
            self._job,
            "date",  # 一次性任务
            run_date=datetime.now(UTC) + timedelta(seconds=self.initial_delay_seconds),
            id=INITIAL_SYNC_JOB_ID,
            name="初始同步",
            replace_existing=True,
        )

        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            f"定时任务调度器已启动，同步间隔: {self.interval_seconds / 60:g} 分钟"
        )
        return scheduler

    def shutdown(self) -> None:
        """关闭调度器."""
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            logger.info("定时任务调度器已关闭")
            self._scheduler = None

    def get_job_ids(self) -> list[str]:
        """当前已注册的任务 ID."""
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]
