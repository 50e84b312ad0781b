"""同步服务 - 周期性拉取所有启用的 Feed."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from feedsync.config import Settings
from feedsync.core.client import FeedClient, FeedFetchClient
from feedsync.core.errors import CycleError, FeedError
from feedsync.core.limiter import run_bounded
from feedsync.models.feed import Feed, utcnow
from feedsync.models.item import Item
from feedsync.models.store import FeedStore, StoreError, UpsertResult
from feedsync.scheduler.tasks import SyncScheduler

logger = logging.getLogger(__name__)

SYNC_IN_PROGRESS = "同步正在进行中"
STORE_UNAVAILABLE = "数据库不可用"
FEED_NOT_FOUND = "Feed 不存在"


class CycleStatus:
    """同步周期结果状态."""

    SUCCESS = "success"
    BUSY = "busy"  # 已有同步在运行，本次未执行
    FAILED = "failed"
    UNAVAILABLE = "unavailable"  # 存储不可用


@dataclass
class SyncState:
    """同步状态（进程内，不持久化）."""

    syncing: bool = False
    last_sync: datetime | None = None
    last_error: str | None = None
    feeds_processed: int = 0
    items_added: int = 0


@dataclass
class FeedResult:
    """单个 Feed 同步结果."""

    feed_id: int
    items_added: int = 0
    error: str | None = None


@dataclass
class CycleResult:
    """同步周期结果."""

    status: str
    feeds_processed: int = 0
    items_added: int = 0
    items_pruned: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """是否成功完成."""
        return self.status == CycleStatus.SUCCESS


@dataclass
class ResyncResult:
    """清空并重新同步的结果."""

    items_cleared: int
    cycle: CycleResult


class SyncEngine:
    """
    同步引擎.

    同一时间最多只有一个同步周期在运行；运行中再次触发会直接返回 ``busy``
    而不是排队。单个 Feed 的抓取/解析错误记录在该 Feed 上，不影响其他 Feed。
    """

    def __init__(
        self,
        settings: Settings,
        store: FeedStore | None,
        client: FeedClient | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.client = client or FeedClient(FeedFetchClient.from_settings(settings))
        self._state = SyncState()
        self._scheduler: SyncScheduler | None = None

    # 状态

    def snapshot(self) -> SyncState:
        """获取同步状态副本."""
        return replace(self._state)

    @property
    def is_syncing(self) -> bool:
        """是否正在同步."""
        return self._state.syncing

    @property
    def next_sync(self) -> datetime | None:
        """预计下次同步时间."""
        if self._state.last_sync is None:
            return None
        return self._state.last_sync + timedelta(milliseconds=self.settings.sync_interval_ms)

    # 定时同步

    def start_recurring_sync(self) -> None:
        """启动定时同步."""
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("定时同步已在运行")
            return

        self._scheduler = SyncScheduler(
            self._scheduled_cycle,
            interval_seconds=self.settings.sync_interval_seconds,
            initial_delay_seconds=self.settings.initial_sync_delay_seconds,
        )
        self._scheduler.start()

    def stop_recurring_sync(self) -> None:
        """停止定时同步."""
        if self._scheduler is not None:
            self._scheduler.shutdown()
            self._scheduler = None
            logger.info("定时同步已停止")

    @property
    def scheduler(self) -> SyncScheduler | None:
        """当前调度器."""
        return self._scheduler

    async def _scheduled_cycle(self) -> None:
        result = await self.run_cycle()
        if result.status == CycleStatus.BUSY:
            logger.info("上一次同步尚未结束，跳过本次调度")

    async def close(self) -> None:
        """停止调度并释放 HTTP 客户端."""
        self.stop_recurring_sync()
        await self.client.close()

    # 同步周期

    async def run_cycle(self) -> CycleResult:
        """执行一次完整同步：拉取所有启用的 Feed，然后清理过期文章."""
        return await self._guarded_cycle()

    async def _guarded_cycle(
        self, before: Callable[[FeedStore], Awaitable[None]] | None = None
    ) -> CycleResult:
        """在同步锁内执行周期，before 在拉取之前运行."""
        if self.store is None:
            logger.warning("数据库不可用，跳过同步")
            return CycleResult(status=CycleStatus.UNAVAILABLE, error=STORE_UNAVAILABLE)

        if self._state.syncing:
            return CycleResult(status=CycleStatus.BUSY, error=SYNC_IN_PROGRESS)

        state = self._state
        state.syncing = True
        state.feeds_processed = 0
        state.items_added = 0
        state.last_error = None

        logger.info("开始同步...")

        try:
            items_pruned = await self._execute_cycle(self.store, before)
        except CycleError as e:
            state.last_error = str(e)
            logger.error(f"同步失败: {e}", exc_info=e.__cause__ or e)
            return CycleResult(
                status=CycleStatus.FAILED,
                feeds_processed=state.feeds_processed,
                items_added=state.items_added,
                error=state.last_error,
            )
        finally:
            state.syncing = False

        logger.info(
            f"同步完成: Feed={state.feeds_processed}, "
            f"新增={state.items_added}, 清理={items_pruned}"
        )
        return CycleResult(
            status=CycleStatus.SUCCESS,
            feeds_processed=state.feeds_processed,
            items_added=state.items_added,
            items_pruned=items_pruned,
        )

    async def _execute_cycle(
        self,
        store: FeedStore,
        before: Callable[[FeedStore], Awaitable[None]] | None = None,
    ) -> int:
        """同步周期主体，返回清理的文章数."""
        try:
            if before is not None:
                await before(store)

            await store.ensure_indexes()

            feeds = await store.list_feeds(enabled=True)
            if not feeds:
                logger.info("没有启用的 Feed")
                self._state.last_sync = utcnow()
                return 0

            results = await run_bounded(
                feeds, self.settings.max_concurrent_fetches, self.sync_feed
            )

            items_added = 0
            feeds_processed = 0
            for result in results:
                items_added += result.items_added
                # 失败的 Feed 同样计入
                feeds_processed += 1
            self._state.items_added = items_added
            self._state.feeds_processed = feeds_processed

            items_pruned = await self.prune()

            self._state.last_sync = utcnow()
            return items_pruned
        except CycleError:
            raise
        except Exception as e:
            msg = str(e) or type(e).__name__
            raise CycleError(msg) from e

    async def run_one_feed(self, feed_id: int) -> FeedResult:
        """手动同步单个 Feed（不检查周期锁，不清理）."""
        if self.store is None:
            return FeedResult(feed_id=feed_id, error=STORE_UNAVAILABLE)

        feed = await self.store.get_feed(feed_id)
        if feed is None:
            return FeedResult(feed_id=feed_id, error=FEED_NOT_FOUND)

        return await self.sync_feed(feed)

    async def sync_feed(self, feed: Feed) -> FeedResult:
        """同步单个 Feed，抓取或解析失败记录在 Feed 上而不抛出."""
        store = self._require_store()

        try:
            parsed = await self.client.fetch_feed(feed.url)
        except FeedError as e:
            message = str(e)
            logger.warning(f"同步 Feed 失败 {feed.url}: {message}")
            await store.update_feed(
                feed.id,
                last_fetched_at=utcnow(),
                last_error=message,
            )
            return FeedResult(feed_id=feed.id, error=message)

        meta = parsed.feed
        await store.update_feed(
            feed.id,
            title=meta.title,
            site_url=meta.site_url,
            description=meta.description,
            image_url=meta.image_url,
            last_fetched_at=utcnow(),
            last_error=None,
        )

        # 按源顺序截取（通常最新在前）
        recent_items = parsed.items[: self.settings.max_items_per_feed]

        items_added = 0
        for normalized in recent_items:
            item = Item(
                feed_id=feed.id,
                feed_title=meta.title,
                fetched_at=utcnow(),
                **normalized.model_dump(),
            )
            try:
                result = await store.insert_item_if_absent(item)
            except StoreError:
                logger.exception(f"写入文章失败: {normalized.guid}")
                continue

            if result is UpsertResult.INSERTED:
                items_added += 1

        item_count = await store.count_items(feed_id=feed.id)
        await store.update_feed(feed.id, item_count=item_count)

        logger.info(f"Feed 同步完成: {meta.title} (新增 {items_added} 篇)")
        return FeedResult(feed_id=feed.id, items_added=items_added)

    # 清理

    async def prune(self) -> int:
        """删除超过保留天数的文章，无发布时间的文章不删除."""
        store = self._require_store()
        cutoff = utcnow() - timedelta(days=self.settings.retention_days)

        deleted = await store.delete_items_published_before(cutoff)
        if deleted > 0:
            logger.info(
                f"清理了 {deleted} 篇超过 {self.settings.retention_days} 天的文章"
            )
            await self.recount_items()

        return deleted

    async def recount_items(self) -> None:
        """重新统计所有 Feed 的文章数."""
        store = self._require_store()
        for feed in await store.list_feeds():
            count = await store.count_items(feed_id=feed.id)
            await store.update_feed(feed.id, item_count=count)

    async def clear_and_resync(self) -> ResyncResult:
        """清空所有缓存文章后执行一次完整同步（清空在同步锁内进行）."""
        cleared = 0

        async def clear_items(store: FeedStore) -> None:
            nonlocal cleared
            cleared = await store.delete_items()
            await store.reset_item_counts()
            logger.info(f"已清空 {cleared} 篇文章，开始重新同步")

        cycle = await self._guarded_cycle(before=clear_items)
        return ResyncResult(items_cleared=cleared, cycle=cycle)

    def _require_store(self) -> FeedStore:
        if self.store is None:
            raise CycleError(STORE_UNAVAILABLE)
        return self.store


# 全局引擎实例（由应用生命周期设置）
_engine: SyncEngine | None = None


def get_engine() -> SyncEngine | None:
    """获取同步引擎实例."""
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    """设置同步引擎实例."""
    global _engine
    _engine = engine
