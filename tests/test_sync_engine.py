"""测试同步引擎."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from feedsync.config import Settings
from feedsync.core.client import FeedClient
from feedsync.core.normalizer import normalize
from feedsync.core.sync import (
    FEED_NOT_FOUND,
    SYNC_IN_PROGRESS,
    CycleStatus,
    FeedResult,
    SyncEngine,
)
from feedsync.models.feed import Feed, utcnow
from feedsync.models.item import Item
from feedsync.models.store import SqlFeedStore, StoreError, UpsertResult

from conftest import FakeRemote, make_items, recent, rss_xml

FEED_A = "https://a.example.com/feed"
FEED_B = "https://b.example.com/feed"
FEED_C = "https://c.example.com/feed"


class TestRunCycle:
    """完整同步周期."""

    async def test_sync_adds_items(self, engine, store, remote: FakeRemote, add_feed):
        """首次同步写入所有文章并更新 Feed 元数据."""
        feed = await add_feed(FEED_A, title="Placeholder")
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 3)))

        result = await engine.run_cycle()

        assert result.ok
        assert result.feeds_processed == 1
        assert result.items_added == 3

        stored = await store.get_feed(feed.id)
        assert stored.title == "Feed A"
        assert stored.item_count == 3
        assert stored.last_error is None
        assert stored.last_fetched_at is not None

        items = await store.list_items(feed_id=feed.id)
        assert {i.feed_title for i in items} == {"Feed A"}

    async def test_second_cycle_is_idempotent(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """远端未变化时第二次同步不新增，也不修改已有内容."""
        await add_feed(FEED_A)
        items = make_items("a", 3)
        remote.add(FEED_A, rss_xml("Feed A", items))
        await engine.run_cycle()

        # 远端修改标题，已有记录不应被覆盖
        items[0]["title"] = "Edited title"
        remote.add(FEED_A, rss_xml("Feed A", items))

        result = await engine.run_cycle()

        assert result.items_added == 0
        assert await store.count_items() == 3
        titles = {i.title for i in await store.list_items()}
        assert "Edited title" not in titles

    async def test_duplicate_guid_in_one_document(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """同一文档中重复的 guid 只保存一条."""
        await add_feed(FEED_A)
        item = {"guid": "same", "title": "Dup", "pub_date": recent()}
        remote.add(FEED_A, rss_xml("Feed A", [item, dict(item)]))

        result = await engine.run_cycle()

        assert result.items_added == 1
        assert await store.count_items() == 1

    async def test_partial_failure_is_isolated(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """单个 Feed 失败不影响其他 Feed，且保留其已缓存文章."""
        await add_feed(FEED_A)
        feed_b = await add_feed(FEED_B)
        await add_feed(FEED_C)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 2)))
        remote.add(FEED_B, rss_xml("Feed B", make_items("b", 4)))
        remote.add(FEED_C, rss_xml("Feed C", make_items("c", 3)))
        await engine.run_cycle()

        remote.add(FEED_A, rss_xml("Feed A", make_items("a2", 1)))
        remote.fail(FEED_B, status_code=500)
        remote.add(FEED_C, rss_xml("Feed C", make_items("c2", 2)))

        result = await engine.run_cycle()

        assert result.ok
        assert result.feeds_processed == 3
        assert result.items_added == 3

        failed = await store.get_feed(feed_b.id)
        assert failed.last_error == "HTTP 500: Internal Server Error"
        assert failed.last_fetched_at is not None
        assert await store.count_items(feed_id=feed_b.id) == 4

    async def test_error_cleared_after_recovery(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """恢复成功后清除 Feed 上的错误."""
        feed = await add_feed(FEED_A)
        remote.fail(FEED_A, status_code=404)
        await engine.run_cycle()
        assert (await store.get_feed(feed.id)).last_error is not None

        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 1)))
        await engine.run_cycle()

        assert (await store.get_feed(feed.id)).last_error is None

    async def test_items_capped_per_feed(
        self, settings: Settings, store, feed_client, remote: FakeRemote, add_feed
    ):
        """每个 Feed 每次最多写入 max_items_per_feed 篇，按源顺序截取."""
        capped_settings = settings.model_copy(update={"max_items_per_feed": 2})
        capped = SyncEngine(capped_settings, store, feed_client)
        await add_feed(FEED_A)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 5)))

        result = await capped.run_cycle()

        assert result.items_added == 2
        guids = {i.guid for i in await store.list_items()}
        assert guids == {"a-0", "a-1"}

    async def test_disabled_feed_not_fetched(
        self, engine, remote: FakeRemote, add_feed
    ):
        """停用的 Feed 不参与同步."""
        await add_feed(FEED_A, enabled=False)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 1)))

        result = await engine.run_cycle()

        assert result.feeds_processed == 0
        assert remote.count(FEED_A) == 0

    async def test_empty_feed_list(self, engine):
        """没有 Feed 时正常完成并更新 last_sync."""
        result = await engine.run_cycle()

        assert result.status == CycleStatus.SUCCESS
        assert result.feeds_processed == 0
        assert result.items_added == 0

        state = engine.snapshot()
        assert state.syncing is False
        assert state.last_sync is not None
        assert state.last_error is None
        assert engine.next_sync == state.last_sync + timedelta(
            milliseconds=engine.settings.sync_interval_ms
        )

    async def test_state_after_cycle(self, engine, remote: FakeRemote, add_feed):
        """同步完成后状态记录本次结果."""
        await add_feed(FEED_A)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 2)))

        await engine.run_cycle()

        state = engine.snapshot()
        assert state.syncing is False
        assert state.feeds_processed == 1
        assert state.items_added == 2

    async def test_snapshot_is_a_copy(self, engine):
        """修改快照不影响引擎状态."""
        snapshot = engine.snapshot()
        snapshot.syncing = True
        snapshot.last_error = "changed"

        assert engine.is_syncing is False
        assert engine.snapshot().last_error is None


class TestMutualExclusion:
    """同步周期互斥."""

    async def test_busy_while_syncing(self, settings: Settings, store, add_feed):
        """同步进行中再次触发直接返回 busy，且不修改计数."""
        await add_feed(FEED_A)
        gate = asyncio.Event()

        async def slow_fetch(url: str):
            await gate.wait()
            return normalize(
                rss_xml("Feed A", make_items("a", 2)).encode(), "application/rss+xml", url
            )

        client = AsyncMock(spec=FeedClient)
        client.fetch_feed.side_effect = slow_fetch
        engine = SyncEngine(settings, store, client)

        first = asyncio.create_task(engine.run_cycle())
        await asyncio.sleep(0)
        assert engine.is_syncing

        second = await engine.run_cycle()
        assert second.status == CycleStatus.BUSY
        assert second.error == SYNC_IN_PROGRESS
        assert engine.snapshot().items_added == 0

        gate.set()
        result = await first

        assert result.ok
        assert result.items_added == 2
        assert engine.is_syncing is False

    async def test_clear_and_resync_rejected_while_syncing(
        self, settings: Settings, store, add_feed
    ):
        """同步进行中不允许清空重建."""
        await add_feed(FEED_A)
        gate = asyncio.Event()

        async def slow_fetch(url: str):
            await gate.wait()
            return normalize(rss_xml("Feed A").encode(), "application/rss+xml", url)

        client = AsyncMock(spec=FeedClient)
        client.fetch_feed.side_effect = slow_fetch
        engine = SyncEngine(settings, store, client)

        first = asyncio.create_task(engine.run_cycle())
        await asyncio.sleep(0)

        result = await engine.clear_and_resync()
        assert result.items_cleared == 0
        assert result.cycle.status == CycleStatus.BUSY

        gate.set()
        await first

    async def test_cycle_rejected_while_clearing(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """清空重建开始后即持有同步锁，清空期间触发的同步返回 busy."""
        await add_feed(FEED_A)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 3)))
        await engine.run_cycle()

        clearing = asyncio.create_task(engine.clear_and_resync())
        await asyncio.sleep(0)
        assert engine.is_syncing

        second = await engine.run_cycle()
        assert second.status == CycleStatus.BUSY

        result = await clearing
        assert result.items_cleared == 3
        assert result.cycle.ok
        assert result.cycle.items_added == 3
        assert await store.count_items() == 3


class TestFailures:
    """周期级失败."""

    async def test_store_unavailable(self, settings: Settings, feed_client):
        """没有存储时跳过同步."""
        engine = SyncEngine(settings, None, feed_client)

        result = await engine.run_cycle()

        assert result.status == CycleStatus.UNAVAILABLE
        assert engine.is_syncing is False

    async def test_store_failure_recorded(self, settings: Settings, feed_client):
        """存储异常中止本次周期并记录错误，状态恢复空闲."""
        store = AsyncMock(spec=SqlFeedStore)
        store.list_feeds.side_effect = RuntimeError("database is locked")
        engine = SyncEngine(settings, store, feed_client)

        result = await engine.run_cycle()

        assert result.status == CycleStatus.FAILED
        assert result.error == "database is locked"
        state = engine.snapshot()
        assert state.syncing is False
        assert state.last_error == "database is locked"
        assert state.last_sync is None

        # 失败后可以再次运行
        store.list_feeds.side_effect = None
        store.list_feeds.return_value = []
        assert (await engine.run_cycle()).ok
        assert engine.snapshot().last_error is None

    async def test_failed_cycle_waits_for_all_feeds(self, engine, add_feed):
        """某个 Feed 任务抛出异常时，等待其余 Feed 结束后才结束周期."""
        await add_feed(FEED_A)
        await add_feed(FEED_B)
        await add_feed(FEED_C)
        active = 0
        finished: list[str] = []

        async def sync_feed(feed):
            nonlocal active
            active += 1
            try:
                if feed.url == FEED_A:
                    raise RuntimeError("database is locked")
                await asyncio.sleep(0.05)
                finished.append(feed.url)
                return FeedResult(feed_id=feed.id)
            finally:
                active -= 1

        engine.sync_feed = sync_feed

        result = await engine.run_cycle()

        assert result.status == CycleStatus.FAILED
        assert result.error == "database is locked"
        assert active == 0
        assert sorted(finished) == [FEED_B, FEED_C]
        assert engine.is_syncing is False

    async def test_item_store_error_skipped(
        self, settings: Settings, session_factory, feed_client, remote: FakeRemote
    ):
        """单篇文章写入失败时记录日志并跳过，其余文章正常写入."""

        class FailingStore(SqlFeedStore):
            async def insert_item_if_absent(self, item: Item) -> UpsertResult:
                if item.guid == "a-1":
                    msg = "disk I/O error"
                    raise StoreError(msg)
                return await super().insert_item_if_absent(item)

        store = FailingStore(session_factory)
        feed = await store.add_feed(Feed(url=FEED_A))
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 3)))
        engine = SyncEngine(settings, store, feed_client)

        result = await engine.run_cycle()

        assert result.ok
        assert result.items_added == 2
        stored = await store.get_feed(feed.id)
        assert stored.last_error is None
        assert stored.item_count == 2
        assert {i.guid for i in await store.list_items()} == {"a-0", "a-2"}


class TestPrune:
    """过期文章清理."""

    async def test_prune_keeps_undated(self, engine, store: SqlFeedStore, add_feed):
        """超过保留天数的文章被删除，无发布时间的保留."""
        feed = await add_feed(FEED_A)
        now = utcnow()
        for guid, pub_date in (
            ("old", now - timedelta(days=40)),
            ("recent", now - timedelta(days=1)),
            ("undated", None),
        ):
            await store.insert_item_if_absent(
                Item(feed_id=feed.id, guid=guid, pub_date=pub_date)
            )
        await store.update_feed(feed.id, item_count=3)

        deleted = await engine.prune()

        assert deleted == 1
        assert {i.guid for i in await store.list_items()} == {"recent", "undated"}
        assert (await store.get_feed(feed.id)).item_count == 2

    async def test_cycle_prunes_old_items(
        self, engine, store, remote: FakeRemote, add_feed
    ):
        """同步周期结束时清理过期文章."""
        await add_feed(FEED_A)
        items = make_items("a", 2)
        items.append(
            {"guid": "ancient", "title": "Ancient", "pub_date": recent(hours=24 * 60)}
        )
        remote.add(FEED_A, rss_xml("Feed A", items))

        result = await engine.run_cycle()

        assert result.items_added == 3
        assert result.items_pruned == 1
        assert await store.count_items() == 2


class TestSingleFeed:
    """单个 Feed 操作."""

    async def test_run_one_feed(self, engine, store, remote: FakeRemote, add_feed):
        """手动同步单个 Feed."""
        feed = await add_feed(FEED_A)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 2)))

        result = await engine.run_one_feed(feed.id)

        assert result.error is None
        assert result.items_added == 2
        assert await store.count_items(feed_id=feed.id) == 2

    async def test_run_one_feed_unknown(self, engine):
        """不存在的 Feed."""
        result = await engine.run_one_feed(9999)

        assert result.error == FEED_NOT_FOUND
        assert result.items_added == 0

    async def test_run_one_feed_failure(self, engine, store, remote: FakeRemote, add_feed):
        """单个 Feed 失败时返回错误信息."""
        feed = await add_feed(FEED_A)
        remote.fail(FEED_A, status_code=502)

        result = await engine.run_one_feed(feed.id)

        assert result.error == "HTTP 502: Bad Gateway"
        assert (await store.get_feed(feed.id)).last_error == result.error


class TestClearAndResync:
    """清空并重新同步."""

    async def test_clear_and_resync(self, engine, store, remote: FakeRemote, add_feed):
        """清空所有文章后重新拉取."""
        feed = await add_feed(FEED_A)
        remote.add(FEED_A, rss_xml("Feed A", make_items("a", 3)))
        await engine.run_cycle()

        result = await engine.clear_and_resync()

        assert result.items_cleared == 3
        assert result.cycle.ok
        assert result.cycle.items_added == 3
        assert (await store.get_feed(feed.id)).item_count == 3
