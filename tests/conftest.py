"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from xml.sax.saxutils import escape

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedsync.config import Settings
from feedsync.core.client import FeedClient, FeedFetchClient
from feedsync.core.sync import SyncEngine
from feedsync.models.database import create_session_factory, create_tables
from feedsync.models.feed import Feed, utcnow
from feedsync.models.store import SqlFeedStore


class FakeRemote:
    """模拟远端 Feed 服务器：按 URL 返回预设响应并记录请求."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, str, bytes]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        body: str | bytes,
        content_type: str = "application/rss+xml",
        status_code: int = 200,
    ) -> None:
        """注册一个 URL 的响应."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = (status_code, content_type, body)

    def fail(self, url: str, status_code: int = 500) -> None:
        """让 URL 返回错误状态码."""
        self.routes[url] = (status_code, "text/plain", b"error")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        status_code, content_type, body = route
        return httpx.Response(
            status_code, content=body, headers={"content-type": content_type}
        )

    def count(self, url: str) -> int:
        """某个 URL 被请求的次数."""
        return sum(1 for request in self.requests if str(request.url) == url)


def recent(hours: float = 1) -> datetime:
    """若干小时前的 naive UTC 时间."""
    return utcnow().replace(microsecond=0) - timedelta(hours=hours)


def rss_xml(
    title: str = "Test Feed",
    items: list[dict] | None = None,
    link: str = "https://example.com",
) -> str:
    """
    生成 RSS 2.0 文档.

    每个 item 支持 guid / title / link / description / pub_date（datetime 或 None）
    """
    parts = []
    for item in items or []:
        fields = []
        if item.get("guid"):
            fields.append(f"<guid>{escape(item['guid'])}</guid>")
        fields.append(f"<title>{escape(item.get('title', 'Item'))}</title>")
        if item.get("link"):
            fields.append(f"<link>{escape(item['link'])}</link>")
        if item.get("description"):
            fields.append(
                f"<description>{escape(item['description'])}</description>"
            )
        if item.get("pub_date"):
            stamp = format_datetime(item["pub_date"].replace(tzinfo=UTC))
            fields.append(f"<pubDate>{stamp}</pubDate>")
        parts.append(f"<item>{''.join(fields)}</item>")

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{escape(title)}</title>"
        f"<link>{escape(link)}</link>"
        "<description>Test description</description>"
        f"{''.join(parts)}"
        "</channel></rss>"
    )


def make_items(prefix: str, count: int) -> list[dict]:
    """生成 count 个带 guid 和近期发布时间的 item."""
    return [
        {
            "guid": f"{prefix}-{i}",
            "title": f"{prefix} item {i}",
            "link": f"https://example.com/{prefix}/{i}",
            "pub_date": recent(hours=i + 1),
        }
        for i in range(count)
    ]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """测试配置（关闭定时同步）."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        sync_enabled=False,
        max_items_per_feed=50,
        retention_days=30,
        max_concurrent_fetches=3,
    )


@pytest.fixture
async def session_factory(
    settings: Settings,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的临时文件数据库."""
    factory = create_session_factory(settings.database_url)
    await create_tables(factory)
    yield factory
    await factory.kw["bind"].dispose()


@pytest.fixture
async def store(session_factory: async_sessionmaker[AsyncSession]) -> SqlFeedStore:
    """创建测试用的存储."""
    return SqlFeedStore(session_factory)


@pytest.fixture
def remote() -> FakeRemote:
    """模拟远端服务器."""
    return FakeRemote()


@pytest.fixture
async def feed_client(
    settings: Settings, remote: FakeRemote
) -> AsyncGenerator[FeedClient, None]:
    """使用模拟传输层的 Feed 客户端."""
    fetcher = FeedFetchClient.from_settings(
        settings, transport=httpx.MockTransport(remote.handler)
    )
    client = FeedClient(fetcher)
    yield client
    await client.close()


@pytest.fixture
async def engine(
    settings: Settings, store: SqlFeedStore, feed_client: FeedClient
) -> AsyncGenerator[SyncEngine, None]:
    """创建测试用的同步引擎."""
    sync_engine = SyncEngine(settings, store, feed_client)
    yield sync_engine
    sync_engine.stop_recurring_sync()


@pytest.fixture
def add_feed(store: SqlFeedStore) -> Callable:
    """直接向存储写入 Feed 的工厂函数."""

    async def _add(url: str, title: str = "Test Feed", enabled: bool = True) -> Feed:
        return await store.add_feed(Feed(url=url, title=title, enabled=enabled))

    return _add
