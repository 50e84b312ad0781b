"""订阅管理 - 添加、删除、启用/停用 Feed."""

import logging

from feedsync.core.client import FeedClient
from feedsync.models.feed import Feed, utcnow
from feedsync.models.store import DuplicateKeyError, FeedStore
from feedsync.utils.urls import is_valid_url, normalize_url

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    """订阅操作错误."""


class InvalidFeedUrlError(SubscriptionError):
    """URL 格式无效."""


class DuplicateFeedError(SubscriptionError):
    """Feed 已订阅."""


class FeedNotFoundError(SubscriptionError):
    """Feed 不存在."""


class SubscriptionService:
    """订阅管理服务."""

    def __init__(self, store: FeedStore, client: FeedClient) -> None:
        self.store = store
        self.client = client

    async def add_feed(self, url: str) -> Feed:
        """
        订阅新的 Feed.

        重复检查在任何网络请求之前完成；随后抓取一次 Feed 以校验格式并获取元数据。

        Raises:
            InvalidFeedUrlError: URL 无效
            DuplicateFeedError: 已订阅
            FeedError: 抓取或解析失败
        """
        if not url or not is_valid_url(url.strip()):
            msg = f"无效的 Feed URL: {url}"
            raise InvalidFeedUrlError(msg)

        normalized_url = normalize_url(url)

        if await self.store.get_feed_by_url(normalized_url):
            msg = f"Feed 已存在: {normalized_url}"
            raise DuplicateFeedError(msg)

        parsed = await self.client.fetch_feed(normalized_url)
        meta = parsed.feed

        feed = Feed(
            url=normalized_url,
            title=meta.title,
            site_url=meta.site_url,
            description=meta.description,
            image_url=meta.image_url,
            enabled=True,
            added_at=utcnow(),
        )
        try:
            feed = await self.store.add_feed(feed)
        except DuplicateKeyError as e:
            msg = f"Feed 已存在: {normalized_url}"
            raise DuplicateFeedError(msg) from e

        logger.info(f"已订阅 Feed: {feed.title} ({feed.url})")
        return feed

    async def remove_feed(self, feed_id: int) -> int:
        """删除 Feed 及其全部文章，返回删除的文章数."""
        feed = await self.store.get_feed(feed_id)
        if feed is None:
            msg = f"Feed 不存在: {feed_id}"
            raise FeedNotFoundError(msg)

        deleted = await self.store.delete_items(feed_id=feed_id)
        await self.store.delete_feed(feed_id)
        logger.info(f"已删除 Feed: {feed.title} (文章 {deleted} 篇)")
        return deleted

    async def set_enabled(self, feed_id: int, enabled: bool) -> Feed:
        """启用或停用 Feed."""
        feed = await self.store.get_feed(feed_id)
        if feed is None:
            msg = f"Feed 不存在: {feed_id}"
            raise FeedNotFoundError(msg)

        await self.store.update_feed(feed_id, enabled=enabled)
        feed.enabled = enabled
        return feed
