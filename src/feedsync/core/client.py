"""Feed 抓取客户端."""

import logging
from dataclasses import dataclass

import httpx

from feedsync.config import Settings
from feedsync.core.errors import FetchError
from feedsync.core.normalizer import ParsedFeed, normalize

logger = logging.getLogger(__name__)

ACCEPT_HEADER = (
    "application/feed+json, application/json, application/rss+xml, "
    "application/atom+xml, application/xml, text/xml, */*"
)


@dataclass
class FetchResponse:
    """原始响应."""

    content: bytes
    content_type: str
    url: str


class FeedFetchClient:
    """HTTP 抓取，所有失败统一包装为 FetchError."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_redirects: int = 5,
        user_agent: str = "FeedSync-RSS-Reader/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            headers={"User-Agent": user_agent, "Accept": ACCEPT_HEADER},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "FeedFetchClient":
        """根据应用配置创建客户端."""
        return cls(
            timeout=settings.fetch_timeout_seconds,
            max_redirects=settings.max_redirects,
            user_agent=settings.user_agent,
            transport=transport,
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def fetch(self, url: str) -> FetchResponse:
        """请求 URL，返回原始内容和 Content-Type."""
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            msg = f"请求超时: {url}"
            raise FetchError(msg) from e
        except httpx.TooManyRedirects as e:
            msg = f"重定向次数过多: {url}"
            raise FetchError(msg) from e
        except httpx.HTTPError as e:
            msg = f"请求失败: {e}"
            raise FetchError(msg) from e

        if not response.is_success:
            msg = f"HTTP {response.status_code}: {response.reason_phrase}"
            raise FetchError(msg, status_code=response.status_code)

        return FetchResponse(
            content=response.content,
            content_type=response.headers.get("content-type", ""),
            url=str(response.url),
        )


class FeedClient:
    """抓取并解析 Feed."""

    def __init__(self, fetcher: FeedFetchClient) -> None:
        self.fetcher = fetcher

    async def close(self) -> None:
        """关闭底层 HTTP 客户端."""
        await self.fetcher.close()

    async def fetch_feed(self, url: str) -> ParsedFeed:
        """
        抓取并标准化 Feed.

        Raises:
            FetchError: 网络请求失败
            FormatError: 内容无法解析
        """
        response = await self.fetcher.fetch(url)
        parsed = normalize(response.content, response.content_type, url)
        logger.debug(f"解析完成: {url} ({len(parsed.items)} 条)")
        return parsed
