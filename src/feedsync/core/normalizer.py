"""Feed 解析与标准化.

支持三种格式：
- RSS 2.0 / Atom（feedparser 解析）
- JSON Feed (https://jsonfeed.org/)
- Google Reader 风格的聚合器 JSON（FreshRSS 等）

先通过 ``classify`` 判定格式得到对应的文档类型，再由各自的 ``normalize``
映射为统一的 ``ParsedFeed``。
"""

import calendar
import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import feedparser
from dateutil import parser as date_parser
from pydantic import BaseModel, Field

from feedsync.core.errors import FormatError
from feedsync.utils.html_parser import extract_first_image, html_to_text
from feedsync.utils.urls import base_url, is_image_url

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPES = ("application/json", "application/feed+json")
AGGREGATOR_URL_MARKERS = ("f=json", "f=greader")
JSON_FEED_VERSION_PREFIX = "https://jsonfeed.org/"

# FreshRSS 内部状态标签，不属于用户可见分类
INTERNAL_TAG_MARKERS = ("state/com.google/", "state/org.freshrss/")
USER_LABEL_PREFIX = "user/"


class FeedMeta(BaseModel):
    """Feed 级元数据."""

    title: str
    description: str = ""
    site_url: str | None = None
    feed_url: str
    image_url: str | None = None
    language: str | None = None
    last_build_date: datetime | None = None


class NormalizedItem(BaseModel):
    """标准化后的文章."""

    guid: str
    title: str = "Untitled"
    link: str | None = None
    description: str = ""
    content: str = ""
    author: str | None = None
    pub_date: datetime | None = None
    image_url: str | None = None
    categories: list[str] = Field(default_factory=list)
    enclosure: dict[str, Any] | None = None
    origin: dict[str, Any] | None = None
    source_title: str | None = None
    source_url: str | None = None


class ParsedFeed(BaseModel):
    """解析结果."""

    feed: FeedMeta
    items: list[NormalizedItem]


# 时间处理


def to_utc(value: datetime) -> datetime:
    """转为 naive UTC 时间（无时区的按 UTC 处理）."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_epoch_millis(millis: float) -> datetime | None:
    """毫秒时间戳转 datetime，越界返回 None."""
    try:
        return datetime.fromtimestamp(millis / 1000, tz=UTC).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def to_epoch_millis(value: datetime) -> int:
    """naive UTC datetime 转毫秒时间戳."""
    return int(value.replace(tzinfo=UTC).timestamp() * 1000)


def parse_date(value: Any) -> datetime | None:
    """解析各种格式的日期字符串，无法解析时返回 None."""
    if not value:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str):
        return None
    try:
        return to_utc(date_parser.parse(value))
    except (ValueError, OverflowError):
        return None


def _struct_time_to_datetime(value: time.struct_time | None) -> datetime | None:
    if value is None:
        return None
    try:
        return from_epoch_millis(calendar.timegm(value) * 1000)
    except (TypeError, ValueError):
        return None


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def synthesize_guid(feed_url: str, pub_date: datetime | None) -> str:
    """为没有标识的文章生成稳定 guid."""
    stamp = to_epoch_millis(pub_date) if pub_date else "undated"
    return f"{feed_url}#{stamp}"


# 通用字段提取


def pick_image(
    *,
    explicit: str | None = None,
    media: str | None = None,
    enclosure_url: str | None = None,
    content: str | None = None,
) -> str | None:
    """
    按优先级选择文章配图.

    显式图片字段 > media 命名空间 > 图片类型的附件 > 正文中的第一个 <img>
    """
    if explicit:
        return explicit
    if media:
        return media
    if is_image_url(enclosure_url):
        return enclosure_url
    return extract_first_image(content or "")


def _to_int(value: Any) -> int | None:
    number = _to_number(value)
    return int(number) if number is not None else None


def _make_enclosure(url: Any, mime_type: Any, length: Any) -> dict[str, Any] | None:
    if not url:
        return None
    return {
        "url": str(url),
        "type": str(mime_type) if mime_type else None,
        "length": _to_int(length),
    }


def _first(value: Any) -> Any:
    """列表取第一个元素，其他值原样返回."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


# 各格式文档


@dataclass
class SyndicationFeed:
    """RSS 2.0 / Atom 文档."""

    document: Any

    def normalize(self, feed_url: str) -> ParsedFeed:
        meta = self.document.feed
        image = meta.get("image") or {}
        feed = FeedMeta(
            title=_text(meta.get("title")) or "Untitled Feed",
            description=meta.get("subtitle") or meta.get("description") or "",
            site_url=meta.get("link") or base_url(feed_url),
            feed_url=feed_url,
            image_url=(
                image.get("href")
                or image.get("url")
                or meta.get("icon")
                or meta.get("logo")
            ),
            language=meta.get("language"),
            last_build_date=_struct_time_to_datetime(meta.get("updated_parsed")),
        )
        items = [self._normalize_entry(entry, feed_url) for entry in self.document.entries]
        return ParsedFeed(feed=feed, items=items)

    def _normalize_entry(self, entry: Any, feed_url: str) -> NormalizedItem:
        pub_date = _struct_time_to_datetime(
            entry.get("published_parsed")
        ) or _struct_time_to_datetime(entry.get("updated_parsed"))

        summary = entry.get("summary") or ""
        content = self._content(entry) or summary
        snippet = html_to_text(summary or content)

        enclosure = self._enclosure(entry)
        media = _first(entry.get("media_content")) or _first(
            entry.get("media_thumbnail")
        )
        image = entry.get("image") or {}

        return NormalizedItem(
            guid=entry.get("id")
            or entry.get("link")
            or synthesize_guid(feed_url, pub_date),
            title=_text(entry.get("title")) or "Untitled",
            link=entry.get("link"),
            description=snippet or summary,
            content=content,
            author=entry.get("author"),
            pub_date=pub_date,
            image_url=pick_image(
                explicit=image.get("href") if isinstance(image, dict) else None,
                media=media.get("url") if isinstance(media, dict) else None,
                enclosure_url=enclosure["url"] if enclosure else None,
                content=content,
            ),
            categories=self._categories(entry),
            enclosure=enclosure,
        )

    @staticmethod
    def _content(entry: Any) -> str:
        # feedparser 将 content:encoded 和 Atom content 都放在 entry.content
        for block in entry.get("content") or []:
            value = block.get("value")
            if isinstance(value, str) and value.strip():
                return value
        return ""

    @staticmethod
    def _enclosure(entry: Any) -> dict[str, Any] | None:
        enclosure = _first(entry.get("enclosures"))
        if not enclosure:
            return None
        return _make_enclosure(
            enclosure.get("href") or enclosure.get("url"),
            enclosure.get("type"),
            enclosure.get("length"),
        )

    @staticmethod
    def _categories(entry: Any) -> list[str]:
        categories: list[str] = []
        for tag in entry.get("tags") or []:
            name = tag if isinstance(tag, str) else tag.get("term") or tag.get("label")
            if name:
                categories.append(str(name))
        return categories


@dataclass
class JsonFeedSpec:
    """JSON Feed 文档 (https://jsonfeed.org/version/1.1)."""

    document: dict[str, Any]

    def normalize(self, feed_url: str) -> ParsedFeed:
        doc = self.document
        feed = FeedMeta(
            title=_text(doc.get("title")) or "Untitled Feed",
            description=doc.get("description") or "",
            site_url=doc.get("home_page_url") or base_url(feed_url),
            feed_url=doc.get("feed_url") or feed_url,
            image_url=doc.get("icon") or doc.get("favicon"),
            language=doc.get("language"),
        )
        items = [
            self._normalize_item(item, feed_url) for item in doc.get("items") or []
        ]
        return ParsedFeed(feed=feed, items=items)

    @staticmethod
    def _normalize_item(item: dict[str, Any], feed_url: str) -> NormalizedItem:
        content = (
            item.get("content_html")
            or item.get("content_text")
            or item.get("summary")
            or ""
        )

        authors = item.get("authors") or []
        author = next(
            (a.get("name") for a in authors if isinstance(a, dict) and a.get("name")),
            None,
        )
        if author is None and isinstance(item.get("author"), dict):
            author = item["author"].get("name")

        attachment = _first(item.get("attachments"))
        enclosure = (
            _make_enclosure(
                attachment.get("url"),
                attachment.get("mime_type"),
                attachment.get("size_in_bytes"),
            )
            if isinstance(attachment, dict)
            else None
        )

        pub_date = parse_date(item.get("date_published") or item.get("date_modified"))
        guid = item.get("id") or item.get("url") or synthesize_guid(feed_url, pub_date)

        return NormalizedItem(
            guid=str(guid),
            title=_text(item.get("title")) or "Untitled",
            link=item.get("url") or item.get("external_url"),
            description=item.get("summary") or "",
            content=content,
            author=author,
            pub_date=pub_date,
            image_url=pick_image(
                explicit=item.get("image") or item.get("banner_image"),
                enclosure_url=enclosure["url"] if enclosure else None,
                content=content,
            ),
            categories=[str(tag) for tag in item.get("tags") or [] if tag],
            enclosure=enclosure,
        )


@dataclass
class AggregatorFeed:
    """Google Reader API 风格的 JSON（FreshRSS 等聚合器）."""

    document: dict[str, Any]

    def normalize(self, feed_url: str) -> ParsedFeed:
        doc = self.document
        alternate = _first(doc.get("alternate")) or {}
        feed = FeedMeta(
            title=_text(doc.get("title")) or "RSS Feed",
            description=doc.get("description") or "",
            site_url=doc.get("link") or alternate.get("href") or base_url(feed_url),
            feed_url=feed_url,
        )
        items = [
            self._normalize_item(item, feed_url) for item in doc.get("items") or []
        ]
        return ParsedFeed(feed=feed, items=items)

    @staticmethod
    def _inner_content(value: Any) -> str:
        # {"content": "..."} 或直接是字符串
        if isinstance(value, dict):
            return value.get("content") or ""
        if isinstance(value, str):
            return value
        return ""

    @staticmethod
    def _pub_date(item: dict[str, Any]) -> datetime | None:
        published = _to_number(item.get("published"))
        if published:
            return from_epoch_millis(published * 1000)
        usec = _to_number(item.get("timestampUsec"))
        if usec:
            return from_epoch_millis(usec / 1000)
        msec = _to_number(item.get("crawlTimeMsec"))
        if msec:
            return from_epoch_millis(msec)
        return None

    @staticmethod
    def _link(item: dict[str, Any]) -> str | None:
        for key in ("canonical", "alternate"):
            entry = _first(item.get(key))
            if isinstance(entry, dict) and entry.get("href"):
                return entry["href"]
        return item.get("link") or None

    @staticmethod
    def _categories(item: dict[str, Any]) -> list[str]:
        return [
            cat
            for cat in item.get("categories") or []
            if isinstance(cat, str)
            and cat
            and not any(marker in cat for marker in INTERNAL_TAG_MARKERS)
            and not cat.startswith(USER_LABEL_PREFIX)
        ]

    @staticmethod
    def _origin(item: dict[str, Any]) -> dict[str, Any] | None:
        origin = item.get("origin")
        if not isinstance(origin, dict):
            return None
        return {
            "streamId": origin.get("streamId"),
            "title": origin.get("title"),
            "htmlUrl": origin.get("htmlUrl"),
            "feedUrl": origin.get("feedUrl"),
        }

    def _normalize_item(self, item: dict[str, Any], feed_url: str) -> NormalizedItem:
        content = (
            self._inner_content(item.get("content"))
            or self._inner_content(item.get("summary"))
        )
        link = self._link(item)

        raw_enclosure = _first(item.get("enclosure"))
        enclosure = (
            _make_enclosure(
                raw_enclosure.get("href") or raw_enclosure.get("url"),
                raw_enclosure.get("type"),
                raw_enclosure.get("length"),
            )
            if isinstance(raw_enclosure, dict)
            else None
        )

        media = item.get("media")
        media_url = None
        if isinstance(media, dict):
            media_url = (media.get("$") or {}).get("url") or media.get("url")

        pub_date = self._pub_date(item)
        guid = (
            item.get("frss:id")
            or item.get("id")
            or item.get("guid")
            or link
            or synthesize_guid(feed_url, pub_date)
        )

        origin = self._origin(item)

        # 作者只取条目自身字段，origin.title 是来源 Feed 名称而不是作者
        return NormalizedItem(
            guid=str(guid),
            title=_text(item.get("title")) or "Untitled",
            link=link,
            description=self._inner_content(item.get("summary")),
            content=content,
            author=_text(item.get("author")),
            pub_date=pub_date,
            image_url=pick_image(
                explicit=item.get("image"),
                media=media_url,
                enclosure_url=enclosure["url"] if enclosure else None,
                content=content,
            ),
            categories=self._categories(item),
            enclosure=enclosure,
            origin=origin,
            source_title=origin["title"] if origin else None,
            source_url=origin["htmlUrl"] if origin else None,
        )


FeedDocument = SyndicationFeed | JsonFeedSpec | AggregatorFeed


def _wants_json(raw: bytes, content_type: str, source_url: str) -> bool:
    lowered = (content_type or "").lower()
    if any(ct in lowered for ct in JSON_CONTENT_TYPES):
        return True
    if any(marker in source_url for marker in AGGREGATOR_URL_MARKERS):
        return True
    # 部分服务器对 JSON Feed 返回 text/plain
    return raw.lstrip()[:1] == b"{"


def classify_json(document: Any) -> JsonFeedSpec | AggregatorFeed:
    """判定 JSON 文档的格式."""
    if not isinstance(document, dict):
        msg = "Unknown JSON feed format"
        raise FormatError(msg)

    version = document.get("version")
    has_items = isinstance(document.get("items"), list)
    if has_items and not version:
        return AggregatorFeed(document)
    if isinstance(version, str) and version.startswith(JSON_FEED_VERSION_PREFIX):
        return JsonFeedSpec(document)
    if has_items:
        return AggregatorFeed(document)

    msg = "Unknown JSON feed format"
    raise FormatError(msg)


def classify(raw: bytes, content_type: str, source_url: str) -> FeedDocument:
    """
    判定响应内容的格式.

    JSON 优先（Content-Type、URL 标记或内容以 ``{`` 开头），JSON 语法错误时
    回退到 XML 解析。
    """
    headers = {"content-type": content_type} if content_type else None
    if _wants_json(raw, content_type, source_url):
        try:
            document = json.loads(raw)
        except ValueError:
            logger.debug(f"JSON 解析失败，尝试 XML: {source_url}")
            # 声明的 JSON Content-Type 不再传给 XML 解析器
            headers = None
        else:
            return classify_json(document)

    parsed = feedparser.parse(raw, response_headers=headers)
    if not parsed.get("version") and not parsed.entries:
        reason = parsed.get("bozo_exception") or "未识别的 Feed 格式"
        msg = f"无法解析 Feed: {reason}"
        raise FormatError(msg)
    return SyndicationFeed(parsed)


def normalize(raw: bytes, content_type: str, source_url: str) -> ParsedFeed:
    """解析原始响应并标准化为 Feed 元数据和文章列表."""
    document = classify(raw, content_type, source_url)
    try:
        return document.normalize(source_url)
    except FormatError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        msg = f"Feed 内容结构异常: {e}"
        raise FormatError(msg) from e
