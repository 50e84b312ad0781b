"""Feed 订阅源 API."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from feedsync.api.deps import get_subscriptions, require_engine, require_store
from feedsync.core.errors import FeedError
from feedsync.core.subscriptions import (
    DuplicateFeedError,
    FeedNotFoundError,
    InvalidFeedUrlError,
    SubscriptionService,
)
from feedsync.core.sync import FEED_NOT_FOUND, SyncEngine
from feedsync.models.feed import Feed
from feedsync.models.store import FeedStore

router = APIRouter(prefix="/api/feeds", tags=["feeds"])


class FeedCreateRequest(BaseModel):
    """添加订阅请求."""

    url: str


class FeedUpdateRequest(BaseModel):
    """更新订阅请求."""

    enabled: bool


def _feed_to_dict(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "url": feed.url,
        "title": feed.title,
        "site_url": feed.site_url,
        "description": feed.description,
        "image_url": feed.image_url,
        "enabled": feed.enabled,
        "added_at": feed.added_at.isoformat(),
        "last_fetched_at": (
            feed.last_fetched_at.isoformat() if feed.last_fetched_at else None
        ),
        "last_error": feed.last_error,
        "item_count": feed.item_count,
    }


@router.get("")
async def list_feeds(store: FeedStore = Depends(require_store)) -> dict:
    """获取订阅列表."""
    feeds = await store.list_feeds()
    return {
        "total": len(feeds),
        "items": [_feed_to_dict(feed) for feed in feeds],
    }


@router.post("", status_code=201)
async def add_feed(
    request: FeedCreateRequest,
    service: SubscriptionService = Depends(get_subscriptions),
) -> dict:
    """添加订阅（会先抓取一次以校验 Feed）."""
    try:
        feed = await service.add_feed(request.url)
    except InvalidFeedUrlError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except DuplicateFeedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except FeedError as e:
        raise HTTPException(status_code=400, detail=f"无法获取 Feed: {e}") from e

    return _feed_to_dict(feed)


@router.delete("/{feed_id}")
async def delete_feed(
    feed_id: int,
    service: SubscriptionService = Depends(get_subscriptions),
) -> dict:
    """删除订阅及其文章."""
    try:
        deleted = await service.remove_feed(feed_id)
    except FeedNotFoundError as e:
        raise HTTPException(status_code=404, detail=FEED_NOT_FOUND) from e

    return {"id": feed_id, "items_deleted": deleted}


@router.patch("/{feed_id}")
async def update_feed(
    feed_id: int,
    request: FeedUpdateRequest,
    service: SubscriptionService = Depends(get_subscriptions),
) -> dict:
    """启用或停用订阅."""
    try:
        feed = await service.set_enabled(feed_id, request.enabled)
    except FeedNotFoundError as e:
        raise HTTPException(status_code=404, detail=FEED_NOT_FOUND) from e

    return _feed_to_dict(feed)


@router.post("/{feed_id}/sync")
async def sync_feed(
    feed_id: int,
    engine: SyncEngine = Depends(require_engine),
) -> dict:
    """立即同步单个订阅."""
    result = await engine.run_one_feed(feed_id)
    if result.error == FEED_NOT_FOUND:
        raise HTTPException(status_code=404, detail=FEED_NOT_FOUND)

    return {
        "feed_id": result.feed_id,
        "success": result.error is None,
        "items_added": result.items_added,
        "error": result.error,
    }
