"""文章 API."""

from fastapi import APIRouter, Depends, HTTPException, Query

from feedsync.api.deps import require_store
from feedsync.models.item import Item
from feedsync.models.store import FeedStore

router = APIRouter(prefix="/api/items", tags=["items"])


def _item_to_dict(item: Item, include_content: bool = True) -> dict:
    data = {
        "id": item.id,
        "feed_id": item.feed_id,
        "feed_title": item.feed_title,
        "guid": item.guid,
        "title": item.title,
        "link": item.link,
        "description": item.description,
        "author": item.author,
        "pub_date": item.pub_date.isoformat() if item.pub_date else None,
        "image_url": item.image_url,
        "categories": item.categories,
        "enclosure": item.enclosure,
        "origin": item.origin,
        "source_title": item.source_title,
        "source_url": item.source_url,
        "fetched_at": item.fetched_at.isoformat(),
    }
    if include_content:
        data["content"] = item.content
    return data


@router.get("")
async def list_items(
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, description="每页数量"),
    feed_id: int | None = Query(None, description="按 Feed 筛选"),
    include_content: bool = Query(False, description="是否返回正文"),
    store: FeedStore = Depends(require_store),
) -> dict:
    """获取文章列表（按发布时间倒序）."""
    # 每页数量限制在 1-100
    limit = max(1, min(limit, 100))

    items = await store.list_items(page=page, limit=limit, feed_id=feed_id)
    total = await store.count_items(feed_id=feed_id)

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "items": [_item_to_dict(item, include_content) for item in items],
    }


@router.get("/{item_id}")
async def get_item(
    item_id: int,
    store: FeedStore = Depends(require_store),
) -> dict:
    """获取文章详情."""
    item = await store.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="文章不存在")

    return _item_to_dict(item)
