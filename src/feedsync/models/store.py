"""存储适配层 - Feed / Item 的持久化操作.

同步引擎只依赖 ``FeedStore`` 协议。``SqlFeedStore`` 基于 SQLModel 异步会话实现，
每个操作使用独立会话，因此可以被并发的 Feed 同步任务安全调用。
"""

import enum
import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedsync.models.feed import Feed
from feedsync.models.item import Item

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """存储操作失败."""


class DuplicateKeyError(StoreError):
    """唯一键冲突."""


ITEM_KEY_INDEX = "ix_items_feed_id_guid"


def is_item_key_violation(error: IntegrityError) -> bool:
    """判断是否为 (feed_id, guid) 唯一索引冲突."""
    detail = str(error.orig)
    # SQLite 报告列名，PostgreSQL 报告索引名
    return ITEM_KEY_INDEX in detail or "items.feed_id, items.guid" in detail


class UpsertResult(enum.Enum):
    """insert-if-absent 的结果."""

    INSERTED = "inserted"
    ALREADY_PRESENT = "already_present"


class FeedStore(Protocol):
    """同步引擎使用的存储接口."""

    async def ensure_indexes(self) -> None: ...

    async def list_feeds(self, enabled: bool | None = None) -> list[Feed]: ...

    async def get_feed(self, feed_id: int) -> Feed | None: ...

    async def get_feed_by_url(self, url: str) -> Feed | None: ...

    async def add_feed(self, feed: Feed) -> Feed: ...

    async def update_feed(self, feed_id: int, **fields: Any) -> None: ...

    async def delete_feed(self, feed_id: int) -> bool: ...

    async def count_feeds(self, enabled: bool | None = None) -> int: ...

    async def reset_item_counts(self) -> None: ...

    async def insert_item_if_absent(self, item: Item) -> UpsertResult:
        """(feed_id, guid) 不存在时写入，已存在时不做任何修改."""
        async with self._session_factory() as session:
            try:
                if await self._find_item_id(session, item) is not None:
                    return UpsertResult.ALREADY_PRESENT

                session.add(item)
                await session.commit()
                return UpsertResult.INSERTED
            except IntegrityError as e:
                await session.rollback()
                if is_item_key_violation(e):
                    # 并发写入同一 (feed_id, guid)
                    return UpsertResult.ALREADY_PRESENT
                msg = f"写入文章失败 ({item.guid}): {e.orig}"
                raise StoreError(msg) from e
            except SQLAlchemyError as e:
                await session.rollback()
                msg = f"写入文章失败 ({item.guid}): {e}"
                raise StoreError(msg) from e

    async def _find_item_id(self, session: AsyncSession, item: Item) -> int | None:
        stmt = select(Item.id).where(Item.feed_id == item.feed_id, Item.guid == item.guid)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_items(self, feed_id: int | None = None) -> int:
        """统计文章数量."""
        stmt = select(func.count()).select_from(Item)
        if feed_id is not None:
            stmt = stmt.where(Item.feed_id == feed_id)
        return await self._scalar_count(stmt)

    async def list_items(
        self, page: int = 1, limit: int = 20, feed_id: int | None = None
    ) -> list[Item]:
        """分页获取文章，按发布时间倒序."""
        offset = (max(page, 1) - 1) * limit
        stmt = (
            select(Item)
            .order_by(
                Item.pub_date.desc().nulls_last(),  # type: ignore[union-attr]
                Item.id.desc(),  # type: ignore[union-attr]
            )
            .offset(offset)
            .limit(limit)
        )
        if feed_id is not None:
            stmt = stmt.where(Item.feed_id == feed_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_item(self, item_id: int) -> Item | None:
        """按 ID 获取文章."""
        async with self._session_factory() as session:
            return await session.get(Item, item_id)

    async def delete_items(self, feed_id: int | None = None) -> int:
        """删除文章（指定 Feed 或全部），返回删除数量."""
        stmt = delete(Item)
        if feed_id is not None:
            stmt = stmt.where(Item.feed_id == feed_id)  # type: ignore[arg-type]
        return await self._execute_delete(stmt)

    async def delete_items_published_before(self, cutoff: datetime) -> int:
        """删除发布时间早于 cutoff 的文章，发布时间为空的不删除."""
        stmt = delete(Item).where(
            Item.pub_date.is_not(None),  # type: ignore[union-attr]
            Item.pub_date < cutoff,  # type: ignore[operator]
        )
        return await self._execute_delete(stmt)

    async def _execute_delete(self, stmt: Any) -> int:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def _scalar_count(self, stmt: Any) -> int:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

