"""Item 文章模型."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Index
from sqlmodel import Field, SQLModel

from feedsync.models.feed import utcnow


class Item(SQLModel, table=True):
    """Feed 中的一篇文章，写入后不再修改."""

    __tablename__ = "items"  # type: ignore[assignment]
    __table_args__ = (
        Index("ix_items_feed_id_guid", "feed_id", "guid", unique=True),
    )

    id: int | None = Field(default=None, primary_key=True)
    feed_id: int = Field(foreign_key="feeds.id", index=True, description="关联 Feed")
    guid: str = Field(description="Feed 内唯一标识")
    feed_title: str | None = Field(default=None, description="写入时的 Feed 标题")
    title: str = Field(default="Untitled", description="标题")
    link: str | None = Field(default=None, description="原文链接")
    description: str | None = Field(default=None, description="摘要")
    content: str | None = Field(default=None, description="HTML 内容")
    author: str | None = Field(default=None, description="作者")
    pub_date: datetime | None = Field(default=None, sa_column=Column(DateTime))
    image_url: str | None = Field(default=None, description="配图 URL")
    categories: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    enclosure: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    # 聚合器（FreshRSS 等）转发第三方 Feed 时的来源信息
    origin: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    source_title: str | None = Field(default=None, description="原始来源标题")
    source_url: str | None = Field(default=None, description="原始来源网站")
    # 首次写入时间
    fetched_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime, nullable=False)
    )


Index("ix_items_pub_date_desc", Item.__table__.c.pub_date.desc())  # type: ignore[attr-defined]
Index("ix_items_fetched_at_desc", Item.__table__.c.fetched_at.desc())  # type: ignore[attr-defined]
