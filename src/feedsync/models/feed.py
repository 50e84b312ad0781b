"""Feed 订阅源模型."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """当前 UTC 时间（naive，SQLite 不保存时区）."""
    return datetime.now(UTC).replace(tzinfo=None)


class Feed(SQLModel, table=True):
    """RSS 订阅源."""

    __tablename__ = "feeds"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(unique=True, index=True, description="Feed URL（唯一）")
    title: str = Field(default="Untitled Feed", description="Feed 标题")
    site_url: str | None = Field(default=None, description="网站 URL")
    description: str | None = Field(default=None, description="Feed 描述")
    image_url: str | None = Field(default=None, description="图标 URL")
    enabled: bool = Field(default=True, index=True, description="是否参与同步")
    # 时间列显式使用 naive DateTime，存储 UTC
    added_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime, nullable=False)
    )
    # 最近一次抓取时间（无论成功与否）
    last_fetched_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime)
    )
    last_error: str | None = Field(default=None, description="最近一次抓取错误")
    item_count: int = Field(default=0, ge=0, description="缓存文章数")
