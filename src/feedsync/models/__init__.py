"""数据模型."""

from feedsync.models.database import close_db, init_db
from feedsync.models.feed import Feed
from feedsync.models.item import Item
from feedsync.models.store import FeedStore, SqlFeedStore, StoreError, UpsertResult

__all__ = [
    "Feed",
    "FeedStore",
    "Item",
    "SqlFeedStore",
    "StoreError",
    "UpsertResult",
    "close_db",
    "init_db",
]
