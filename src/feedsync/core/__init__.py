"""核心业务逻辑."""

from feedsync.core.client import FeedClient, FeedFetchClient
from feedsync.core.errors import CycleError, FeedError, FetchError, FormatError
from feedsync.core.subscriptions import SubscriptionService
from feedsync.core.sync import CycleResult, CycleStatus, SyncEngine, SyncState

__all__ = [
    "CycleError",
    "CycleResult",
    "CycleStatus",
    "FeedClient",
    "FeedError",
    "FeedFetchClient",
    "FetchError",
    "FormatError",
    "SubscriptionService",
    "SyncEngine",
    "SyncState",
]
