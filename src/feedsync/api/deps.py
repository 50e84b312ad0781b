"""API 依赖."""

from fastapi import HTTPException

from feedsync.core.subscriptions import SubscriptionService
from feedsync.core.sync import SyncEngine, get_engine
from feedsync.models.store import FeedStore


def require_engine() -> SyncEngine:
    """获取同步引擎，未初始化时返回 503."""
    engine = get_engine()
    if engine is None:
        raise HTTPException(status_code=503, detail="服务尚未就绪")
    return engine


def require_store() -> FeedStore:
    """获取存储，不可用时返回 503."""
    engine = require_engine()
    if engine.store is None:
        raise HTTPException(status_code=503, detail="数据库不可用")
    return engine.store


def get_subscriptions() -> SubscriptionService:
    """获取订阅管理服务."""
    engine = require_engine()
    return SubscriptionService(require_store(), engine.client)
