"""数据库初始化和会话管理."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# 注册表结构
from feedsync.models.feed import Feed  # noqa: F401
from feedsync.models.item import Item  # noqa: F401

logger = logging.getLogger(__name__)

# 全局引擎和会话工厂
_engine: Any = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    """创建引擎并返回会话工厂."""
    engine = create_async_engine(database_url, echo=False)
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """创建所有表（已存在则跳过）."""
    engine = session_factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db(database_url: str) -> async_sessionmaker[AsyncSession]:
    """初始化数据库，创建所有表."""
    global _engine, _session_factory

    _session_factory = create_session_factory(database_url)
    _engine = _session_factory.kw["bind"]
    await create_tables(_session_factory)
    logger.info(f"数据库已初始化: {database_url}")
    return _session_factory


async def close_db() -> None:
    """释放数据库连接."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
