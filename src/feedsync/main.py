"""FeedSync 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from feedsync.api import feeds, items, sync
from feedsync.config import get_settings
from feedsync.core.sync import SyncEngine, set_engine
from feedsync.models.database import close_db, init_db
from feedsync.models.store import SqlFeedStore

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    store: SqlFeedStore | None = None
    try:
        session_factory = await init_db(app_settings.database_url)
        store = SqlFeedStore(session_factory)
        await store.ensure_indexes()
    except SQLAlchemyError:
        logger.exception("数据库初始化失败，同步功能不可用")
        store = None

    engine = SyncEngine(app_settings, store)
    set_engine(engine)

    if app_settings.sync_enabled:
        logger.info("正在启动定时同步...")
        engine.start_recurring_sync()

    logger.info("FeedSync 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await engine.close()
    set_engine(None)
    await close_db()
    logger.info("FeedSync 已关闭")


app = FastAPI(
    title="FeedSync",
    description="RSS / Atom / JSON Feed 订阅同步服务",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(feeds.router)
app.include_router(items.router)
app.include_router(sync.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedSync",
        "version": "0.1.0",
        "description": "RSS 订阅同步服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
