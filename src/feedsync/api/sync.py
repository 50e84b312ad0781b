"""同步 API."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from feedsync.api.deps import require_engine
from feedsync.core.sync import SYNC_IN_PROGRESS, CycleResult, CycleStatus, SyncEngine

router = APIRouter(prefix="/api", tags=["sync"])


def _cycle_to_dict(result: CycleResult) -> dict:
    return {
        "success": result.ok,
        "status": result.status,
        "feeds_processed": result.feeds_processed,
        "items_added": result.items_added,
        "items_pruned": result.items_pruned,
        "error": result.error,
    }


def _raise_for_status(result: CycleResult) -> None:
    if result.status == CycleStatus.BUSY:
        raise HTTPException(status_code=409, detail=SYNC_IN_PROGRESS)
    if result.status == CycleStatus.UNAVAILABLE:
        raise HTTPException(status_code=503, detail=result.error)


@router.get("/status")
async def get_status(engine: SyncEngine = Depends(require_engine)) -> dict:
    """获取同步状态."""
    state = engine.snapshot()
    next_sync = engine.next_sync

    data = {
        "syncing": state.syncing,
        "last_sync": state.last_sync.isoformat() if state.last_sync else None,
        "next_sync": next_sync.isoformat() if next_sync else None,
        "last_error": state.last_error,
        "feeds_processed": state.feeds_processed,
        "items_added": state.items_added,
        "sync_interval_ms": engine.settings.sync_interval_ms,
        "recurring": engine.scheduler is not None and engine.scheduler.running,
    }

    if engine.store is not None:
        data["feeds"] = await engine.store.count_feeds()
        data["enabled_feeds"] = await engine.store.count_feeds(enabled=True)
        data["items"] = await engine.store.count_items()

    return data


@router.post("/refresh", status_code=202)
async def trigger_refresh(
    background_tasks: BackgroundTasks,
    engine: SyncEngine = Depends(require_engine),
) -> dict:
    """在后台触发一次同步."""
    if engine.is_syncing:
        raise HTTPException(status_code=409, detail=SYNC_IN_PROGRESS)
    if engine.store is None:
        raise HTTPException(status_code=503, detail="数据库不可用")

    background_tasks.add_task(engine.run_cycle)
    return {"message": "同步已开始"}


@router.post("/sync")
async def trigger_sync(engine: SyncEngine = Depends(require_engine)) -> dict:
    """执行一次同步并等待完成."""
    result = await engine.run_cycle()
    _raise_for_status(result)
    return _cycle_to_dict(result)


@router.post("/clear-resync")
async def clear_and_resync(engine: SyncEngine = Depends(require_engine)) -> dict:
    """清空所有文章并重新同步."""
    result = await engine.clear_and_resync()
    _raise_for_status(result.cycle)
    return {"items_cleared": result.items_cleared, **_cycle_to_dict(result.cycle)}
