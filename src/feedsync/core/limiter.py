"""有界并发执行."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    tasks: Sequence[T],
    limit: int,
    worker: Callable[[T], Awaitable[R]],
) -> list[R]:
    """
    并发执行 worker，同时运行的数量不超过 limit.

    所有 worker 结束后才返回；如有 worker 抛出异常，在全部结束后抛出第一个异常。

    Args:
        tasks: 待处理对象
        limit: 最大并发数（小于 1 时按 1 处理）
        worker: 处理单个对象的协程函数

    Returns:
        与 tasks 顺序一致的结果列表
    """
    # 使用信号量控制并发
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_with_semaphore(task: T) -> R:
        async with semaphore:
            return await worker(task)

    outcomes = await asyncio.gather(
        *(run_with_semaphore(t) for t in tasks), return_exceptions=True
    )

    results: list[R] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
        results.append(outcome)
    return results
