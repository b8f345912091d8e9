"""
構造化並行処理 — 並列データ処理

データをチャンクに分割し、チャンクごとにサブタスクを立てて処理する。
同時に動くチャンク数はセマフォで制限する。
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


def partition(items: list, chunk_size: int) -> list[list]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]


async def process_in_chunks(
    items: list,
    worker: Callable[[Any], Awaitable[Any]],
    chunk_size: int = 100,
    max_concurrency: int = 4,
) -> list:
    """各要素に worker を適用する。結果は入力順。1 チャンクでも失敗したら全体が失敗する。"""
    semaphore = asyncio.Semaphore(max_concurrency)

    async def run_chunk(chunk: list) -> list:
        async with semaphore:
            return [await worker(item) for item in chunk]

    chunks = partition(items, chunk_size)
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(run_chunk(chunk)) for chunk in chunks]
    logger.debug("Processed %d items in %d chunks", len(items), len(chunks))
    return [result for task in tasks for result in task.result()]


async def map_reduce(
    items: list,
    mapper: Callable[[Any], Awaitable[Any]],
    reducer: Callable[[Any, Any], Any],
    initial: Any,
    chunk_size: int = 100,
) -> Any:
    """
    チャンクごとに map → 部分 reduce を並行に行い、最後に部分結果を reduce する。

    initial は reducer の単位元であること (合計なら 0)。
    """

    async def reduce_chunk(chunk: list) -> Any:
        mapped = [await mapper(item) for item in chunk]
        return functools.reduce(reducer, mapped, initial)

    async with asyncio.TaskGroup() as tg:
        partials = [tg.create_task(reduce_chunk(chunk)) for chunk in partition(items, chunk_size)]
    return functools.reduce(reducer, (p.result() for p in partials), initial)


async def dataset_statistics(numbers: list[int]) -> dict:
    """合計・最小・最大・偶数/奇数の個数を別々のサブタスクで同時に数える"""
    async with asyncio.TaskGroup() as tg:
        total = tg.create_task(asyncio.to_thread(sum, numbers))
        minimum = tg.create_task(asyncio.to_thread(min, numbers, default=0))
        maximum = tg.create_task(asyncio.to_thread(max, numbers, default=0))
        even = tg.create_task(asyncio.to_thread(_count, numbers, lambda n: n % 2 == 0))

    count = len(numbers)
    return {
        "total_count": count,
        "sum": total.result(),
        "average": total.result() / count if count else 0.0,
        "minimum": minimum.result(),
        "maximum": maximum.result(),
        "even_count": even.result(),
        "odd_count": count - even.result(),
    }


def _count(numbers: list[int], predicate: Callable[[int], bool]) -> int:
    return sum(1 for n in numbers if predicate(n))
