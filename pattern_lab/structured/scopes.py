"""
構造化並行処理 — タスクスコープと結合戦略

サブタスクは必ず親のスコープ内で始まり、スコープを抜ける前に終わる。
スコープを抜けた後に動き続けるタスクは残らない。

    関数                結合のしかた
    ─────────────────   ──────────────────────────────────────
    run_all             全成功で結果リスト、1 つでも失敗したら残りを取り消す
    run_with_timeout    run_all + 全体の制限時間
    first_success       最初に成功した結果を返し、残りを取り消す
    collect_all         全部待って成功と失敗を分けて返す
    wait_for_majority   過半数が成功した時点で打ち切る
    retry_with_backoff  失敗したら 1s, 2s, 4s ... 待って再試行

サブタスクは「引数なしで呼ぶとコルーチンを返す関数」(TaskFactory) で渡す。
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import AllSubtasksFailedError, RetryExhaustedError, SubtaskFailedError

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Coroutine[Any, Any, Any]]


# ── 結果 ────────────────────────────────────────


@dataclass
class PartialResult:
    successes: list = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def success_rate(self) -> float:
        return len(self.successes) / self.total * 100 if self.total else 0.0

    def to_dict(self) -> dict:
        return {
            "successes": self.successes,
            "failures": self.failures,
            "success_count": len(self.successes),
            "failure_count": len(self.failures),
            "success_rate": self.success_rate,
        }


@dataclass
class MajorityResult(PartialResult):
    total_tasks: int = 0

    @property
    def has_majority(self) -> bool:
        return len(self.successes) > self.total_tasks // 2

    @property
    def success_rate(self) -> float:
        return len(self.successes) / self.total_tasks * 100 if self.total_tasks else 0.0

    def to_dict(self) -> dict:
        return {**super().to_dict(), "total_tasks": self.total_tasks, "has_majority": self.has_majority}


# ── スコープ ─────────────────────────────────────


async def run_all(factories: list[TaskFactory]) -> list:
    """
    全サブタスクを並行に実行し、入力順の結果リストを返す。

    1 つでも例外を送出したら残りのサブタスクは取り消され、
    SubtaskFailedError (errors に失敗した例外) が送出される。
    """
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(factory()) for factory in factories]
    except ExceptionGroup as eg:
        logger.warning("Task scope failed, remaining subtasks cancelled: %s", eg.exceptions[0])
        raise SubtaskFailedError(list(eg.exceptions)) from eg
    return [task.result() for task in tasks]


async def run_with_timeout(factories: list[TaskFactory], timeout: float) -> list:
    """制限時間を超えたら全サブタスクを取り消して TimeoutError"""
    try:
        async with asyncio.timeout(timeout):
            return await run_all(factories)
    except TimeoutError:
        logger.warning("Task scope timed out after %ss", timeout)
        raise


async def first_success(factories: list[TaskFactory], timeout: float | None = None) -> Any:
    """
    最初に成功したサブタスクの結果を返す。

    失敗したサブタスクは無視して他を待ち続ける。
    全部失敗したら AllSubtasksFailedError。
    """
    tasks = [asyncio.create_task(factory()) for factory in factories]
    errors: list[BaseException] = []
    try:
        async with asyncio.timeout(timeout):
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                # 同時に終わったものは入力順で判定する
                for task in sorted(done, key=tasks.index):
                    if task.exception() is None:
                        return task.result()
                    errors.append(task.exception())
    finally:
        await _cancel_all(tasks)
    raise AllSubtasksFailedError(errors)


async def collect_all(factories: list[TaskFactory]) -> PartialResult:
    """全サブタスクを最後まで実行し、部分的な失敗を許す"""
    results = await asyncio.gather(*(factory() for factory in factories), return_exceptions=True)

    outcome = PartialResult()
    for result in results:
        if isinstance(result, BaseException):
            outcome.failures.append(str(result) or type(result).__name__)
        else:
            outcome.successes.append(result)
    if outcome.failures:
        logger.info("Partial failure: %d succeeded, %d failed", len(outcome.successes), len(outcome.failures))
    return outcome


async def wait_for_majority(factories: list[TaskFactory], timeout: float) -> MajorityResult:
    """
    過半数が成功した時点、または過半数に届かないことが確定した時点で打ち切る。

    制限時間内に決まらなければ、それまでの結果を返す。
    打ち切った時点で残っているサブタスクは取り消す。
    """
    total = len(factories)
    needed = total // 2 + 1
    outcome = MajorityResult(total_tasks=total)

    tasks = [asyncio.create_task(factory()) for factory in factories]
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    pending = set(tasks)
    try:
        while pending and len(outcome.successes) < needed and len(outcome.failures) <= total - needed:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("Majority wait timed out after %ss", timeout)
                break
            done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=tasks.index):
                if task.exception() is None:
                    outcome.successes.append(task.result())
                else:
                    outcome.failures.append(str(task.exception()))
    finally:
        await _cancel_all(tasks)
    return outcome


async def retry_with_backoff(factory: TaskFactory, max_attempts: int = 3, base_delay: float = 1.0) -> Any:
    """失敗するたびに base_delay * 2^(n-1) 秒待って再試行する"""
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await factory()
        except Exception as e:
            last_error = e
            if attempt == max_attempts:
                break
            delay = base_delay * 2 ** (attempt - 1)
            logger.info("Attempt %d/%d failed (%s), retrying in %.2fs", attempt, max_attempts, e, delay)
            await asyncio.sleep(delay)
    raise RetryExhaustedError(max_attempts, last_error)


async def _cancel_all(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
