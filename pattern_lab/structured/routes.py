"""
構造化並行処理 — HTTP エンドポイント (/api/structured)

各エンドポイントは模擬サブタスク (name, delay, fail) のリストを受け取り、
結合戦略ごとの振る舞いの違いを結果と所要時間で返す。
"""

import asyncio
import logging
import time
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..exceptions import AllSubtasksFailedError, SubtaskFailedError
from . import aggregation, processing, scopes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/structured", tags=["structured"])

Section = Literal["user_info", "orders", "payment", "recommendations", "notifications"]
Seconds = Annotated[float, Field(gt=0, le=30, allow_inf_nan=False)]


def get_services(request: Request, failing: list[Section] = Query(default=[])) -> aggregation.DashboardServices:
    return aggregation.DashboardServices(request.app.state.service_latency_scale, failing)


# ── Request Models ───────────────────────────────


class SimulatedTask(BaseModel):
    name: str = Field(min_length=1)
    delay: float = Field(default=0.1, ge=0, le=10, allow_inf_nan=False)
    fail: bool = False


class ScopeRequest(BaseModel):
    tasks: list[SimulatedTask] = Field(min_length=1)


class TimedScopeRequest(ScopeRequest):
    timeout: Seconds = 1.0


class NumbersRequest(BaseModel):
    numbers: list[int] = Field(min_length=1)
    chunk_size: int = Field(default=100, gt=0)


class UsersRequest(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    batch_size: int = Field(default=10, gt=0)
    timeout: Seconds = 0.5


async def simulate_task(task: SimulatedTask) -> str:
    await asyncio.sleep(task.delay)
    if task.fail:
        raise RuntimeError(f"Task {task.name} failed")
    return f"Processed: {task.name}"


def _factories(tasks: list[SimulatedTask]) -> list[scopes.TaskFactory]:
    return [lambda task=task: simulate_task(task) for task in tasks]


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


# ── Task Scopes ──────────────────────────────────


@router.post("/fail-fast")
async def fail_fast(req: ScopeRequest):
    """全部成功するか、最初の失敗で残りを取り消す"""
    started = time.perf_counter()
    try:
        results = await scopes.run_all(_factories(req.tasks))
    except SubtaskFailedError as e:
        return {"success": False, "error": str(e), "elapsed_ms": _elapsed_ms(started)}
    return {"success": True, "results": results, "elapsed_ms": _elapsed_ms(started)}


@router.post("/timeout")
async def with_timeout(req: TimedScopeRequest):
    started = time.perf_counter()
    try:
        results = await scopes.run_with_timeout(_factories(req.tasks), req.timeout)
    except SubtaskFailedError as e:
        return {"success": False, "error": str(e), "elapsed_ms": _elapsed_ms(started)}
    except TimeoutError:
        return {"success": False, "error": f"Timed out after {req.timeout}s", "elapsed_ms": _elapsed_ms(started)}
    return {"success": True, "results": results, "elapsed_ms": _elapsed_ms(started)}


@router.post("/first-success")
async def first_success(req: TimedScopeRequest):
    started = time.perf_counter()
    try:
        result = await scopes.first_success(_factories(req.tasks), req.timeout)
    except AllSubtasksFailedError as e:
        return {"success": False, "error": str(e), "elapsed_ms": _elapsed_ms(started)}
    except TimeoutError:
        return {"success": False, "error": f"Timed out after {req.timeout}s", "elapsed_ms": _elapsed_ms(started)}
    return {"success": True, "result": result, "elapsed_ms": _elapsed_ms(started)}


@router.post("/partial")
async def partial(req: ScopeRequest):
    started = time.perf_counter()
    outcome = await scopes.collect_all(_factories(req.tasks))
    return {**outcome.to_dict(), "elapsed_ms": _elapsed_ms(started)}


@router.post("/majority")
async def majority(req: TimedScopeRequest):
    started = time.perf_counter()
    outcome = await scopes.wait_for_majority(_factories(req.tasks), req.timeout)
    return {**outcome.to_dict(), "elapsed_ms": _elapsed_ms(started)}


# ── Parallel Processing ──────────────────────────


@router.post("/parallel/statistics")
async def statistics(req: NumbersRequest):
    return await processing.dataset_statistics(req.numbers)


@router.post("/parallel/sum-of-squares")
async def sum_of_squares(req: NumbersRequest):
    async def square(n: int) -> int:
        return n * n

    total = await processing.map_reduce(req.numbers, square, lambda a, b: a + b, 0, req.chunk_size)
    return {
        "sum_of_squares": total,
        "chunks": len(processing.partition(req.numbers, req.chunk_size)),
    }


# ── Web Service Aggregation ──────────────────────


@router.get("/dashboard/{user_id}")
async def dashboard(
    user_id: str,
    fallback: bool = True,
    timeout: float = Query(default=0.5, gt=0, le=30, allow_inf_nan=False),
    services: aggregation.DashboardServices = Depends(get_services),
):
    if fallback:
        return await aggregation.aggregate_dashboard_with_fallback(services, user_id, timeout)
    try:
        return await aggregation.aggregate_dashboard(services, user_id)
    except SubtaskFailedError as e:
        raise HTTPException(503, str(e)) from e


@router.post("/dashboards")
async def dashboards(req: UsersRequest, services: aggregation.DashboardServices = Depends(get_services)):
    started = time.perf_counter()
    results = await aggregation.aggregate_many(services, req.user_ids, req.timeout, req.batch_size)
    return {"dashboards": results, "elapsed_ms": _elapsed_ms(started)}


@router.post("/demo")
async def run_demo(request: Request):
    """各結合戦略を短いサブタスクで 1 回ずつ実行する"""
    logger.info("Running structured concurrency demo")
    fast = [SimulatedTask(name=f"task-{i}", delay=0.05) for i in range(3)]
    with_failure = [*fast, SimulatedTask(name="broken", delay=0.01, fail=True)]
    services = aggregation.DashboardServices(request.app.state.service_latency_scale, failing={"payment"})

    results = {}
    try:
        results["fail_fast"] = await scopes.run_all(_factories(with_failure))
    except SubtaskFailedError as e:
        results["fail_fast"] = str(e)
    results["first_success"] = await scopes.first_success(_factories(with_failure))
    results["partial"] = (await scopes.collect_all(_factories(with_failure))).to_dict()
    results["majority"] = (await scopes.wait_for_majority(_factories(with_failure), 1.0)).to_dict()
    results["statistics"] = await processing.dataset_statistics(list(range(1, 101)))
    results["dashboard"] = await aggregation.aggregate_dashboard_with_fallback(services, "demo-user", 1.0)
    return {"results": results}
