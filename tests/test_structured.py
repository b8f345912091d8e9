import asyncio
import time

import pytest

from pattern_lab.exceptions import AllSubtasksFailedError, RetryExhaustedError, SubtaskFailedError
from pattern_lab.structured import aggregation, processing, scopes
from pattern_lab.structured.aggregation import DashboardServices


def _value(result, delay: float = 0.0):
    async def run():
        await asyncio.sleep(delay)
        return result

    return run


def _error(message: str, delay: float = 0.0):
    async def run():
        await asyncio.sleep(delay)
        raise RuntimeError(message)

    return run


def _hanging(cancelled: list, name: str):
    """取り消されるまで終わらないサブタスク。取り消されたら name を記録する。"""

    async def run():
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(name)
            raise

    return run


# ── スコープ ─────────────────────────────────────


@pytest.mark.asyncio
async def test_run_all_keeps_input_order():
    results = await scopes.run_all([_value("slow", 0.05), _value("fast", 0.0), _value("mid", 0.02)])
    assert results == ["slow", "fast", "mid"]


@pytest.mark.asyncio
async def test_run_all_cancels_siblings_on_first_failure():
    cancelled = []
    started = time.perf_counter()

    with pytest.raises(SubtaskFailedError) as exc_info:
        await scopes.run_all([_hanging(cancelled, "a"), _error("boom", 0.01), _hanging(cancelled, "b")])

    assert time.perf_counter() - started < 5
    assert sorted(cancelled) == ["a", "b"]
    assert [str(e) for e in exc_info.value.errors] == ["boom"]


@pytest.mark.asyncio
async def test_run_with_timeout_cancels_everything():
    cancelled = []

    with pytest.raises(TimeoutError):
        await scopes.run_with_timeout([_value("done"), _hanging(cancelled, "slow")], timeout=0.05)

    assert cancelled == ["slow"]


@pytest.mark.asyncio
async def test_first_success_skips_failures_and_cancels_the_rest():
    cancelled = []

    result = await scopes.first_success([
        _error("primary down"),
        _value("secondary", 0.02),
        _hanging(cancelled, "cache"),
    ])

    assert result == "secondary"
    assert cancelled == ["cache"]


@pytest.mark.asyncio
async def test_first_success_when_everything_fails():
    with pytest.raises(AllSubtasksFailedError) as exc_info:
        await scopes.first_success([_error("a"), _error("b", 0.01)])
    assert len(exc_info.value.errors) == 2

    with pytest.raises(TimeoutError):
        await scopes.first_success([_value("late", 1.0)], timeout=0.02)


@pytest.mark.asyncio
async def test_collect_all_reports_partial_failure():
    outcome = await scopes.collect_all([_value(1), _error("bad input"), _value(3, 0.01)])

    assert outcome.successes == [1, 3]
    assert outcome.failures == ["bad input"]
    assert outcome.success_rate == pytest.approx(200 / 3)


@pytest.mark.asyncio
async def test_majority_stops_once_reached():
    cancelled = []

    outcome = await scopes.wait_for_majority(
        [_value("a"), _value("b", 0.01), _hanging(cancelled, "c"), _value("d", 0.02), _hanging(cancelled, "e")],
        timeout=2.0,
    )

    assert outcome.has_majority
    assert outcome.successes == ["a", "b", "d"]
    assert sorted(cancelled) == ["c", "e"]
    assert outcome.to_dict()["success_rate"] == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_majority_gives_up_when_unreachable():
    cancelled = []

    outcome = await scopes.wait_for_majority(
        [_error("x"), _error("y", 0.01), _hanging(cancelled, "z")], timeout=2.0
    )

    assert not outcome.has_majority
    assert outcome.failures == ["x", "y"]
    assert cancelled == ["z"]


@pytest.mark.asyncio
async def test_majority_returns_what_it_has_on_timeout():
    cancelled = []

    outcome = await scopes.wait_for_majority(
        [_value("a"), _hanging(cancelled, "b"), _hanging(cancelled, "c")], timeout=0.05
    )

    assert outcome.successes == ["a"]
    assert not outcome.has_majority
    assert sorted(cancelled) == ["b", "c"]


@pytest.mark.asyncio
async def test_retry_backs_off_exponentially(monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds):
        delays.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(scopes.asyncio, "sleep", fake_sleep)

    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("unreachable")
        return "ok"

    assert await scopes.retry_with_backoff(flaky, max_attempts=4, base_delay=1.0) == "ok"
    assert delays == [1.0, 2.0]

    async def always_failing():
        raise ConnectionError("still unreachable")

    with pytest.raises(RetryExhaustedError) as exc_info:
        await scopes.retry_with_backoff(always_failing, max_attempts=3, base_delay=0.5)
    assert exc_info.value.attempts == 3
    assert delays[2:] == [0.5, 1.0]


# ── 並列処理 ────────────────────────────────────


def test_partition():
    assert processing.partition([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert processing.partition([], 3) == []
    with pytest.raises(ValueError):
        processing.partition([1], 0)


@pytest.mark.asyncio
async def test_process_in_chunks_limits_concurrency_and_keeps_order():
    running = 0
    peak = 0

    async def double(n):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.001)
        running -= 1
        return n * 2

    results = await processing.process_in_chunks(list(range(20)), double, chunk_size=3, max_concurrency=2)

    assert results == [n * 2 for n in range(20)]
    assert peak == 2


@pytest.mark.asyncio
async def test_map_reduce_combines_partial_results():
    async def square(n):
        return n * n

    total = await processing.map_reduce(list(range(1, 11)), square, lambda a, b: a + b, 0, chunk_size=3)
    assert total == 385


@pytest.mark.asyncio
async def test_dataset_statistics():
    stats = await processing.dataset_statistics([4, -3, 7, 10, 0])

    assert stats == {
        "total_count": 5,
        "sum": 18,
        "average": 3.6,
        "minimum": -3,
        "maximum": 10,
        "even_count": 3,
        "odd_count": 2,
    }


# ── サービス集約 ─────────────────────────────────


@pytest.mark.asyncio
async def test_dashboard_fetches_every_section():
    dashboard = await aggregation.aggregate_dashboard(DashboardServices(latency_scale=0.01), "u1")

    assert dashboard["user_info"]["name"] == "User u1"
    assert len(dashboard["orders"]) == 2
    assert dashboard["payment"]["verified"] is True
    assert dashboard["degraded"] == []


@pytest.mark.asyncio
async def test_dashboard_without_fallback_fails_as_a_whole():
    services = DashboardServices(latency_scale=0.01, failing={"orders"})

    with pytest.raises(SubtaskFailedError, match="orders service unavailable"):
        await aggregation.aggregate_dashboard(services, "u1")


@pytest.mark.asyncio
async def test_dashboard_with_fallback_fills_failed_and_slow_sections():
    services = DashboardServices(latency_scale=1.0, failing={"payment"})

    # 0.175 秒以内に応答するのは payment (失敗) と notifications だけ
    dashboard = await aggregation.aggregate_dashboard_with_fallback(services, "u2", timeout=0.175)

    assert dashboard["degraded"] == ["orders", "payment", "recommendations", "user_info"]
    assert dashboard["user_info"]["email"] == "unknown@example.com"
    assert dashboard["orders"] == []
    assert dashboard["payment"]["verified"] is False
    assert dashboard["notifications"]["unread"] == 3


@pytest.mark.asyncio
async def test_aggregate_many_in_batches():
    services = DashboardServices(latency_scale=0.01, failing={"recommendations"})

    dashboards = await aggregation.aggregate_many(services, ["a", "b", "c"], timeout=1.0, batch_size=2)

    assert list(dashboards) == ["a", "b", "c"]
    assert all(d["degraded"] == ["recommendations"] for d in dashboards.values())
    assert dashboards["c"]["user_info"]["user_id"] == "c"
