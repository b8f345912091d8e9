"""
構造化並行処理 — 複数サービスの集約

ダッシュボード 1 画面分のデータを 5 つの (模擬) サービスから同時に取得する。

  ┌────────────┐
  │ user_info  │──┐
  │ orders     │──┤
  │ payment    │──┼──▶ dashboard
  │ recommend… │──┤
  │ notific…   │──┘
  └────────────┘

aggregate_dashboard                 1 つでも失敗したら全体が失敗する
aggregate_dashboard_with_fallback   失敗・タイムアウトしたセクションは既定値で埋める
"""

import asyncio
import functools
import logging
import time
from collections.abc import Iterable

from ..exceptions import ServiceUnavailableError
from .processing import partition
from .scopes import run_all

logger = logging.getLogger(__name__)

SECTIONS = ("user_info", "orders", "payment", "recommendations", "notifications")

# 各サービスの応答時間 (秒)
DEFAULT_LATENCY = {
    "user_info": 0.2,
    "orders": 0.25,
    "payment": 0.15,
    "recommendations": 0.3,
    "notifications": 0.1,
}

_SAMPLE_DATA = {
    "user_info": lambda uid: {
        "user_id": uid, "name": f"User {uid}", "email": f"{uid}@example.com", "status": "ACTIVE",
    },
    "orders": lambda uid: [
        {"order_id": f"{uid}-ORD-1", "status": "DELIVERED", "amount": 45_000},
        {"order_id": f"{uid}-ORD-2", "status": "SHIPPED", "amount": 12_500},
    ],
    "payment": lambda uid: {
        "user_id": uid, "balance": 150_000, "currency": "KRW", "default_method": "Credit Card", "verified": True,
    },
    "recommendations": lambda uid: [
        {"product_id": "P-100", "name": "Wireless Mouse", "score": 0.92},
        {"product_id": "P-200", "name": "USB-C Hub", "score": 0.87},
    ],
    "notifications": lambda uid: {"status": "OK", "unread": 3, "total": 12, "urgent": 1},
}

_FALLBACK_DATA = {
    "user_info": lambda uid: {"user_id": uid, "name": "User", "email": "unknown@example.com", "status": "unknown"},
    "orders": lambda uid: [],
    "payment": lambda uid: {
        "user_id": uid, "balance": 0, "currency": "KRW", "default_method": "unknown", "verified": False,
    },
    "recommendations": lambda uid: [],
    "notifications": lambda uid: {"status": "unknown", "unread": 0, "total": 0, "urgent": 0},
}


class DashboardServices:
    """
    下流サービスの模擬。

    latency_scale で全体の応答時間を縮め、failing に含めたセクションは
    待ち時間の後に ServiceUnavailableError を送出する。
    """

    def __init__(self, latency_scale: float = 1.0, failing: Iterable[str] = ()) -> None:
        self.latency_scale = latency_scale
        self.failing = set(failing)

    async def fetch(self, section: str, user_id: str):
        await asyncio.sleep(DEFAULT_LATENCY[section] * self.latency_scale)
        if section in self.failing:
            raise ServiceUnavailableError(f"{section} service unavailable")
        return _SAMPLE_DATA[section](user_id)


async def aggregate_dashboard(services: DashboardServices, user_id: str) -> dict:
    started = time.perf_counter()
    results = await run_all([functools.partial(services.fetch, section, user_id) for section in SECTIONS])
    return _dashboard(user_id, results, [], started)


async def aggregate_dashboard_with_fallback(
    services: DashboardServices,
    user_id: str,
    timeout: float,
) -> dict:
    started = time.perf_counter()
    degraded: list[str] = []

    async def fetch_or_fallback(section: str):
        try:
            async with asyncio.timeout(timeout):
                return await services.fetch(section, user_id)
        except (ServiceUnavailableError, TimeoutError) as e:
            logger.warning("Using fallback for %s (user=%s): %s", section, user_id, str(e) or "timed out")
            degraded.append(section)
            return _FALLBACK_DATA[section](user_id)

    results = await run_all([functools.partial(fetch_or_fallback, section) for section in SECTIONS])
    return _dashboard(user_id, results, degraded, started)


async def aggregate_many(
    services: DashboardServices,
    user_ids: list[str],
    timeout: float,
    batch_size: int = 10,
) -> dict[str, dict]:
    """batch_size 人ずつ並行に集約する。バッチ同士は順番に処理する。"""
    dashboards: dict[str, dict] = {}
    for batch in partition(user_ids, batch_size):
        results = await run_all([
            functools.partial(aggregate_dashboard_with_fallback, services, user_id, timeout)
            for user_id in batch
        ])
        dashboards.update(zip(batch, results))
    return dashboards


def _dashboard(user_id: str, results: list, degraded: list[str], started: float) -> dict:
    return {
        "user_id": user_id,
        **dict(zip(SECTIONS, results)),
        "degraded": sorted(degraded),
        "load_time_ms": round((time.perf_counter() - started) * 1000),
    }
