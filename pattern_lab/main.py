"""
Pattern Lab — FastAPI エントリーポイント

デザインパターンの学習用デモを 1 つのアプリにまとめる。

  /api/outbox     Transactional Outbox (注文 + アウトボックス)
  /api/cqrs       CQRS (コマンド / イベントストア / リードモデル)
  /api/observer   Observer (ニュース配信)
  /api/strategy   Strategy (決済方法の切り替え)
  /api/structured 構造化並行処理 (タスクスコープ・並列処理・サービス集約)

起動時にバックグラウンドで 3 つのループを回す。

┌───────────────┐  5s  ┌──────────────────┐
│ outbox_events │ ───▶ │ OutboxPublisher  │ ──▶ ログ (+ Redis)
└───────────────┘      └──────────────────┘
┌───────────────┐  5s  ┌──────────────────┐
│ event_store   │ ───▶ │ projection loop  │ ──▶ リードモデル
└───────────────┘      └──────────────────┘
                 毎日 2 時  処理済みアウトボックスを掃除
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from . import config
from .cqrs import routes as cqrs_routes
from .cqrs.scheduler import run_projection_loop
from .db import create_engine, create_session_factory, init_db
from .exceptions import ConflictError, NotFoundError
from .observer import routes as observer_routes
from .observer.news import NewsAgency
from .outbox import routes as outbox_routes
from .outbox.publisher import MessagePublisher, OutboxPublisher, run_cleanup_loop, run_publisher_loop
from .strategy import routes as strategy_routes
from .strategy.processor import PaymentProcessor
from .structured import routes as structured_routes

logger = logging.getLogger(__name__)


def create_app(engine: AsyncEngine | None = None, *, run_workers: bool = True) -> FastAPI:
    """
    アプリを組み立てる。

    run_workers=False ならバックグラウンドループを起動しない
    (テストでループを手動で回すため)。
    """
    engine = engine or create_engine(config.DATABASE_URL)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)

        redis = None
        if config.REDIS_URL:
            redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
            app.state.outbox_publisher.message_publisher.redis = redis

        shutdown_event = asyncio.Event()
        tasks = []
        if run_workers:
            publisher = app.state.outbox_publisher
            tasks = [
                asyncio.create_task(
                    run_publisher_loop(publisher, config.OUTBOX_POLL_INTERVAL, shutdown_event)
                ),
                asyncio.create_task(
                    run_cleanup_loop(publisher, config.OUTBOX_CLEANUP_HOUR, shutdown_event)
                ),
                asyncio.create_task(
                    run_projection_loop(session_factory, config.PROJECTION_POLL_INTERVAL, shutdown_event)
                ),
            ]
        logger.info("Pattern Lab started (workers=%s)", run_workers)
        yield

        shutdown_event.set()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if redis is not None:
            await redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Pattern Lab", lifespan=lifespan)

    app.state.session_factory = session_factory
    app.state.outbox_publisher = OutboxPublisher(
        session_factory,
        MessagePublisher(latency=config.PUBLISH_LATENCY),
        retention_days=config.OUTBOX_RETENTION_DAYS,
    )
    app.state.news_agency = NewsAgency()
    app.state.observer_registry = {}
    app.state.payment_processor = PaymentProcessor()
    app.state.service_latency_scale = 1.0

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(outbox_routes.router)
    for router in cqrs_routes.routers:
        app.include_router(router)
    app.include_router(observer_routes.router)
    app.include_router(strategy_routes.router)
    app.include_router(structured_routes.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "pattern-lab"}

    return app


config.setup_logging()
app = create_app()


def run() -> None:
    """`pattern-lab` コマンドのエントリーポイント"""
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
