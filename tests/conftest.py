"""Shared fixtures: a throwaway SQLite database per test and an ASGI client."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from pattern_lab.db import create_engine, create_session_factory, init_db
from pattern_lab.main import create_app
from pattern_lab.outbox.publisher import MessagePublisher, OutboxPublisher


class FakeRedis:
    """Records publish() calls instead of talking to a server."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []
        self.closed = False

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    async def aclose(self) -> None:
        self.closed = True


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> sessionmaker:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory: sessionmaker) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def publisher(session_factory: sessionmaker, fake_redis: FakeRedis) -> OutboxPublisher:
    return OutboxPublisher(session_factory, MessagePublisher(redis=fake_redis, latency=0))


@pytest.fixture
def app(engine: AsyncEngine):
    app = create_app(engine, run_workers=False)
    app.state.outbox_publisher.message_publisher.latency = 0
    app.state.service_latency_scale = 0.01
    return app


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
