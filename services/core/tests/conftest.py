"""Pytest configuration and fixtures for Cold AI Core tests.

This module provides fixtures for:
- Database: SQLite in-memory engine shared by services and the API
- HTTP client: AsyncClient for FastAPI testing, anonymous and signed in
- Mocks: Redis, the edge function collaborator and the task queue
"""

import asyncio
from collections.abc import AsyncGenerator, Generator
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from coldai_core.config import Settings
from coldai_core.domain.models import Base
from coldai_core.infrastructure.edge_functions import EdgeFunctionClient, EdgeFunctionConfig

TEST_USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def rules_path(tmp_path) -> str:
    return str(tmp_path / "prospect_rules.json")


@pytest.fixture
def test_settings(rules_path) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        functions_base_url="https://functions.test/v1",
        functions_api_key="test-anon-key",
        web_base_url="http://localhost:3000",
        prospect_rules_path=rules_path,
        installation_id="test",
        poll_interval_seconds=0.01,
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only autoincrements INTEGER PRIMARY KEY columns, so BigInteger
    # is compiled as INTEGER while the tables are created
    from sqlalchemy.dialects import sqlite
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Collaborator Fixtures
# -----------------------------------------------------------------------------


class EdgeFunctionStub:
    """Programmable edge function backend for httpx.MockTransport.

    Register a response per function name; every request is recorded.
    """

    def __init__(self):
        self.responses: dict[str, Any] = {}
        self.requests: list[tuple[str, str, Optional[dict]]] = []

    def on(self, name: str, body: Any = None, status_code: int = 200) -> None:
        self.responses[name] = (status_code, body)

    def fail(self, name: str, error: Exception) -> None:
        self.responses[name] = error

    def calls(self, name: str) -> list[dict]:
        return [payload for method, fn, payload in self.requests if fn == name and method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        import json

        name = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content) if request.content else None
        self.requests.append((request.method, name, payload))

        response = self.responses.get(name)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return httpx.Response(404, json={"error": f"{name} not found"})

        if request.method == "OPTIONS":
            return httpx.Response(204)
        status_code, body = response
        return httpx.Response(status_code, json=body)


@pytest.fixture
def edge_stub() -> EdgeFunctionStub:
    return EdgeFunctionStub()


@pytest.fixture
def edge_client(edge_stub) -> EdgeFunctionClient:
    """Edge function client backed by the stub transport."""
    return EdgeFunctionClient(
        EdgeFunctionConfig(base_url="https://functions.test/v1", api_key="test-anon-key"),
        transport=httpx.MockTransport(edge_stub.handler),
    )


@pytest.fixture
def task_queue() -> MagicMock:
    """Task queue recording enqueued tasks instead of talking to a broker."""
    queue = MagicMock()
    queue.enqueue.return_value = "task-123"
    return queue


@pytest.fixture(autouse=True)
def reset_gateway_availability():
    """Forget probed automation endpoints between tests."""
    from coldai_core.domain.services.automation_gateway import reset_availability_cache

    reset_availability_cache()
    yield
    reset_availability_cache()


# -----------------------------------------------------------------------------
# Mock Fixtures for External Services
# -----------------------------------------------------------------------------


class FakeAsyncPubSub:
    """Live subscription on a FakeAsyncRedis."""

    def __init__(self, redis: "FakeAsyncRedis"):
        self.redis = redis
        self.channels: set[str] = set()
        self.messages: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        self.channels.update(channels)
        self.redis.subscribers.append(self)

    async def unsubscribe(self, *channels: str) -> None:
        self.channels.difference_update(channels)

    async def aclose(self) -> None:
        self.closed = True
        self.redis.subscribers.remove(self)

    async def listen(self):
        while True:
            yield await self.messages.get()


class FakeAsyncRedis:
    """In-memory stand-in for the async Redis commands the core uses."""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.published: list[tuple[str, str]] = []
        self.subscribers: list[FakeAsyncPubSub] = []

    def pubsub(self) -> FakeAsyncPubSub:
        return FakeAsyncPubSub(self)

    async def get(self, key: str):
        value = self.store.get(key)
        return value.encode() if isinstance(value, str) else value

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        receivers = [s for s in self.subscribers if channel in s.channels]
        for subscriber in receivers:
            subscriber.messages.put_nowait(
                {"type": "message", "channel": channel, "data": message}
            )
        return len(receivers)


@pytest.fixture
def fake_redis() -> FakeAsyncRedis:
    return FakeAsyncRedis()


@pytest.fixture
def mock_redis() -> Generator[MagicMock, None, None]:
    """Mock Redis client for testing."""
    with patch("redis.Redis") as mock:
        mock_instance = MagicMock()
        mock.return_value = mock_instance
        mock.from_url.return_value = mock_instance

        mock_instance.get.return_value = None
        mock_instance.set.return_value = True
        mock_instance.delete.return_value = 1
        mock_instance.publish.return_value = 1

        yield mock_instance


@pytest.fixture
def mock_async_redis() -> Generator[AsyncMock, None, None]:
    """Mock async Redis client for testing."""
    with patch("redis.asyncio.Redis") as mock:
        mock_instance = AsyncMock()
        mock.return_value = mock_instance
        mock.from_url.return_value = mock_instance

        mock_instance.get.return_value = None
        mock_instance.set.return_value = True
        mock_instance.delete.return_value = 1
        mock_instance.publish.return_value = 1

        yield mock_instance


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(
    test_settings,
    sync_session_factory,
    edge_client,
    task_queue,
    fake_redis,
) -> Generator[FastAPI, None, None]:
    """Create a FastAPI test application with test settings and overrides."""
    from coldai_core.api import deps
    from coldai_core.domain.services.prospect_rules import RulesStore
    from coldai_core.domain.services.widget_status import GeneratingFlagStore
    from coldai_core.infrastructure.realtime import ChangeBus
    from coldai_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def override_edge_client():
        yield edge_client

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_settings] = lambda: test_settings
    app.dependency_overrides[deps.get_session_factory] = lambda: sync_session_factory
    app.dependency_overrides[deps.get_edge_client_optional] = override_edge_client
    app.dependency_overrides[deps.get_tasks] = lambda: task_queue
    app.dependency_overrides[deps.get_flag_store] = lambda: GeneratingFlagStore(
        fake_redis, ttl_seconds=test_settings.generating_flag_ttl_seconds
    )
    app.dependency_overrides[deps.get_change_bus] = lambda: ChangeBus(fake_redis)
    app.dependency_overrides[deps.get_rules_store] = lambda: RulesStore(
        test_settings.prospect_rules_path, test_settings.installation_id
    )

    yield app

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
def edge_unconfigured(test_app):
    """Run the app as if FUNCTIONS_BASE_URL were unset."""
    from coldai_core.api import deps

    async def no_edge_client():
        yield None

    test_app.dependency_overrides[deps.get_edge_client_optional] = no_edge_client
    return test_app


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    The db_session fixture is included so the test database exists before
    the client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def test_user(db_session):
    from tests.factories import create_user

    user = create_user(db_session, id=TEST_USER_ID, email="seller@example.com")
    db_session.commit()
    return user


@pytest.fixture
async def authenticated_client(
    test_app, db_session, test_user
) -> AsyncGenerator[AsyncClient, None]:
    """Create an HTTP client carrying a valid session cookie for test_user."""
    from coldai_core.domain.services.auth import AuthService

    session_id = AuthService(db_session).create_session(test_user.id)
    db_session.commit()

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        cookies={"session": session_id},
    ) as ac:
        yield ac


# -----------------------------------------------------------------------------
# Test Data Helpers
# -----------------------------------------------------------------------------


@pytest.fixture
def sample_research_data() -> dict[str, Any]:
    """Research data as written by the research workflow."""
    return {
        "name": "Ada Lovelace",
        "headline": "Head of Engineering",
        "company": "Analytical Engines Ltd",
        "location": "London",
    }



# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from coldai_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
