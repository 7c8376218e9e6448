"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- A Postgres database
- The deployed edge functions
"""

import os
from types import SimpleNamespace
from typing import Any, Optional
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def mock_celery_app():
    """Celery app configured for eager execution."""
    from coldai_worker.celery_app import app

    app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
    return app


class FakeRedis:
    """In-memory stand-in for the sync Redis commands the worker uses."""

    def __init__(self):
        self.store: dict[str, str] = {}

    def set(self, name: str, value: str, ex: Optional[int] = None, nx: bool = False):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def get(self, name: str):
        return self.store.get(name)

    def delete(self, *names: str) -> int:
        return sum(1 for name in names if self.store.pop(name, None) is not None)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = MagicMock()
    redis.get.return_value = None
    redis.set.return_value = True
    redis.delete.return_value = 1
    return redis


@pytest.fixture
def idempotency(fake_redis):
    """Idempotency manager backed by the fake Redis, patched into the tasks."""
    from coldai_worker.util.idempotency import IdempotencyManager

    manager = IdempotencyManager(fake_redis)
    with patch("coldai_worker.tasks.automation.get_idempotency_manager", return_value=manager):
        yield manager


@pytest.fixture
def published_changes() -> list:
    """Change events the worker publishes after commit."""
    return []


@pytest.fixture
def session_factory(published_changes):
    """SQLite-backed session factory patched in for the core's database.

    Change events published by worker commits are collected in
    ``published_changes``.
    """
    from sqlalchemy.dialects import sqlite

    from coldai_core.domain.models import Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite only autoincrements INTEGER PRIMARY KEY columns
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"
    Base.metadata.create_all(bind=engine)
    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    publisher = MagicMock()
    publisher.publish.side_effect = published_changes.append
    with (
        patch("coldai_core.infra.db.get_sync_session_factory", return_value=factory),
        patch("coldai_worker.util.db.get_change_publisher", return_value=publisher),
    ):
        yield factory

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def edge_calls():
    """Patch the edge function calls; register responses or errors by name."""
    calls: list[tuple[str, dict]] = []
    responses: dict[str, Any] = {}

    def fake_invoke(name: str, payload: dict[str, Any]) -> dict[str, Any]:
        calls.append((name, payload))
        response = responses.get(name, {"success": True})
        if isinstance(response, Exception):
            raise response
        return response

    with patch("coldai_worker.tasks.automation.invoke_edge_function", new=fake_invoke):
        yield SimpleNamespace(calls=calls, responses=responses)
