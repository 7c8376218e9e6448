"""Realtime change notifications over Redis pub/sub.

Writes to the observed tables are published, after commit, on a per-user
channel. Each connected dashboard subscribes to its user's channel and
refetches its whole snapshot on every event; events carry no row data.

Channels:
- coldai:changes:{user_id} - JSON {table, event, row_id}
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from coldai_core.domain.models import OBSERVED_TABLES

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "coldai:changes"

_STAGED_KEY = "coldai_staged_changes"
_PENDING_KEY = "coldai_pending_changes"


def channel_for(user_id: str) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}"


@dataclass(frozen=True)
class ChangeEvent:
    """One committed change to an observed table."""

    user_id: str
    table: str
    event: str  # INSERT, UPDATE or DELETE
    row_id: Any = None

    def to_json(self) -> str:
        return json.dumps({"table": self.table, "event": self.event, "row_id": self.row_id})

    @classmethod
    def from_message(cls, user_id: str, data: bytes | str) -> "ChangeEvent":
        payload = json.loads(data)
        return cls(
            user_id=user_id,
            table=payload["table"],
            event=payload["event"],
            row_id=payload.get("row_id"),
        )


class SyncRedisProtocol(Protocol):
    def publish(self, channel: str, message: str) -> int: ...


class ChangePublisher:
    """Publishes change events with a synchronous Redis client."""

    def __init__(self, redis: SyncRedisProtocol):
        self.redis = redis

    def publish(self, change: ChangeEvent) -> None:
        self.redis.publish(channel_for(change.user_id), change.to_json())


class ChangeBus:
    """Async subscription side of the change notifications."""

    def __init__(self, redis: Any):
        """Initialize the bus.

        Args:
            redis: redis.asyncio.Redis client.
        """
        self.redis = redis

    async def publish(self, change: ChangeEvent) -> None:
        await self.redis.publish(channel_for(change.user_id), change.to_json())

    async def subscribe(self, user_id: str) -> AsyncIterator[ChangeEvent]:
        """Yield change events for one user until the consumer stops iterating."""
        channel = channel_for(user_id)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield ChangeEvent.from_message(user_id, message["data"])
                except (ValueError, KeyError, TypeError):
                    logger.warning(f"Dropping malformed change event on {channel}")
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


# =============================================================================
# SESSION HOOKS
# =============================================================================


def _collect(session: Session) -> None:
    staged: list[tuple[str, Any]] = session.info.setdefault(_STAGED_KEY, [])
    for kind, objects in (
        ("INSERT", session.new),
        ("UPDATE", session.dirty),
        ("DELETE", session.deleted),
    ):
        for obj in objects:
            if getattr(obj, "__tablename__", None) not in OBSERVED_TABLES:
                continue
            if kind == "UPDATE" and not session.is_modified(obj):
                continue
            staged.append((kind, obj))


def _resolve(session: Session) -> None:
    # Primary keys of inserted rows exist once the flush has run
    staged: list[tuple[str, Any]] = session.info.pop(_STAGED_KEY, [])
    pending: list[ChangeEvent] = session.info.setdefault(_PENDING_KEY, [])
    for kind, obj in staged:
        user_id = getattr(obj, "user_id", None)
        if not user_id:
            continue
        pending.append(
            ChangeEvent(
                user_id=user_id,
                table=obj.__tablename__,
                event=kind,
                row_id=getattr(obj, "id", None),
            )
        )


def install_change_hooks(
    session_factory: sessionmaker[Session],
    publisher: ChangePublisher,
) -> None:
    """Publish observed-table changes from sessions made by ``session_factory``."""

    @event.listens_for(session_factory, "before_flush")
    def _before_flush(session: Session, flush_context: Any, instances: Optional[Any]) -> None:
        _collect(session)

    @event.listens_for(session_factory, "after_flush_postexec")
    def _after_flush(session: Session, flush_context: Any) -> None:
        _resolve(session)

    @event.listens_for(session_factory, "after_commit")
    def _after_commit(session: Session) -> None:
        pending: list[ChangeEvent] = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            try:
                publisher.publish(change)
            except Exception as e:
                # Subscribers converge through polling; a lost event is not fatal
                logger.warning(f"Failed to publish change on {change.table}: {e}")

    @event.listens_for(session_factory, "after_rollback")
    def _after_rollback(session: Session) -> None:
        session.info.pop(_STAGED_KEY, None)
        session.info.pop(_PENDING_KEY, None)


def get_change_bus() -> ChangeBus:
    """Create a ChangeBus from settings."""
    import redis.asyncio as aioredis

    from coldai_core.config import get_settings

    return ChangeBus(aioredis.from_url(get_settings().redis_url))


def get_change_publisher() -> ChangePublisher:
    """Create a ChangePublisher from settings."""
    import redis

    from coldai_core.config import get_settings

    return ChangePublisher(redis.Redis.from_url(get_settings().redis_url))


__all__ = [
    "ChangeBus",
    "ChangeEvent",
    "ChangePublisher",
    "channel_for",
    "get_change_bus",
    "get_change_publisher",
    "install_change_hooks",
]
