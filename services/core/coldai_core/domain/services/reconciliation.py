"""Prospect feed reconciliation.

Three asynchronous inputs drive a connected dashboard's prospect list:

1. The initial fetch when a user connects
2. Realtime change events for that user's rows
3. A fallback poll while any prospect is still being generated

All three funnel through ``ProspectFeed.refresh``, which always refetches
the user's full snapshot and re-runs aggregation. Partial deltas are never
merged into derived state. Every fetch is tagged with the identity it was
issued for and a monotonically increasing generation; a response for a
previous identity, or one older than the last applied response, is dropped.

Usage:
    feed = ProspectFeed(make_db_fetcher(session_factory), poll_interval=5.0)
    feed.set_identity(user_id)
    await feed.refresh(RefreshTrigger.INITIAL)
    await feed.listen(change_bus)  # runs until cancelled
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from coldai_core.domain.message_status import is_legal_transition, is_polling_eligible
from coldai_core.domain.services.prospects import (
    LogRow,
    Prospect,
    ProspectRepository,
    aggregate_prospects,
)
from coldai_core.domain.timestamps import utcnow
from coldai_core.infrastructure.realtime import ChangeBus
from coldai_core.observability.logging import RequestContext, get_logger

logger = get_logger(__name__)


class RefreshTrigger(str, Enum):
    INITIAL = "initial"
    REALTIME = "realtime"
    POLL = "poll"
    ACTION = "action"


RowFetcher = Callable[[str], Awaitable[list[LogRow]]]
SnapshotListener = Callable[["FeedSnapshot"], Awaitable[None]]


@dataclass
class FeedSnapshot:
    """Aggregated state of one user's prospects at one point in time."""

    user_id: str
    generation: int
    trigger: RefreshTrigger
    prospects: list[Prospect]
    row_statuses: dict[int, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=utcnow)

    @property
    def polling_eligible(self) -> bool:
        return any(is_polling_eligible(p.status) for p in self.prospects)


def make_db_fetcher(session_factory: sessionmaker[Session]) -> RowFetcher:
    """Row fetcher that reads through a fresh session on a worker thread."""

    def _fetch_sync(user_id: str) -> list[LogRow]:
        session = session_factory()
        try:
            return ProspectRepository(session).fetch_rows(user_id)
        finally:
            session.close()

    async def fetch(user_id: str) -> list[LogRow]:
        return await asyncio.to_thread(_fetch_sync, user_id)

    return fetch


class ProspectFeed:
    """Keeps one dashboard's prospect snapshot converged with the backend."""

    def __init__(
        self,
        fetch_rows: RowFetcher,
        poll_interval: float = 5.0,
        listener: Optional[SnapshotListener] = None,
    ):
        """Initialize the feed.

        Args:
            fetch_rows: Coroutine returning all log rows of a user.
            poll_interval: Seconds between fallback polls.
            listener: Optional coroutine called with every applied snapshot.
        """
        self._fetch_rows = fetch_rows
        self.poll_interval = poll_interval
        self._listener = listener

        self._identity: Optional[str] = None
        self._epoch = 0
        self._issued = 0
        self._applied = 0
        self._poll_task: Optional[asyncio.Task] = None

        self.snapshot: Optional[FeedSnapshot] = None

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    def set_identity(self, user_id: Optional[str]) -> None:
        """Switch the feed to another user; in-flight fetches become stale."""
        if user_id == self._identity:
            return
        self._identity = user_id
        self._epoch += 1
        self._applied = 0
        self.snapshot = None
        self._stop_polling()

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self, trigger: RefreshTrigger) -> Optional[FeedSnapshot]:
        """Refetch the full snapshot and apply it unless it went stale.

        Errors on the initial fetch or its listener call propagate. Later
        fetch and listener errors are logged and the next tick retries.

        Returns:
            The applied snapshot, or None if nothing was applied.
        """
        user_id = self._identity
        if user_id is None:
            return None

        epoch = self._epoch
        self._issued += 1
        generation = self._issued
        context = RequestContext(user_id=user_id, trigger=trigger.value)

        try:
            rows = await self._fetch_rows(user_id)
        except Exception as e:
            if trigger is RefreshTrigger.INITIAL:
                raise
            logger.warning(f"Prospect refresh failed: {e}", context=context)
            return None

        if epoch != self._epoch or user_id != self._identity:
            logger.debug("Dropping response for a previous identity", context=context)
            return None
        if generation < self._applied:
            logger.debug(
                "Dropping out-of-order response",
                context=context,
                generation=generation,
                applied=self._applied,
            )
            return None

        snapshot = FeedSnapshot(
            user_id=user_id,
            generation=generation,
            trigger=trigger,
            prospects=aggregate_prospects(rows),
            row_statuses={r.id: r.message_status for r in rows},
        )
        self._audit_transitions(snapshot, context)

        self._applied = generation
        self.snapshot = snapshot
        self._update_polling(snapshot)

        logger.debug(
            "Prospect snapshot applied",
            context=context,
            generation=generation,
            prospect_count=len(snapshot.prospects),
        )
        if self._listener is not None:
            try:
                await self._listener(snapshot)
            except Exception as e:
                if trigger is RefreshTrigger.INITIAL:
                    raise
                logger.warning(
                    f"Snapshot listener failed: {e}",
                    context=context.bind(generation=generation),
                )
        return snapshot

    def _audit_transitions(self, snapshot: FeedSnapshot, context: RequestContext) -> None:
        """Warn about status jumps the transition table does not allow."""
        previous = self.snapshot
        if previous is None or previous.user_id != snapshot.user_id:
            return
        for log_id, new_status in snapshot.row_statuses.items():
            old_status = previous.row_statuses.get(log_id)
            if old_status is None or old_status == new_status:
                continue
            if not is_legal_transition(old_status, new_status):
                logger.warning(
                    "Unexpected message status transition",
                    context=context,
                    message_log_id=log_id,
                    old_status=old_status,
                    new_status=new_status,
                )

    # -------------------------------------------------------------------------
    # Realtime
    # -------------------------------------------------------------------------

    async def listen(self, bus: ChangeBus) -> None:
        """Refresh on every change event for the current identity until cancelled."""
        user_id = self._identity
        if user_id is None:
            return
        async for _change in bus.subscribe(user_id):
            if user_id != self._identity:
                break
            await self.refresh(RefreshTrigger.REALTIME)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _update_polling(self, snapshot: FeedSnapshot) -> None:
        if snapshot.polling_eligible:
            if not self.is_polling:
                self._poll_task = asyncio.create_task(self._poll_loop())
        else:
            self._stop_polling()

    def _stop_polling(self) -> None:
        task = self._poll_task
        if task is None:
            return
        self._poll_task = None
        # The poll loop exits on its own when it is the caller
        if task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if self.snapshot is None or not self.snapshot.polling_eligible:
                break
            await self.refresh(RefreshTrigger.POLL)
            if asyncio.current_task() is not self._poll_task:
                break

    async def close(self) -> None:
        """Stop polling and detach from the current identity."""
        task = self._poll_task
        self.set_identity(None)
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass


__all__ = [
    "FeedSnapshot",
    "ProspectFeed",
    "RefreshTrigger",
    "make_db_fetcher",
]
