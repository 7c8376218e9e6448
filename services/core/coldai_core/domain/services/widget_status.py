"""Widget status derivation for the dashboard.

Each dashboard widget maps a small external status tuple to exactly one UI
state. Predicates are evaluated in a fixed priority order and the first
match wins, so overlapping external states resolve deterministically.

While the automation is working on an ICP or knowledge entry, the widget
shows an optimistic "generating" state kept in Redis with a start time. The
flag expires after a fixed timeout; once it has expired, or as soon as the
database reports a non-empty state, the database state is authoritative.

Usage:
    state = derive_icp_state(icp)
    flag = await flags.get(user_id, Widget.ICP)
    view = resolve_widget(state, flag)
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.orm import Session

from coldai_core.domain.models import (
    ICP,
    BusinessProfile,
    CommunicationPreferences,
    KnowledgeBaseEntry,
    ReviewStatus,
    UserProfile,
    WorkflowStatus,
)
from coldai_core.domain.timestamps import utcnow

logger = logging.getLogger(__name__)


class WidgetState(str, Enum):
    """UI states shared by the ICP and knowledge widgets."""

    EMPTY = "empty"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    DRAFT = "draft"
    DRAFT_PENDING = "draftPending"
    ACTIVE = "active"


class SettingsState(str, Enum):
    EMPTY = "empty"
    PARTIAL = "partial"
    COMPLETE = "complete"


class LinkedInState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class Widget(str, Enum):
    """Widgets that support an optimistic generating flag."""

    ICP = "icp"
    KNOWLEDGE = "knowledge"


# =============================================================================
# DERIVATION
# =============================================================================


Rule = tuple[Callable[[Any], bool], WidgetState]

_ICP_RULES: tuple[Rule, ...] = (
    (lambda e: e.workflow_status in (WorkflowStatus.GENERATING, WorkflowStatus.FORM),
     WidgetState.GENERATING),
    (lambda e: e.workflow_status in (WorkflowStatus.PROCESSING, WorkflowStatus.REVIEWING),
     WidgetState.REVIEWING),
    (lambda e: e.review_status == ReviewStatus.APPROVED, WidgetState.ACTIVE),
)

_KNOWLEDGE_RULES: tuple[Rule, ...] = (
    (lambda e: e.workflow_status == WorkflowStatus.PROCESSING, WidgetState.GENERATING),
    (lambda e: e.workflow_status == WorkflowStatus.REVIEWING
     and e.review_status == ReviewStatus.APPROVED, WidgetState.REVIEWING),
    (lambda e: e.workflow_status == WorkflowStatus.DRAFT
     and e.review_status == ReviewStatus.PENDING, WidgetState.DRAFT_PENDING),
)


def _first_match(entity: Any, rules: tuple[Rule, ...], default: WidgetState) -> WidgetState:
    for predicate, state in rules:
        if predicate(entity):
            return state
    return default


def derive_icp_state(icp: Optional[ICP]) -> WidgetState:
    """ICP widget: generating, reviewing, active, else draft; missing is empty."""
    if icp is None:
        return WidgetState.EMPTY
    return _first_match(icp, _ICP_RULES, WidgetState.DRAFT)


def derive_knowledge_state(entry: Optional[KnowledgeBaseEntry]) -> WidgetState:
    """Knowledge widget: generating, reviewing, draft pending, else active."""
    # Entity-specific states win over "missing" so a processing row shows progress
    if entry is not None:
        return _first_match(entry, _KNOWLEDGE_RULES, WidgetState.ACTIVE)
    return WidgetState.EMPTY


@dataclass
class SettingsCompleteness:
    personal: bool
    company: bool
    communication: bool

    @property
    def configured_count(self) -> int:
        return sum((self.personal, self.company, self.communication))

    @property
    def state(self) -> SettingsState:
        if self.configured_count == 3:
            return SettingsState.COMPLETE
        if self.configured_count == 0:
            return SettingsState.EMPTY
        return SettingsState.PARTIAL


def derive_linkedin_state(connected: bool) -> LinkedInState:
    return LinkedInState.CONNECTED if connected else LinkedInState.DISCONNECTED


# =============================================================================
# OPTIMISTIC GENERATING FLAG
# =============================================================================


class AsyncRedisProtocol(Protocol):
    """Subset of the async Redis client used by the flag store."""

    async def get(self, key: str) -> Optional[bytes]: ...
    async def set(self, key: str, value: str, ex: Optional[int] = None) -> Any: ...
    async def delete(self, *keys: str) -> int: ...


@dataclass
class GeneratingFlag:
    """Optimistic generating marker set when the user starts a generation."""

    widget: Widget
    title: str
    started_at: datetime

    def elapsed_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.started_at).total_seconds())

    def progress(self, now: datetime, ttl_seconds: int) -> float:
        """Percent shown on the progress bar; capped at 95 until the backend confirms."""
        return min(95.0, self.elapsed_seconds(now) / ttl_seconds * 100)

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        return self.elapsed_seconds(now) > ttl_seconds


class GeneratingFlagStore:
    """Redis-backed generating flags, one per user and widget.

    Uses Redis keys:
    - coldai:generating:{user_id}:{widget} - JSON {title, started_at}
    """

    def __init__(self, redis: AsyncRedisProtocol, ttl_seconds: int = 60):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(user_id: str, widget: Widget) -> str:
        return f"coldai:generating:{user_id}:{widget.value}"

    async def start(
        self,
        user_id: str,
        widget: Widget,
        title: str,
        now: Optional[datetime] = None,
    ) -> GeneratingFlag:
        flag = GeneratingFlag(widget=widget, title=title, started_at=now or utcnow())
        payload = json.dumps({"title": title, "started_at": flag.started_at.isoformat()})
        # Redis expiry is a backstop; expiry is also checked on read
        await self.redis.set(self._key(user_id, widget), payload, ex=self.ttl_seconds * 2)
        return flag

    async def get(
        self,
        user_id: str,
        widget: Widget,
        now: Optional[datetime] = None,
    ) -> Optional[GeneratingFlag]:
        """Return the live flag, removing it if it has expired."""
        raw = await self.redis.get(self._key(user_id, widget))
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            flag = GeneratingFlag(
                widget=widget,
                title=data.get("title", ""),
                started_at=datetime.fromisoformat(data["started_at"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Dropping malformed generating flag for {user_id}/{widget.value}")
            await self.clear(user_id, widget)
            return None

        if flag.is_expired(now or utcnow(), self.ttl_seconds):
            await self.clear(user_id, widget)
            return None
        return flag

    async def clear(self, user_id: str, widget: Widget) -> None:
        await self.redis.delete(self._key(user_id, widget))


@dataclass
class WidgetView:
    state: WidgetState
    progress: Optional[float] = None
    optimistic: bool = False


def resolve_widget(
    db_state: WidgetState,
    flag: Optional[GeneratingFlag],
    now: Optional[datetime] = None,
    ttl_seconds: int = 60,
) -> WidgetView:
    """Combine the authoritative state with an optimistic flag.

    The flag only applies while the database has nothing to show yet.
    """
    if flag is None or db_state is not WidgetState.EMPTY:
        return WidgetView(state=db_state)
    return WidgetView(
        state=WidgetState.GENERATING,
        progress=flag.progress(now or utcnow(), ttl_seconds),
        optimistic=True,
    )


# =============================================================================
# SERVICE
# =============================================================================


class WidgetStatusService:
    """Loads the entities behind each widget and derives their state."""

    def __init__(self, db: Session):
        self.db = db

    def get_active_icp(self, user_id: str) -> Optional[ICP]:
        return (
            self.db.query(ICP)
            .filter(
                ICP.user_id == user_id,
                ICP.is_active.is_(True),
                ICP.deleted_at.is_(None),
            )
            .order_by(ICP.created_at.desc(), ICP.id.desc())
            .first()
        )

    def get_knowledge_entry(self, user_id: str) -> Optional[KnowledgeBaseEntry]:
        return (
            self.db.query(KnowledgeBaseEntry)
            .filter(
                KnowledgeBaseEntry.user_id == user_id,
                KnowledgeBaseEntry.deleted_at.is_(None),
            )
            .order_by(KnowledgeBaseEntry.created_at.desc(), KnowledgeBaseEntry.id.desc())
            .first()
        )

    def icp_state(self, user_id: str) -> WidgetState:
        return derive_icp_state(self.get_active_icp(user_id))

    def knowledge_state(self, user_id: str) -> WidgetState:
        return derive_knowledge_state(self.get_knowledge_entry(user_id))

    def settings_completeness(self, user_id: str) -> SettingsCompleteness:
        return SettingsCompleteness(
            personal=self.db.get(UserProfile, user_id) is not None,
            company=self.db.get(BusinessProfile, user_id) is not None,
            communication=self.db.get(CommunicationPreferences, user_id) is not None,
        )

    def linkedin_state(self, user_id: str) -> LinkedInState:
        profile = self.db.get(UserProfile, user_id)
        connected = bool(profile and profile.linkedin_connected and profile.unipile_account_id)
        return derive_linkedin_state(connected)


__all__ = [
    "GeneratingFlag",
    "GeneratingFlagStore",
    "LinkedInState",
    "SettingsCompleteness",
    "SettingsState",
    "Widget",
    "WidgetState",
    "WidgetStatusService",
    "WidgetView",
    "derive_icp_state",
    "derive_knowledge_state",
    "derive_linkedin_state",
    "resolve_widget",
]
