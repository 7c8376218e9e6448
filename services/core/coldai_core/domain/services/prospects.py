"""Prospect aggregation and listing.

A prospect is not stored anywhere: it is a projection recomputed from every
message generation log of a user, grouped by research cache id. This module
provides:

1. Representative-row selection per prospect (active pipeline beats archived)
2. Search, status-chip and rules filtering
3. Sorting and in-memory pagination
4. Dashboard summary (needs-attention list and pipeline stats)
5. Soft-delete of a prospect

All projection functions are pure: the same rows and query always yield the
same result, whichever trigger (initial fetch, realtime event or poll tick)
produced the snapshot.

Usage:
    service = ProspectService(db=session)
    page = service.list_prospects(user_id, ProspectQuery(search="acme"), rules)
    summary = service.get_summary(user_id)
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import quote

from sqlalchemy.orm import Session, selectinload

from coldai_core.domain.message_status import (
    ACTIVE_PIPELINE_STATUSES,
    CONTACTED_STATUSES,
    GENERATING_STATUSES,
    KNOWN_STATUSES,
    MessageStatus,
    TERMINAL_SUCCESS_STATUSES,
)
from coldai_core.domain.models import MessageGenerationLog, ResearchCache
from coldai_core.domain.pagination import PaginatedResult, PaginationParams, paginate
from coldai_core.domain.services.prospect_rules import ProspectRules
from coldai_core.domain.timestamps import as_utc, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


UNKNOWN_NAME = "Unknown"
NO_JOB_TITLE = "No job title"
NO_COMPANY = "No company"

AVATAR_COLORS = ("FBAE1C", "FC9109", "DD6800", "FBAE1C")

ALL_STATUSES = "all"

NEEDS_ATTENTION_STATUSES = GENERATING_STATUSES | {
    MessageStatus.GENERATED,
    MessageStatus.REPLY_RECEIVED,
    MessageStatus.FAILED,
}
NEEDS_ATTENTION_LIMIT = 10


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ProspectError(Exception):
    """Base exception for prospect operations."""
    pass


class ProspectNotFoundError(ProspectError):
    """Raised when a prospect does not exist or belongs to another user."""
    pass


# =============================================================================
# SNAPSHOT ROWS
# =============================================================================


@dataclass(frozen=True)
class CacheSnapshot:
    """Research cache fields joined onto a log row."""

    id: int
    profile_url: Optional[str] = None
    profile_picture_url: Optional[str] = None
    research_data: Any = None
    deleted_at: Optional[datetime] = None


@dataclass(frozen=True)
class LogRow:
    """Immutable snapshot of one message generation log.

    ``cache`` is None when the research cache join has not arrived yet.
    """

    id: int
    research_cache_id: Optional[int]
    message_status: str
    created_at: datetime
    updated_at: datetime
    cache: Optional[CacheSnapshot] = None
    scheduled_for: Optional[datetime] = None

    @classmethod
    def from_model(cls, log: MessageGenerationLog) -> "LogRow":
        cache = None
        if log.research_cache is not None:
            rc = log.research_cache
            cache = CacheSnapshot(
                id=rc.id,
                profile_url=rc.profile_url,
                profile_picture_url=rc.profile_picture_url,
                research_data=rc.research_data,
                deleted_at=as_utc(rc.deleted_at),
            )

        scheduled_for = None
        if log.sequence_prospects:
            scheduled_for = as_utc(log.sequence_prospects[0].scheduled_for)

        return cls(
            id=log.id,
            research_cache_id=log.research_cache_id,
            message_status=log.message_status,
            created_at=as_utc(log.created_at),
            updated_at=as_utc(log.updated_at),
            cache=cache,
            scheduled_for=scheduled_for,
        )


@dataclass
class Prospect:
    """Projection of one prospect from its log rows."""

    research_cache_id: int
    id: int  # representative message generation log id
    message_status: str
    created_at: datetime
    updated_at: datetime
    message_count: int
    all_statuses: list[str] = field(default_factory=list)
    name: str = UNKNOWN_NAME
    avatar: str = ""
    linkedin_url: str = ""
    job_title: str = NO_JOB_TITLE
    company: str = NO_COMPANY
    location: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    is_loading: bool = False

    @property
    def status(self) -> MessageStatus:
        return MessageStatus.parse(self.message_status)


# =============================================================================
# AGGREGATION
# =============================================================================


def parse_research_data(value: Any) -> dict[str, Any]:
    """Research data arrives as a mapping or as a JSON-encoded string."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Research data is not valid JSON")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def avatar_url(name: Optional[str], index: int) -> str:
    """Generated initials avatar used when no profile picture exists."""
    color = AVATAR_COLORS[index % len(AVATAR_COLORS)]
    return (
        f"https://ui-avatars.com/api/?name={quote(name or 'U')}"
        f"&background={color}&color=fff&size=128"
    )


def select_representative(rows: Sequence[LogRow]) -> tuple[LogRow, list[LogRow]]:
    """Pick the representative row of one prospect.

    If any row is in the active pipeline (pending/scheduled/sent/replied),
    archived rows are excluded first. The most recent remaining row by
    ``created_at`` wins.

    Returns:
        The representative row and the rows that were considered.
    """
    if not rows:
        raise ValueError("Cannot select a representative from no rows")

    has_active = any(
        MessageStatus.parse(r.message_status) in ACTIVE_PIPELINE_STATUSES for r in rows
    )
    if has_active:
        considered = [
            r for r in rows
            if MessageStatus.parse(r.message_status) is not MessageStatus.ARCHIVED
        ]
    else:
        considered = list(rows)

    # max() keeps the first of equal keys, i.e. the first fetched row
    representative = max(considered, key=lambda r: r.created_at)
    return representative, considered


def aggregate_prospects(rows: Iterable[LogRow]) -> list[Prospect]:
    """Group log rows into prospects.

    Rows without a research cache id, or whose cache is soft-deleted, are
    dropped. Groups keep the order of their first row (rows are fetched
    newest first), and ``all_statuses`` keeps every row's status in that
    same order.
    """
    groups: dict[int, list[LogRow]] = {}
    for row in rows:
        if row.research_cache_id is None:
            continue
        if row.cache is not None and row.cache.deleted_at is not None:
            continue
        groups.setdefault(row.research_cache_id, []).append(row)

    prospects = []
    for index, (cache_id, group) in enumerate(groups.items()):
        representative, considered = select_representative(group)
        prospects.append(
            _project(cache_id, representative, considered, group, index)
        )
    return prospects


def _project(
    cache_id: int,
    representative: LogRow,
    considered: list[LogRow],
    group: list[LogRow],
    index: int,
) -> Prospect:
    prospect = Prospect(
        research_cache_id=cache_id,
        id=representative.id,
        message_status=representative.message_status,
        created_at=representative.created_at,
        updated_at=representative.updated_at,
        message_count=len(considered),
        all_statuses=[r.message_status for r in group],
        scheduled_for=representative.scheduled_for,
    )

    cache = representative.cache
    if cache is None:
        # Research still running: present but incomplete
        prospect.is_loading = True
        prospect.avatar = avatar_url(None, index)
        return prospect

    data = parse_research_data(cache.research_data)
    name = data.get("name") or None
    prospect.name = name or UNKNOWN_NAME
    prospect.job_title = data.get("headline") or NO_JOB_TITLE
    prospect.company = data.get("company") or NO_COMPANY
    prospect.location = data.get("location") or None
    prospect.linkedin_url = cache.profile_url or ""
    prospect.avatar = (
        cache.profile_picture_url
        or data.get("profile_picture_url")
        or avatar_url(name, index)
    )
    return prospect


# =============================================================================
# QUERY: SEARCH, STATUS CHIPS, SORT
# =============================================================================


class SortColumn(str, Enum):
    NAME = "name"
    JOB_TITLE = "jobTitle"
    STATUS = "status"
    MESSAGE_COUNT = "messageCount"
    CREATED_AT = "createdAt"
    SCHEDULED_FOR = "scheduledFor"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ProspectQuery:
    """User-controlled list state: search, status chips, sort and page."""

    search: str = ""
    statuses: frozenset[str] = frozenset({ALL_STATUSES})
    sort_column: SortColumn = SortColumn.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC
    page: int = 1

    @property
    def filters_all(self) -> bool:
        return not self.statuses or ALL_STATUSES in self.statuses

    def toggle_status_filter(self, status: str) -> "ProspectQuery":
        """Toggle one status chip; any chip change returns to the first page."""
        if status == ALL_STATUSES:
            return replace(self, statuses=frozenset({ALL_STATUSES}), page=1)

        current = set(self.statuses) - {ALL_STATUSES}
        if status in self.statuses:
            current.discard(status)
            if not current:
                current = {ALL_STATUSES}
        else:
            current.add(status)
        return replace(self, statuses=frozenset(current), page=1)

    def toggle_sort(self, column: SortColumn) -> "ProspectQuery":
        """Same column flips direction; a new column starts asc for name, desc otherwise."""
        if column is self.sort_column:
            direction = (
                SortDirection.DESC if self.sort_direction is SortDirection.ASC
                else SortDirection.ASC
            )
            return replace(self, sort_direction=direction)
        direction = SortDirection.ASC if column is SortColumn.NAME else SortDirection.DESC
        return replace(self, sort_column=column, sort_direction=direction)


def matches_search(prospect: Prospect, search: str) -> bool:
    needle = search.strip().casefold()
    if not needle:
        return True
    return needle in prospect.name.casefold() or needle in prospect.job_title.casefold()


def matches_status_filter(prospect: Prospect, statuses: frozenset[str]) -> bool:
    if not statuses or ALL_STATUSES in statuses:
        return True
    return prospect.message_status in statuses


def filter_prospects(
    prospects: Iterable[Prospect],
    query: ProspectQuery,
    rules: Optional[ProspectRules] = None,
    now: Optional[datetime] = None,
) -> list[Prospect]:
    """Apply search, status chips and rules (all must hold)."""
    now = now or utcnow()
    return [
        p for p in prospects
        if matches_search(p, query.search)
        and matches_status_filter(p, query.statuses)
        and (rules is None or rules.matches(p, now))
    ]


_SORT_KEYS = {
    SortColumn.NAME: lambda p: p.name.casefold(),
    SortColumn.JOB_TITLE: lambda p: p.job_title.casefold(),
    SortColumn.STATUS: lambda p: p.message_status,
    SortColumn.MESSAGE_COUNT: lambda p: p.message_count,
    SortColumn.CREATED_AT: lambda p: p.created_at,
    SortColumn.SCHEDULED_FOR: lambda p: p.scheduled_for,
}


def sort_prospects(
    prospects: Iterable[Prospect],
    column: SortColumn,
    direction: SortDirection,
) -> list[Prospect]:
    """Stable sort; prospects without a scheduled time always sort last."""
    items = list(prospects)
    reverse = direction is SortDirection.DESC
    key = _SORT_KEYS[column]

    if column is SortColumn.SCHEDULED_FOR:
        scheduled = [p for p in items if p.scheduled_for is not None]
        unscheduled = [p for p in items if p.scheduled_for is None]
        return sorted(scheduled, key=key, reverse=reverse) + unscheduled

    return sorted(items, key=key, reverse=reverse)


def status_counts(prospects: Sequence[Prospect]) -> dict[str, int]:
    """Counts shown on the status chips, keyed by raw status plus ``all``."""
    counts = {ALL_STATUSES: len(prospects)}
    for status in KNOWN_STATUSES:
        counts[status.value] = 0
    counts[MessageStatus.UNKNOWN.value] = 0
    for p in prospects:
        counts[p.status.value] += 1
    return counts


@dataclass
class ProspectPage:
    """One page of the prospect list plus the data needed to render its controls."""

    result: PaginatedResult[Prospect]
    status_counts: dict[str, int]
    active_rules_count: int
    ordered_ids: list[int]


def list_prospects(
    prospects: Sequence[Prospect],
    query: ProspectQuery,
    rules: Optional[ProspectRules] = None,
    now: Optional[datetime] = None,
    page_size: int = 50,
) -> ProspectPage:
    """Filter, sort and paginate an aggregated snapshot."""
    filtered = filter_prospects(prospects, query, rules, now)
    ordered = sort_prospects(filtered, query.sort_column, query.sort_direction)
    result = paginate(ordered, PaginationParams(page=query.page, page_size=page_size))
    return ProspectPage(
        result=result,
        # Chip counts reflect the whole snapshot, not the filtered view
        status_counts=status_counts(prospects),
        active_rules_count=rules.active_count() if rules else 0,
        ordered_ids=[p.id for p in ordered],
    )


# =============================================================================
# DASHBOARD SUMMARY
# =============================================================================


def needs_attention(prospect: Prospect) -> bool:
    """Whether a prospect belongs on the dashboard's needs-attention list.

    Generating, generated, reply-received and failed prospects always need
    attention. An archived prospect does too, unless its history shows it
    was ever contacted (pending/scheduled/sent).
    """
    status = prospect.status
    if status in NEEDS_ATTENTION_STATUSES:
        return True
    if status is MessageStatus.ARCHIVED:
        return not any(
            MessageStatus.parse(s) in CONTACTED_STATUSES for s in prospect.all_statuses
        )
    return False


@dataclass
class ProspectStats:
    """Counts over every log row of the user (not per prospect)."""

    generated: int = 0
    scheduled: int = 0
    sent: int = 0


def compute_stats(statuses: Iterable[str]) -> ProspectStats:
    stats = ProspectStats()
    for raw in statuses:
        status = MessageStatus.parse(raw)
        stats.generated += 1
        if status in (MessageStatus.PENDING_SCHEDULED, MessageStatus.SCHEDULED):
            stats.scheduled += 1
        elif status in TERMINAL_SUCCESS_STATUSES:
            stats.sent += 1
    return stats


@dataclass
class DashboardSummary:
    needs_attention: list[Prospect]
    stats: ProspectStats
    total_prospects: int


def summarize(prospects: Sequence[Prospect], row_statuses: Iterable[str]) -> DashboardSummary:
    attention = [p for p in prospects if needs_attention(p)]
    attention.sort(key=lambda p: p.created_at, reverse=True)
    return DashboardSummary(
        needs_attention=attention[:NEEDS_ATTENTION_LIMIT],
        stats=compute_stats(row_statuses),
        total_prospects=len(prospects),
    )


# =============================================================================
# REPOSITORY AND SERVICE
# =============================================================================


class ProspectRepository:
    """Loads the full log snapshot of one user."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_rows(self, user_id: str) -> list[LogRow]:
        """All log rows of a user, newest first, with cache and schedule joined."""
        logs = (
            self.db.query(MessageGenerationLog)
            .options(
                selectinload(MessageGenerationLog.research_cache),
                selectinload(MessageGenerationLog.sequence_prospects),
            )
            .filter(MessageGenerationLog.user_id == user_id)
            .order_by(
                MessageGenerationLog.created_at.desc(),
                MessageGenerationLog.id.desc(),
            )
            .all()
        )
        return [LogRow.from_model(log) for log in logs]


class ProspectService:
    """Composes snapshot fetch and aggregation for API handlers."""

    def __init__(self, db: Session, page_size: int = 50):
        self.db = db
        self.page_size = page_size
        self.repository = ProspectRepository(db)

    def get_prospects(self, user_id: str) -> list[Prospect]:
        return aggregate_prospects(self.repository.fetch_rows(user_id))

    def list_prospects(
        self,
        user_id: str,
        query: ProspectQuery,
        rules: Optional[ProspectRules] = None,
        now: Optional[datetime] = None,
    ) -> ProspectPage:
        return list_prospects(
            self.get_prospects(user_id), query, rules, now, page_size=self.page_size
        )

    def get_summary(self, user_id: str) -> DashboardSummary:
        rows = self.repository.fetch_rows(user_id)
        return summarize(aggregate_prospects(rows), [r.message_status for r in rows])

    def remove_prospect(self, user_id: str, research_cache_id: int) -> ResearchCache:
        """Soft-delete a prospect by stamping its research cache row."""
        cache = (
            self.db.query(ResearchCache)
            .filter(
                ResearchCache.id == research_cache_id,
                ResearchCache.user_id == user_id,
            )
            .first()
        )
        if cache is None or cache.deleted_at is not None:
            raise ProspectNotFoundError(f"Prospect {research_cache_id} not found")

        cache.deleted_at = utcnow().replace(tzinfo=None)
        self.db.flush()
        logger.info(f"Prospect {research_cache_id} removed by user {user_id}")
        return cache


__all__ = [
    "ALL_STATUSES",
    "CacheSnapshot",
    "DashboardSummary",
    "LogRow",
    "Prospect",
    "ProspectError",
    "ProspectNotFoundError",
    "ProspectPage",
    "ProspectQuery",
    "ProspectRepository",
    "ProspectService",
    "ProspectStats",
    "SortColumn",
    "SortDirection",
    "aggregate_prospects",
    "compute_stats",
    "filter_prospects",
    "list_prospects",
    "needs_attention",
    "parse_research_data",
    "select_representative",
    "sort_prospects",
    "status_counts",
    "summarize",
]
