"""Monthly usage totals and free-tier limits.

Usage is recorded as one ``usage_tracking`` row per user and day. The
monthly view sums the rows of the current calendar month. Free-tier limits
gate creation of messages, prospects, ICPs and knowledge entries.

Usage:
    service = UsageService(db=session)
    usage = service.monthly_usage(user_id)
    service.ensure_can_generate_message(user_id)
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coldai_core.domain.models import ICP, KnowledgeBaseEntry, ResearchCache, UsageTracking
from coldai_core.domain.timestamps import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class UsageLimitError(Exception):
    """Raised when a free-tier limit would be exceeded."""

    def __init__(self, resource: str, used: int, limit: int):
        super().__init__(
            f"Free plan limit reached for {resource} ({used}/{limit}). "
            "Upgrade your plan to continue."
        )
        self.resource = resource
        self.used = used
        self.limit = limit


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class FreeTierLimits:
    messages_per_month: int = 25
    icps: int = 1
    knowledge_entries: int = 1
    prospects: int = 50


@dataclass
class MonthlyUsage:
    month: date
    messages_generated: int = 0
    messages_sent: int = 0
    messages_archived: int = 0
    research_performed: int = 0
    messages_limit: int = 25

    @property
    def messages_remaining(self) -> int:
        return max(0, self.messages_limit - self.messages_generated)


def month_start(today: date) -> date:
    return today.replace(day=1)


def next_month_start(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


# =============================================================================
# SERVICE
# =============================================================================


class UsageService:
    """Reads usage counters and enforces free-tier limits."""

    def __init__(self, db: Session, limits: Optional[FreeTierLimits] = None):
        self.db = db
        self.limits = limits or FreeTierLimits()

    def monthly_usage(self, user_id: str, today: Optional[date] = None) -> MonthlyUsage:
        """Sum the daily rows of the calendar month containing ``today``.

        A missing table or no rows yield zeros.
        """
        today = today or utcnow().date()
        start, end = month_start(today), next_month_start(today)
        usage = MonthlyUsage(month=start, messages_limit=self.limits.messages_per_month)

        try:
            row = (
                self.db.query(
                    func.coalesce(func.sum(UsageTracking.messages_generated), 0),
                    func.coalesce(func.sum(UsageTracking.messages_sent), 0),
                    func.coalesce(func.sum(UsageTracking.messages_archived), 0),
                    func.coalesce(func.sum(UsageTracking.research_performed), 0),
                )
                .filter(
                    UsageTracking.user_id == user_id,
                    UsageTracking.usage_date >= start,
                    UsageTracking.usage_date < end,
                )
                .one()
            )
        except SQLAlchemyError as e:
            logger.warning(f"Usage lookup failed for user {user_id}: {e}")
            self.db.rollback()
            return usage

        (
            usage.messages_generated,
            usage.messages_sent,
            usage.messages_archived,
            usage.research_performed,
        ) = (int(value) for value in row)
        return usage

    def messages_sent_on(self, user_id: str, day: date) -> int:
        row = (
            self.db.query(UsageTracking)
            .filter(UsageTracking.user_id == user_id, UsageTracking.usage_date == day)
            .first()
        )
        return row.messages_sent if row is not None else 0

    def record_message_sent(self, user_id: str, day: Optional[date] = None) -> None:
        """Count one sent message on the user's daily row. The caller commits."""
        day = day or utcnow().date()
        row = (
            self.db.query(UsageTracking)
            .filter(UsageTracking.user_id == user_id, UsageTracking.usage_date == day)
            .first()
        )
        if row is None:
            row = UsageTracking(
                user_id=user_id,
                usage_date=day,
                messages_generated=0,
                messages_sent=0,
                messages_archived=0,
                research_performed=0,
            )
            self.db.add(row)
        row.messages_sent += 1
        self.db.flush()

    # -------------------------------------------------------------------------
    # Limits
    # -------------------------------------------------------------------------

    def ensure_can_generate_message(self, user_id: str) -> None:
        usage = self.monthly_usage(user_id)
        if usage.messages_remaining <= 0:
            raise UsageLimitError(
                "messages", usage.messages_generated, self.limits.messages_per_month
            )

    def ensure_can_add_prospect(self, user_id: str) -> None:
        used = (
            self.db.query(func.count(ResearchCache.id))
            .filter(ResearchCache.user_id == user_id, ResearchCache.deleted_at.is_(None))
            .scalar()
        )
        if used >= self.limits.prospects:
            raise UsageLimitError("prospects", used, self.limits.prospects)

    def ensure_can_create_icp(self, user_id: str) -> None:
        used = (
            self.db.query(func.count(ICP.id))
            .filter(ICP.user_id == user_id, ICP.deleted_at.is_(None))
            .scalar()
        )
        if used >= self.limits.icps:
            raise UsageLimitError("ICPs", used, self.limits.icps)

    def ensure_can_create_knowledge(self, user_id: str) -> None:
        used = (
            self.db.query(func.count(KnowledgeBaseEntry.id))
            .filter(
                KnowledgeBaseEntry.user_id == user_id,
                KnowledgeBaseEntry.deleted_at.is_(None),
            )
            .scalar()
        )
        if used >= self.limits.knowledge_entries:
            raise UsageLimitError("knowledge entries", used, self.limits.knowledge_entries)


def get_free_tier_limits() -> FreeTierLimits:
    from coldai_core.config import get_settings

    settings = get_settings()
    return FreeTierLimits(
        messages_per_month=settings.free_messages_per_month,
        icps=settings.free_icp_limit,
        knowledge_entries=settings.free_knowledge_limit,
        prospects=settings.free_prospect_limit,
    )


__all__ = [
    "FreeTierLimits",
    "MonthlyUsage",
    "UsageLimitError",
    "UsageService",
    "get_free_tier_limits",
]
