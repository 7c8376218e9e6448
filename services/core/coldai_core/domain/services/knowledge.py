"""Knowledge base entries.

Rows are written by the dashboard; the automation is told about each change
through the knowledge gateway and enriches the entry asynchronously, moving
it through processing and review.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from coldai_core.domain.models import KnowledgeBaseEntry, ReviewStatus, WorkflowStatus
from coldai_core.domain.services.automation_gateway import (
    AutomationGateway,
    EntityNotFoundError,
    GatewayResult,
    check_restorable,
    clear_soft_delete,
    raise_for_result,
    soft_delete,
)
from coldai_core.domain.services.usage import UsageService

logger = logging.getLogger(__name__)

KNOWLEDGE_TYPES = ("product", "company", "case_study")
UPDATABLE_FIELDS = ("title", "content", "knowledge_type", "entry_metadata")


class KnowledgeService:
    """CRUD and lifecycle actions for knowledge entries."""

    def __init__(
        self,
        db: Session,
        gateway: AutomationGateway,
        usage: Optional[UsageService] = None,
        restore_grace_days: int = 30,
    ):
        self.db = db
        self.gateway = gateway
        self.usage = usage or UsageService(db)
        self.restore_grace_days = restore_grace_days

    def list_entries(self, user_id: str, include_deleted: bool = False) -> list[KnowledgeBaseEntry]:
        query = self.db.query(KnowledgeBaseEntry).filter(KnowledgeBaseEntry.user_id == user_id)
        if not include_deleted:
            query = query.filter(KnowledgeBaseEntry.deleted_at.is_(None))
        return query.order_by(KnowledgeBaseEntry.created_at.desc(), KnowledgeBaseEntry.id.desc()).all()

    def get_entry(self, user_id: str, entry_id: int) -> KnowledgeBaseEntry:
        entry = (
            self.db.query(KnowledgeBaseEntry)
            .filter(KnowledgeBaseEntry.id == entry_id, KnowledgeBaseEntry.user_id == user_id)
            .first()
        )
        if entry is None:
            raise EntityNotFoundError(f"Knowledge entry {entry_id} not found")
        return entry

    @staticmethod
    def _describe(entry: KnowledgeBaseEntry) -> dict[str, Any]:
        return {
            "entryId": entry.id,
            "entry_id": entry.id,
            "title": entry.title,
            "knowledge_type": entry.knowledge_type,
        }

    async def create_entry(
        self,
        user_id: str,
        title: str,
        content: str,
        knowledge_type: str = "product",
        metadata: Optional[dict[str, Any]] = None,
        team_id: Optional[str] = None,
    ) -> tuple[KnowledgeBaseEntry, GatewayResult]:
        """Create an entry and start its enrichment. The caller commits.

        Raises:
            UsageLimitError: Free-tier knowledge limit reached.
            AutomationActionError: The automation rejected the entry.
        """
        if knowledge_type not in KNOWLEDGE_TYPES:
            raise ValueError(f"Unknown knowledge type: {knowledge_type}")
        self.usage.ensure_can_create_knowledge(user_id)

        entry = KnowledgeBaseEntry(
            user_id=user_id,
            title=title.strip(),
            content=content,
            knowledge_type=knowledge_type,
            entry_metadata=metadata,
            workflow_status=WorkflowStatus.PROCESSING,
            review_status=ReviewStatus.PENDING,
        )
        self.db.add(entry)
        self.db.flush()

        result = await self.gateway.dispatch(
            "add_entry",
            user_id,
            {
                **self._describe(entry),
                "content": content,
                "description": content,
                "metadata": metadata or {},
            },
            team_id=team_id,
        )
        if not result.success:
            self.db.delete(entry)
            self.db.flush()
        raise_for_result(result)
        if result.local:
            # No automation will pick the entry up; leave it for the user to review
            entry.workflow_status = WorkflowStatus.DRAFT
            self.db.flush()

        logger.info(f"Knowledge entry {entry.id} created for user {user_id}")
        return entry, result

    async def update_entry(
        self,
        user_id: str,
        entry_id: int,
        updates: dict[str, Any],
        team_id: Optional[str] = None,
    ) -> KnowledgeBaseEntry:
        entry = self.get_entry(user_id, entry_id)
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}

        result = await self.gateway.dispatch(
            "update_entry",
            user_id,
            {**self._describe(entry), "updates": changes},
            team_id=team_id,
        )
        raise_for_result(result)

        for name, value in changes.items():
            setattr(entry, name, value)
        self.db.flush()
        return entry

    async def delete_entry(
        self, user_id: str, entry_id: int, team_id: Optional[str] = None
    ) -> KnowledgeBaseEntry:
        entry = self.get_entry(user_id, entry_id)
        if entry.deleted_at is not None:
            raise EntityNotFoundError(f"Knowledge entry {entry_id} not found")

        result = await self.gateway.dispatch(
            "delete_entry", user_id, self._describe(entry), team_id=team_id
        )
        raise_for_result(result)

        soft_delete(entry, self.restore_grace_days)
        self.db.flush()
        return entry

    async def restore_entry(
        self, user_id: str, entry_id: int, team_id: Optional[str] = None
    ) -> KnowledgeBaseEntry:
        """Restore a soft-deleted entry within its restore window.

        Raises:
            RestoreNotAllowedError: Entry not deleted or window passed; no call is made.
        """
        entry = self.get_entry(user_id, entry_id)
        check_restorable(entry)

        result = await self.gateway.dispatch(
            "restore_entry",
            user_id,
            {
                **self._describe(entry),
                "deleted_at": entry.deleted_at.isoformat(),
                "can_restore_until": (
                    entry.can_restore_until.isoformat() if entry.can_restore_until else None
                ),
            },
            team_id=team_id,
        )
        raise_for_result(result)

        clear_soft_delete(entry)
        self.db.flush()
        return entry

    async def approve_entry(
        self, user_id: str, entry_id: int, team_id: Optional[str] = None
    ) -> KnowledgeBaseEntry:
        entry = self.get_entry(user_id, entry_id)

        result = await self.gateway.dispatch(
            "approve_entry", user_id, self._describe(entry), team_id=team_id
        )
        raise_for_result(result)

        entry.review_status = ReviewStatus.APPROVED
        entry.workflow_status = WorkflowStatus.ACTIVE
        self.db.flush()
        return entry


__all__ = ["KNOWLEDGE_TYPES", "KnowledgeService"]
