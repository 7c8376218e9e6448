"""Ideal customer profiles.

ICP generation and review run in the automation, which has no local
fallback: when the ICP endpoint is unavailable, actions fail with
"feature not configured" and no row is changed.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from coldai_core.domain.models import ICP, ReviewStatus, WorkflowStatus
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

ICP_FIELDS = (
    "icp_name",
    "description",
    "job_titles",
    "pain_points",
    "value_drivers",
    "industry_focus",
    "company_characteristics",
    "product_link_id",
)


class IcpService:
    """CRUD, review and regeneration for ICPs."""

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

    def list_icps(self, user_id: str, include_deleted: bool = False) -> list[ICP]:
        query = self.db.query(ICP).filter(ICP.user_id == user_id)
        if not include_deleted:
            query = query.filter(ICP.deleted_at.is_(None))
        return query.order_by(ICP.created_at.desc(), ICP.id.desc()).all()

    def get_icp(self, user_id: str, icp_id: int) -> ICP:
        icp = self.db.query(ICP).filter(ICP.id == icp_id, ICP.user_id == user_id).first()
        if icp is None:
            raise EntityNotFoundError(f"ICP {icp_id} not found")
        return icp

    async def _dispatch(
        self,
        action: str,
        user_id: str,
        icp: ICP,
        extra: Optional[dict[str, Any]] = None,
        team_id: Optional[str] = None,
    ) -> GatewayResult:
        data = {
            "icp_id": icp.id,
            "icp_name": icp.icp_name,
            "workflow_status": icp.workflow_status,
            **(extra or {}),
        }
        return raise_for_result(
            await self.gateway.dispatch(action, user_id, data, team_id=team_id)
        )

    async def create_icp(
        self,
        user_id: str,
        fields: dict[str, Any],
        team_id: Optional[str] = None,
    ) -> ICP:
        """Create an ICP and start its generation. The caller commits."""
        self.usage.ensure_can_create_icp(user_id)

        icp = ICP(
            user_id=user_id,
            workflow_status=WorkflowStatus.GENERATING,
            review_status=ReviewStatus.PENDING,
            is_active=True,
            **{k: v for k, v in fields.items() if k in ICP_FIELDS},
        )
        self.db.add(icp)
        self.db.flush()

        try:
            await self._dispatch(
                "create_icp",
                user_id,
                icp,
                {k: getattr(icp, k) for k in ICP_FIELDS},
                team_id=team_id,
            )
        except Exception:
            self.db.delete(icp)
            self.db.flush()
            raise

        logger.info(f"ICP {icp.id} created for user {user_id}")
        return icp

    async def update_icp(
        self,
        user_id: str,
        icp_id: int,
        updates: dict[str, Any],
        team_id: Optional[str] = None,
    ) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        changes = {k: v for k, v in updates.items() if k in ICP_FIELDS}
        await self._dispatch("update_icp", user_id, icp, {"updates": changes}, team_id=team_id)

        for name, value in changes.items():
            setattr(icp, name, value)
        self.db.flush()
        return icp

    async def delete_icp(self, user_id: str, icp_id: int, team_id: Optional[str] = None) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        if icp.deleted_at is not None:
            raise EntityNotFoundError(f"ICP {icp_id} not found")
        await self._dispatch("archive_icp", user_id, icp, team_id=team_id)

        soft_delete(icp, self.restore_grace_days)
        self.db.flush()
        return icp

    async def restore_icp(self, user_id: str, icp_id: int, team_id: Optional[str] = None) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        check_restorable(icp)
        await self._dispatch("restore_icp", user_id, icp, team_id=team_id)

        clear_soft_delete(icp)
        self.db.flush()
        return icp

    async def submit_for_review(
        self,
        user_id: str,
        icp_id: int,
        changes_summary: Optional[list[str]] = None,
        team_id: Optional[str] = None,
    ) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        await self._dispatch(
            "submit_for_review",
            user_id,
            icp,
            {"changes_summary": changes_summary or []},
            team_id=team_id,
        )
        icp.workflow_status = WorkflowStatus.REVIEWING
        self.db.flush()
        return icp

    async def approve_icp(
        self,
        user_id: str,
        icp_id: int,
        review_notes: Optional[str] = None,
        team_id: Optional[str] = None,
    ) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        await self._dispatch(
            "approve_icp",
            user_id,
            icp,
            {"reviewer_id": user_id, "review_notes": review_notes},
            team_id=team_id,
        )
        icp.review_status = ReviewStatus.APPROVED
        icp.workflow_status = WorkflowStatus.ACTIVE
        self.db.flush()
        return icp

    async def regenerate_icp(
        self,
        user_id: str,
        icp_id: int,
        feedback: Optional[str] = None,
        team_id: Optional[str] = None,
    ) -> ICP:
        icp = self.get_icp(user_id, icp_id)
        await self._dispatch("regenerate_icp", user_id, icp, {"feedback": feedback}, team_id=team_id)

        icp.workflow_status = WorkflowStatus.GENERATING
        icp.review_status = ReviewStatus.PENDING
        self.db.flush()
        return icp


__all__ = ["ICP_FIELDS", "IcpService"]
