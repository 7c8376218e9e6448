"""Account deletion requests.

Deletion is a 30-day soft delete carried out by the backend; the dashboard
only requests it and can look up whether an email was deleted before.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from coldai_core.infrastructure.edge_functions import EdgeFunctionClient, EdgeFunctionError

logger = logging.getLogger(__name__)

REQUEST_FUNCTION = "request-account-deletion"
HISTORY_FUNCTION = "check-email-deletion-history"


class AccountDeletionError(Exception):
    """Raised when a deletion request or lookup fails."""
    pass


@dataclass
class DeletionScheduled:
    soft_delete_until: datetime
    days_until_permanent: int


@dataclass
class DeletionHistory:
    email: str
    deleted_at: Optional[datetime] = None
    deletion_count: int = 0
    details: Optional[dict[str, Any]] = None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


class AccountDeletionService:
    def __init__(self, edge_client: EdgeFunctionClient):
        self.edge_client = edge_client

    async def request_deletion(self, user_id: str, reason: Optional[str] = None) -> DeletionScheduled:
        try:
            result = await self.edge_client.invoke(
                REQUEST_FUNCTION, {"user_id": user_id, "deletion_reason": reason}
            )
        except EdgeFunctionError as e:
            logger.error(f"Account deletion request failed for user {user_id}: {e}")
            raise AccountDeletionError("Failed to delete account") from e

        data = result.get("data", result)
        if result.get("success") is False or not data.get("soft_delete_until"):
            raise AccountDeletionError(result.get("error") or "Failed to delete account")

        logger.info(f"Account deletion requested for user {user_id}")
        return DeletionScheduled(
            soft_delete_until=_parse_datetime(data["soft_delete_until"]),
            days_until_permanent=int(data.get("days_until_permanent", 30)),
        )

    async def check_deletion_history(self, email: str) -> Optional[DeletionHistory]:
        """Return the deletion history for an email, or None when there is none."""
        try:
            result = await self.edge_client.invoke(HISTORY_FUNCTION, {"p_email": email})
        except EdgeFunctionError as e:
            raise AccountDeletionError(f"Failed to check deletion history: {e}") from e

        rows = result.get("data")
        if isinstance(rows, list):
            row = rows[0] if rows else None
        else:
            row = rows
        if not row:
            return None

        return DeletionHistory(
            email=email,
            deleted_at=_parse_datetime(row.get("deleted_at")),
            deletion_count=int(row.get("deletion_count") or 0),
            details=row,
        )


__all__ = [
    "AccountDeletionError",
    "AccountDeletionService",
    "DeletionHistory",
    "DeletionScheduled",
]
