"""Account, session and usage schemas."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class UserInfo(BaseModel):
    """Public user information."""

    id: str
    email: str
    created_at: datetime

    class Config:
        from_attributes = True


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"


class DeletionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class DeletionScheduledResponse(BaseModel):
    soft_delete_until: datetime
    days_until_permanent: int


class DeletionHistoryResponse(BaseModel):
    """Prior deletions of an email; ``found`` is False when there are none."""

    found: bool
    email: str
    deleted_at: Optional[datetime] = None
    deletion_count: int = 0
    details: Optional[dict[str, Any]] = None


class UsageResponse(BaseModel):
    month: date
    messages_generated: int
    messages_sent: int
    messages_archived: int
    research_performed: int
    messages_limit: int
    messages_remaining: int
