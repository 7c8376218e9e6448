"""ICP schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class IcpResponse(BaseModel):
    id: int
    icp_name: str
    description: Optional[str] = None
    job_titles: Optional[list] = None
    pain_points: Optional[list] = None
    value_drivers: Optional[list] = None
    industry_focus: Optional[list] = None
    company_characteristics: Optional[str] = None
    product_link_id: Optional[int] = None
    workflow_status: Optional[str] = None
    review_status: Optional[str] = None
    is_active: bool
    deleted_at: Optional[datetime] = None
    can_restore_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IcpListResponse(BaseModel):
    icps: list[IcpResponse]
    total: int


class IcpFields(BaseModel):
    description: Optional[str] = None
    job_titles: Optional[list[str]] = None
    pain_points: Optional[list[str]] = None
    value_drivers: Optional[list[str]] = None
    industry_focus: Optional[list[str]] = None
    company_characteristics: Optional[str] = None
    product_link_id: Optional[int] = None


class CreateIcpRequest(IcpFields):
    icp_name: str = Field(..., min_length=1, max_length=255)


class UpdateIcpRequest(IcpFields):
    icp_name: Optional[str] = Field(default=None, min_length=1, max_length=255)

    def to_updates(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SubmitForReviewRequest(BaseModel):
    changes_summary: list[str] = Field(default_factory=list)


class ApproveIcpRequest(BaseModel):
    review_notes: Optional[str] = None


class RegenerateIcpRequest(BaseModel):
    feedback: Optional[str] = None
