"""Prospects API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from coldai_core.domain.message_status import badge_for
from coldai_core.domain.services.prospects import Prospect


# =============================================================================
# PROSPECT SCHEMAS
# =============================================================================


class StatusBadgeResponse(BaseModel):
    label: str = Field(..., description="Display label")
    color: str = Field(..., description="Badge color token")


class ProspectResponse(BaseModel):
    """Response schema for one aggregated prospect."""

    id: int = Field(..., description="Representative message log ID")
    research_cache_id: int = Field(..., description="Prospect (research cache) ID")
    name: str = Field(..., description="Display name")
    avatar: str = Field(..., description="Avatar image URL")
    linkedin_url: str = Field(..., description="LinkedIn profile URL")
    job_title: str = Field(..., description="Headline or job title")
    company: str = Field(..., description="Company name")
    location: Optional[str] = Field(default=None, description="Location")
    message_status: str = Field(..., description="Raw status of the representative row")
    badge: StatusBadgeResponse = Field(..., description="Status badge")
    message_count: int = Field(..., description="Rows considered after tie-break filtering")
    all_statuses: list[str] = Field(default_factory=list, description="Statuses of every row")
    created_at: datetime = Field(..., description="Representative row creation time")
    updated_at: datetime = Field(..., description="Representative row last update")
    scheduled_for: Optional[datetime] = Field(default=None, description="Scheduled send time")
    is_loading: bool = Field(default=False, description="Research still running")

    @classmethod
    def from_prospect(cls, prospect: Prospect) -> "ProspectResponse":
        badge = badge_for(prospect.message_status)
        return cls(
            id=prospect.id,
            research_cache_id=prospect.research_cache_id,
            name=prospect.name,
            avatar=prospect.avatar,
            linkedin_url=prospect.linkedin_url,
            job_title=prospect.job_title,
            company=prospect.company,
            location=prospect.location,
            message_status=prospect.message_status,
            badge=StatusBadgeResponse(label=badge.label, color=badge.color),
            message_count=prospect.message_count,
            all_statuses=prospect.all_statuses,
            created_at=prospect.created_at,
            updated_at=prospect.updated_at,
            scheduled_for=prospect.scheduled_for,
            is_loading=prospect.is_loading,
        )


class ListProspectsResponse(BaseModel):
    """Response schema for one page of the prospect list."""

    prospects: list[ProspectResponse] = Field(..., description="Prospects on this page")
    total: int = Field(..., description="Prospects after filtering")
    page: int = Field(..., description="Page served")
    page_size: int = Field(..., description="Page size")
    total_pages: int = Field(..., description="Number of pages")
    page_reset: bool = Field(default=False, description="Requested page was out of range")
    status_counts: dict[str, int] = Field(..., description="Prospects per status chip")
    active_rules_count: int = Field(..., description="Number of active rules")
    ordered_ids: list[int] = Field(..., description="Filtered and sorted prospect IDs")


class ProspectStatsResponse(BaseModel):
    generated: int
    scheduled: int
    sent: int


class DashboardSummaryResponse(BaseModel):
    """Response schema for the prospect widget."""

    needs_attention: list[ProspectResponse] = Field(..., description="Top prospects needing action")
    stats: ProspectStatsResponse
    total_prospects: int


# =============================================================================
# RULES SCHEMAS
# =============================================================================


class ProspectRulesSchema(BaseModel):
    """Active rule set. Presets are mutually exclusive with everything else."""

    activity_days: Optional[int] = Field(default=None, ge=1)
    added_days: Optional[int] = Field(default=None, ge=1)
    hide_inactive_days: Optional[int] = Field(default=None, ge=1)

    hide_all_archived: bool = False
    only_awaiting_reply: bool = False
    only_replied: bool = False
    hide_replied: bool = False

    min_messages: Optional[int] = Field(default=None, ge=0)
    max_messages: Optional[int] = Field(default=None, ge=0)
    hide_failed_threshold: Optional[int] = Field(default=None, ge=1)

    only_generated: bool = False
    only_pending_scheduled: bool = False
    only_failed: bool = False

    hot_leads: bool = False
    active_outreach: bool = False
    ready_to_schedule: bool = False
    cold_leads: bool = False
    clean_view: bool = False


class RulesResponse(BaseModel):
    rules: ProspectRulesSchema
    active_preset: Optional[str] = None
    active_count: int = 0


class TogglePresetRequest(BaseModel):
    preset: str = Field(..., description="Preset name to toggle")


# =============================================================================
# ACTION SCHEMAS
# =============================================================================


class ScheduleMessageRequest(BaseModel):
    scheduled_for: Optional[datetime] = Field(
        default=None, description="When to send; defaults to one minute from now"
    )


class ScheduleMessageResponse(BaseModel):
    message_log_id: int
    prospect_id: int
    sequence_id: int
    sequence_prospect_id: int
    scheduled_for: datetime


class SendMessageResponse(BaseModel):
    success: bool = True
    message_log_id: int
    prospect_id: int


class CreateProspectRequest(BaseModel):
    linkedin_url: str = Field(..., description="LinkedIn profile URL of the prospect")
    message_type: str = Field(default="first_message")
    outreach_goal: str = Field(default="meeting")
    icp_id: Optional[int] = None
    product_id: Optional[int] = None


class EnqueuedResponse(BaseModel):
    task_id: str
    message_log_id: Optional[int] = None
