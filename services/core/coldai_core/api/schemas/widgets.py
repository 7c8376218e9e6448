"""Dashboard widget schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class WidgetViewResponse(BaseModel):
    state: str = Field(..., description="UI state of the widget")
    progress: Optional[float] = Field(default=None, description="Optimistic progress percent")
    optimistic: bool = Field(default=False, description="State comes from a generating flag")


class SettingsWidgetResponse(BaseModel):
    state: str
    configured_count: int
    personal: bool
    company: bool
    communication: bool


class WidgetsResponse(BaseModel):
    """State of every dashboard widget."""

    icp: WidgetViewResponse
    knowledge: WidgetViewResponse
    settings: SettingsWidgetResponse
    linkedin: str


class StartGeneratingRequest(BaseModel):
    title: str = Field(default="", description="Title shown while generating")


class GeneratingFlagResponse(BaseModel):
    widget: str
    title: str
    started_at: datetime
