"""LinkedIn account linking schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuthLinkRequest(BaseModel):
    auth_type: str = Field(default="create", description="create or reconnect")


class AuthLinkResponse(BaseModel):
    url: str = Field(..., description="Hosted auth URL to open in a popup")
    token: Optional[str] = None
    expires_on: datetime


class CompleteConnectionRequest(BaseModel):
    kind: str = Field(..., description="message or closed")
    data: dict[str, Any] = Field(default_factory=dict, description="Posted message payload")


class LinkedInStatusResponse(BaseModel):
    connected: bool
    account: Optional[dict[str, Any]] = None


class CompleteConnectionResponse(BaseModel):
    handled: bool = Field(..., description="False when the signal was ignored")
    status: Optional[LinkedInStatusResponse] = None


class NotifyRequest(BaseModel):
    """Provider callback sent once hosted auth finished."""

    status: str = Field(..., description="Provider status, e.g. CREATION_SUCCESS")
    account_id: str
    name: str = Field(..., description="User ID passed when the link was generated")
    public_identifier: Optional[str] = None
    profile_url: Optional[str] = None
    profile_data: dict[str, Any] = Field(default_factory=dict)
