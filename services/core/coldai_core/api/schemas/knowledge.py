"""Knowledge base schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class KnowledgeEntryResponse(BaseModel):
    id: int
    knowledge_type: str
    title: str
    content: str
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="entry_metadata")
    workflow_status: Optional[str] = None
    review_status: Optional[str] = None
    deleted_at: Optional[datetime] = None
    can_restore_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class KnowledgeListResponse(BaseModel):
    entries: list[KnowledgeEntryResponse]
    total: int


class CreateKnowledgeRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(default="")
    knowledge_type: str = Field(default="product", description="product, company or case_study")
    metadata: Optional[dict[str, Any]] = None


class UpdateKnowledgeRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None
    knowledge_type: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    def to_updates(self) -> dict[str, Any]:
        updates = self.model_dump(exclude_unset=True)
        if "metadata" in updates:
            updates["entry_metadata"] = updates.pop("metadata")
        return updates


class KnowledgeActionResponse(BaseModel):
    entry: KnowledgeEntryResponse
    local: bool = Field(default=False, description="Handled without the automation")
    message: Optional[str] = None
