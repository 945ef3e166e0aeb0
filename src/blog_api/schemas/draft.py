"""Draft sharing and draft access audit schemas."""

import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class DraftAccessType(enum.StrEnum):
    """Kind of operation performed on a draft."""

    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"


class ShareDraftRequest(BaseModel):
    """Share a draft with users and/or every holder of the shared-draft permission."""

    shared_with: list[UUID] = Field(default_factory=list, max_length=100)
    is_public: bool = False


class DraftAccessResponse(BaseModel):
    """Result of a draft access check."""

    post_id: UUID
    allowed: bool
    decision: str


class DraftAccessLogResponse(BaseModel):
    """Draft access audit record."""

    id: UUID
    post_id: UUID
    accessed_by: UUID
    access_type: str
    access_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DraftSummary(BaseModel):
    """A draft the caller may read."""

    id: UUID
    slug: str
    title: str
    author_id: UUID | None = None
    is_draft_public: bool
    updated_at: datetime

    model_config = {"from_attributes": True}
