"""Pydantic schemas for entries and officer actions."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from entryflow.schemas.document import DocumentResponse


class EntryResponse(BaseModel):
    id: uuid.UUID
    status: str
    display_status: str
    is_finalized: bool = False
    created_by: str | None = None
    submitted_at: datetime | None = None
    validated_at: datetime | None = None
    version: int
    created_at: datetime | None = None


class EntryDetailResponse(EntryResponse):
    documents: list[DocumentResponse] = Field(default_factory=list)


class EntryListResponse(BaseModel):
    entries: list[EntryResponse]
    total: int
    page: int
    per_page: int


class EntryCreateResponse(BaseModel):
    id: uuid.UUID
    status: str
    documents: list[DocumentResponse]


class OfficerActionRequest(BaseModel):
    action: str = Field(..., description="SEND_BACK, REJECT or PROCEED")
    remarks: str | None = None
