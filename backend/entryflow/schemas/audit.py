"""Pydantic schemas for audit events."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class AuditEventResponse(BaseModel):
    id: uuid.UUID
    action: str
    actor: str | None = None
    actor_role: str | None = None
    reference_type: str | None = None
    reference_id: uuid.UUID | None = None
    remarks: str | None = None
    event_data: dict | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class AuditEventListResponse(BaseModel):
    events: list[AuditEventResponse]
    total: int
    page: int
    per_page: int


class AuditStatsResponse(BaseModel):
    total_events: int = 0
    events_by_action: dict[str, int] = Field(default_factory=dict)
    events_by_actor_role: dict[str, int] = Field(default_factory=dict)
    recent_events: list[AuditEventResponse] = Field(default_factory=list)
