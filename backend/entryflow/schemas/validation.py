"""Pydantic schemas for validation results."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ValidationResultResponse(BaseModel):
    rule_id: str
    rule_type: str
    status: str
    severity: str | None = None
    field_name: str | None = None
    expected_behavior: str | None = None
    remarks: str | None = None
    evaluated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ValidationResultsResponse(BaseModel):
    entry_id: uuid.UUID
    run_id: uuid.UUID | None = None
    can_proceed: bool
    blocking: list[str] = Field(default_factory=list)
    results: list[ValidationResultResponse]
    by_rule_type: dict[str, list[ValidationResultResponse]] = Field(default_factory=dict)
