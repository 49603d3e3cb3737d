"""Pydantic schemas for documents, their fields and extraction runs."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class DocumentResponse(BaseModel):
    id: uuid.UUID
    entry_id: uuid.UUID
    document_type: str
    original_filename: str
    mime_type: str
    file_size: int
    ocr_status: str
    extraction_strategy: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class FieldViewResponse(BaseModel):
    field_name: str
    value: str = ""
    confidence: float = 0.0
    source: str | None = None


class DocumentFieldsResponse(BaseModel):
    document_id: uuid.UUID
    document_type: str
    fields: list[FieldViewResponse]


class FieldOverrideRequest(BaseModel):
    fields: dict[str, str] = Field(..., description="field_name → corrected value")


class FieldOverrideResponse(BaseModel):
    document_id: uuid.UUID
    updated: list[str]
    fields: list[FieldViewResponse]


class ExtractionRequest(BaseModel):
    overwrite_manual: bool = Field(
        False, description="Confirm replacing manually edited fields with the new extraction"
    )


class DocumentExtractionResponse(BaseModel):
    document_id: uuid.UUID
    outcome: str
    strategy_used: str | None = None
    fields_written: int = 0
    kept_manual: list[str] = Field(default_factory=list)
    error: str | None = None


class BatchExtractionResponse(BaseModel):
    entry_id: uuid.UUID
    cancelled: bool
    documents: list[DocumentExtractionResponse]


class DocumentLinkResponse(BaseModel):
    document_id: uuid.UUID
    url: str
    expires_in: int
