"""Document endpoints — field tabs, broker overrides, re-extraction, retrieval links."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.config import settings
from entryflow.dependencies import (
    Actor,
    get_actor,
    get_batch_runner,
    get_db,
    get_field_store,
    get_storage,
)
from entryflow.document_extractor.batch import DocumentReport, ExtractionBatchRunner
from entryflow.models.document import Document
from entryflow.reconciliation_engine.service import FieldStore, FieldView
from entryflow.schemas.document import (
    DocumentExtractionResponse,
    DocumentFieldsResponse,
    DocumentLinkResponse,
    DocumentResponse,
    ExtractionRequest,
    FieldOverrideRequest,
    FieldOverrideResponse,
    FieldViewResponse,
)
from entryflow.services.storage import LocalFileStorage

router = APIRouter()

LINK_TTL_SECONDS = 300


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    field_store: FieldStore = Depends(get_field_store),
) -> DocumentResponse:
    document = await field_store.get_document(db, document_id)
    return document_to_response(document)


@router.get("/{document_id}/fields", response_model=DocumentFieldsResponse)
async def get_fields(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    field_store: FieldStore = Depends(get_field_store),
) -> DocumentFieldsResponse:
    """The document type's whitelisted fields, in order, with placeholders for missing ones."""
    document = await field_store.get_document(db, document_id)
    views = await field_store.visible_fields(db, document)
    return DocumentFieldsResponse(
        document_id=document.id,
        document_type=document.document_type.value,
        fields=[_view_to_response(v) for v in views],
    )


@router.put("/{document_id}/fields", response_model=FieldOverrideResponse)
async def override_fields(
    document_id: uuid.UUID,
    request: FieldOverrideRequest,
    db: AsyncSession = Depends(get_db),
    field_store: FieldStore = Depends(get_field_store),
    actor: Actor = Depends(get_actor),
) -> FieldOverrideResponse:
    """Broker manual edits. Blank values are ignored."""
    results = await field_store.override_many(
        db, document_id, request.fields, actor=actor.id, actor_role=actor.role
    )
    document = await field_store.get_document(db, document_id)
    views = await field_store.visible_fields(db, document)
    return FieldOverrideResponse(
        document_id=document_id,
        updated=[r.field_name for r in results],
        fields=[_view_to_response(v) for v in views],
    )


@router.post("/{document_id}/extract", response_model=DocumentExtractionResponse)
async def extract_document(
    document_id: uuid.UUID,
    request: ExtractionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    runner: ExtractionBatchRunner = Depends(get_batch_runner),
    actor: Actor = Depends(get_actor),
) -> DocumentExtractionResponse:
    """Re-run extraction on one document. Manual edits are kept unless overwrite_manual is set."""
    report = await runner.run_for_document(
        db,
        document_id,
        edit_policy=settings.broker_edit_policy,
        overwrite_manual=request.overwrite_manual if request else False,
        actor=actor.id,
        actor_role=actor.role,
    )
    return report_to_response(report)


@router.get("/{document_id}/link", response_model=DocumentLinkResponse)
async def get_link(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    field_store: FieldStore = Depends(get_field_store),
    storage: LocalFileStorage = Depends(get_storage),
) -> DocumentLinkResponse:
    """Time-limited retrieval handle for the original file."""
    document = await field_store.get_document(db, document_id)
    return DocumentLinkResponse(
        document_id=document.id,
        url=storage.signed_url(document.content_ref, ttl=LINK_TTL_SECONDS),
        expires_in=LINK_TTL_SECONDS,
    )


def document_to_response(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        entry_id=document.entry_id,
        document_type=document.document_type.value,
        original_filename=document.original_filename,
        mime_type=document.mime_type,
        file_size=document.file_size,
        ocr_status=document.ocr_status.value,
        extraction_strategy=document.extraction_strategy,
        created_at=document.created_at,
    )


def report_to_response(report: DocumentReport) -> DocumentExtractionResponse:
    return DocumentExtractionResponse(
        document_id=report.document_id,
        outcome=report.outcome.value,
        strategy_used=report.strategy_used,
        fields_written=report.fields_written,
        kept_manual=report.kept_manual,
        error=report.error,
    )


def _view_to_response(view: FieldView) -> FieldViewResponse:
    return FieldViewResponse(
        field_name=view.field_name,
        value=view.value,
        confidence=view.confidence,
        source=view.source.value if view.source else None,
    )
