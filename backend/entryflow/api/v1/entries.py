"""Entry endpoints — intake, listing, batch extraction and officer actions."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from entryflow.api.v1.documents import document_to_response, report_to_response
from entryflow.config import settings
from entryflow.dependencies import (
    Actor,
    get_actor,
    get_batch_runner,
    get_db,
    get_intake_service,
    get_workflow_service,
)
from entryflow.document_extractor.batch import ExtractionBatchRunner, batch_cancellations
from entryflow.entry_workflow.service import EntryView, EntryWorkflowService
from entryflow.entry_workflow.state_machine import OfficerAction
from entryflow.exceptions import UploadRejected
from entryflow.models.entry import EntryStatus
from entryflow.schemas.document import BatchExtractionResponse, ExtractionRequest
from entryflow.schemas.entry import (
    EntryCreateResponse,
    EntryDetailResponse,
    EntryListResponse,
    EntryResponse,
    OfficerActionRequest,
)
from entryflow.services.intake_service import FORM_KEYS, IntakeService, Upload

router = APIRouter()


async def _read_uploads(request: Request) -> list[Upload]:
    """Multipart files under the gd / invoice / packing / awb keys; several per key allowed."""
    form = await request.form()
    uploads = []
    for key, doc_type in FORM_KEYS.items():
        for item in form.getlist(key):
            if not isinstance(item, UploadFile):
                continue
            if not item.filename:
                raise UploadRejected("No filename provided", {"form_key": key})
            uploads.append(
                Upload(
                    document_type=doc_type,
                    filename=item.filename,
                    content=await item.read(),
                    content_type=item.content_type,
                )
            )
    return uploads


@router.post("", response_model=EntryCreateResponse, status_code=201)
async def create_entry(
    request: Request,
    db: AsyncSession = Depends(get_db),
    intake: IntakeService = Depends(get_intake_service),
    actor: Actor = Depends(get_actor),
) -> EntryCreateResponse:
    """Create a PENDING entry from the uploaded customs documents."""
    uploads = await _read_uploads(request)
    entry, documents = await intake.create_entry(db, uploads, created_by=actor.id, actor_role=actor.role)
    return EntryCreateResponse(
        id=entry.id,
        status=entry.status.value,
        documents=[document_to_response(d) for d in documents],
    )


@router.get("", response_model=EntryListResponse)
async def list_entries(
    status: EntryStatus | None = None,
    created_by: str | None = None,
    finalized: bool | None = None,
    page: int = 1,
    per_page: int = 20,
    db: AsyncSession = Depends(get_db),
    workflow: EntryWorkflowService = Depends(get_workflow_service),
) -> EntryListResponse:
    """Entries filtered by status, creator, or finalized (tax confirmed)."""
    views, total = await workflow.list_entries(
        db, status=status, created_by=created_by, finalized=finalized, page=page, per_page=per_page
    )
    return EntryListResponse(
        entries=[_view_to_response(v) for v in views],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{entry_id}", response_model=EntryDetailResponse)
async def get_entry(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    workflow: EntryWorkflowService = Depends(get_workflow_service),
) -> EntryDetailResponse:
    view = await workflow.get_entry_view(db, entry_id)
    return EntryDetailResponse(
        **_view_to_response(view).model_dump(),
        documents=[document_to_response(d) for d in view.entry.documents],
    )


@router.post("/{entry_id}/documents", response_model=EntryCreateResponse, status_code=201)
async def add_documents(
    entry_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    intake: IntakeService = Depends(get_intake_service),
    workflow: EntryWorkflowService = Depends(get_workflow_service),
    actor: Actor = Depends(get_actor),
) -> EntryCreateResponse:
    entry = await workflow.get_entry(db, entry_id)
    uploads = await _read_uploads(request)
    documents = await intake.add_documents(db, entry, uploads, actor=actor.id, actor_role=actor.role)
    return EntryCreateResponse(
        id=entry.id,
        status=entry.status.value,
        documents=[document_to_response(d) for d in documents],
    )


@router.post("/{entry_id}/extract", response_model=BatchExtractionResponse)
async def extract_entry(
    entry_id: uuid.UUID,
    request: ExtractionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    runner: ExtractionBatchRunner = Depends(get_batch_runner),
    actor: Actor = Depends(get_actor),
) -> BatchExtractionResponse:
    """Extract every document of the entry concurrently. Cancellable via /extract/cancel."""
    cancel_event = batch_cancellations.open(entry_id)
    try:
        report = await runner.run_for_entry(
            db,
            entry_id,
            edit_policy=settings.broker_edit_policy,
            cancel_event=cancel_event,
            overwrite_manual=request.overwrite_manual if request else False,
            actor=actor.id,
            actor_role=actor.role,
        )
    finally:
        batch_cancellations.close(entry_id, cancel_event)

    return BatchExtractionResponse(
        entry_id=entry_id,
        cancelled=report.cancelled,
        documents=[report_to_response(d) for d in report.documents],
    )


@router.post("/{entry_id}/extract/cancel")
async def cancel_extraction(entry_id: uuid.UUID) -> dict:
    """Stop dispatching new documents for a running batch; in-flight ones still finish."""
    return {"entry_id": str(entry_id), "cancelled": batch_cancellations.cancel(entry_id)}


@router.post("/{entry_id}/actions", response_model=EntryResponse)
async def officer_action(
    entry_id: uuid.UUID,
    request: OfficerActionRequest,
    db: AsyncSession = Depends(get_db),
    workflow: EntryWorkflowService = Depends(get_workflow_service),
    actor: Actor = Depends(get_actor),
) -> EntryResponse:
    """SEND_BACK, REJECT or PROCEED. PROCEED is blocked by any critical validation failure."""
    try:
        action = OfficerAction(request.action.upper())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid action: {request.action}. Must be SEND_BACK, REJECT, or PROCEED.",
        )

    view = await workflow.apply_officer_action(
        db, entry_id, action, actor=actor.id, actor_role=actor.role, remarks=request.remarks,
    )
    return _view_to_response(view)


def _view_to_response(view: EntryView) -> EntryResponse:
    entry = view.entry
    return EntryResponse(
        id=entry.id,
        status=entry.status.value,
        display_status=view.display_status,
        is_finalized=view.is_finalized,
        created_by=entry.created_by,
        submitted_at=entry.submitted_at,
        validated_at=entry.validated_at,
        version=entry.version,
        created_at=entry.created_at,
    )
