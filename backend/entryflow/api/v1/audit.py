"""Audit log endpoints — query events and view stats."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.audit_generator.service import AuditService
from entryflow.dependencies import get_db
from entryflow.schemas.audit import AuditEventListResponse, AuditEventResponse, AuditStatsResponse

router = APIRouter()


@router.get("/events", response_model=AuditEventListResponse)
async def list_events(
    reference_type: str | None = None,
    reference_id: uuid.UUID | None = None,
    action: str | None = None,
    actor_role: str | None = None,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
) -> AuditEventListResponse:
    """List audit events with optional filtering."""
    events, total = await AuditService.get_events(
        db,
        reference_type=reference_type,
        reference_id=reference_id,
        action=action,
        actor_role=actor_role,
        page=page,
        per_page=per_page,
    )
    return AuditEventListResponse(
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=AuditStatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
) -> AuditStatsResponse:
    """Get audit event statistics."""
    stats = await AuditService.get_stats(db)
    return AuditStatsResponse(
        total_events=stats["total_events"],
        events_by_action=stats["events_by_action"],
        events_by_actor_role=stats["events_by_actor_role"],
        recent_events=[AuditEventResponse.model_validate(e) for e in stats["recent_events"]],
    )
