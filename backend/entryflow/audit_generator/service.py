"""AuditService — immutable append-only activity log.

Static methods; any module calls AuditService.record() directly without DI
wiring. Recording is fire-and-forget: it runs inside a SAVEPOINT and a
failure is logged, never raised.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.models.audit import AuditEvent

logger = logging.getLogger("entryflow.audit")


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def record(
        db: AsyncSession,
        *,
        action: str,
        actor: str | None = None,
        actor_role: str | None = "SYSTEM",
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        remarks: str | None = None,
        event_data: dict | None = None,
    ) -> AuditEvent | None:
        """Append an immutable audit event. Returns None if the write failed."""
        event = AuditEvent(
            id=uuid.uuid4(),
            action=action,
            actor=actor,
            actor_role=actor_role or "SYSTEM",
            reference_type=reference_type,
            reference_id=reference_id,
            remarks=remarks,
            event_data=event_data,
        )
        try:
            async with db.begin_nested():
                db.add(event)
        except Exception as e:
            logger.warning("Audit record %s for %s %s dropped: %r", action, reference_type, reference_id, e)
            return None
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        action: str | None = None,
        actor_role: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Query audit events with filtering and pagination."""
        query = select(AuditEvent)
        count_query = select(func.count(AuditEvent.id))

        if reference_type:
            query = query.where(AuditEvent.reference_type == reference_type)
            count_query = count_query.where(AuditEvent.reference_type == reference_type)
        if reference_id:
            query = query.where(AuditEvent.reference_id == reference_id)
            count_query = count_query.where(AuditEvent.reference_id == reference_id)
        if action:
            query = query.where(AuditEvent.action == action)
            count_query = count_query.where(AuditEvent.action == action)
        if actor_role:
            query = query.where(AuditEvent.actor_role == actor_role)
            count_query = count_query.where(AuditEvent.actor_role == actor_role)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(AuditEvent.created_at.desc()).offset(offset).limit(per_page)
        result = await db.execute(query)
        events = list(result.scalars().all())

        return events, total

    @staticmethod
    async def get_stats(db: AsyncSession, recent: int = 10) -> dict:
        """Event counts by action and by actor role, plus the most recent events."""
        total = (await db.execute(select(func.count(AuditEvent.id)))).scalar_one()

        by_action = await db.execute(
            select(AuditEvent.action, func.count(AuditEvent.id)).group_by(AuditEvent.action)
        )
        by_role = await db.execute(
            select(AuditEvent.actor_role, func.count(AuditEvent.id)).group_by(AuditEvent.actor_role)
        )
        recent_events = await db.execute(
            select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(recent)
        )

        return {
            "total_events": total,
            "events_by_action": {action: count for action, count in by_action.all()},
            "events_by_actor_role": {role: count for role, count in by_role.all()},
            "recent_events": list(recent_events.scalars().all()),
        }
