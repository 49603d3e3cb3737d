"""EntryWorkflowService — officer actions on entries.

Status moves only through officer actions (SEND_BACK / REJECT / PROCEED).
Broker activity (uploads, overrides, re-extraction) never touches status.
Every transition is a conditional UPDATE on (id, version): two officers
acting at once, or a PROCEED racing a validation re-run, cannot both win.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from entryflow.audit_generator.service import AuditService
from entryflow.entry_workflow.policy import is_finalized
from entryflow.entry_workflow.state_machine import (
    OfficerAction,
    blocking_failures,
    check_transition,
    display_status,
)
from entryflow.exceptions import EntryNotFound, StaleWrite, ValidationBlocked
from entryflow.models.entry import Entry, EntryStatus
from entryflow.models.tax import TaxComputation
from entryflow.models.validation import ValidationResult

logger = logging.getLogger("entryflow.workflow")


@dataclass
class EntryView:
    entry: Entry
    is_finalized: bool

    @property
    def display_status(self) -> str:
        return display_status(self.entry.status, self.is_finalized)


class EntryWorkflowService:
    """Entry lifecycle: officer transitions and entry queries."""

    async def get_entry(self, db: AsyncSession, entry_id: uuid.UUID, *, with_documents: bool = False) -> Entry:
        query = select(Entry).where(Entry.id == entry_id)
        if with_documents:
            query = query.options(selectinload(Entry.documents))
        entry = (await db.execute(query)).scalar_one_or_none()
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found", {"entry_id": str(entry_id)})
        return entry

    async def get_entry_view(self, db: AsyncSession, entry_id: uuid.UUID) -> EntryView:
        entry = await self.get_entry(db, entry_id, with_documents=True)
        return EntryView(entry=entry, is_finalized=await is_finalized(db, entry_id))

    async def apply_officer_action(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        action: OfficerAction | str,
        *,
        actor: str | None,
        actor_role: str,
        remarks: str | None = None,
    ) -> EntryView:
        """Apply SEND_BACK, REJECT or PROCEED.

        Raises:
            EntryNotFound: no such entry.
            InvalidTransition: role, remarks or terminal-state precondition failed.
            ValidationBlocked: PROCEED with a critical validation failure present.
            StaleWrite: the entry changed (another action or a validation run) since it was read.
        """
        action = OfficerAction(action)
        entry = await self.get_entry(db, entry_id)
        read_version = entry.version
        previous_status = EntryStatus(entry.status)
        finalized = await is_finalized(db, entry_id)

        target = check_transition(
            previous_status, action, actor_role=actor_role, remarks=remarks, finalized=finalized
        )

        if action is OfficerAction.PROCEED:
            results = (
                await db.execute(select(ValidationResult).where(ValidationResult.entry_id == entry_id))
            ).scalars().all()
            blocking = blocking_failures(results)
            if blocking:
                logger.info("PROCEED blocked for entry %s by %d critical failure(s)", entry_id, len(blocking))
                raise ValidationBlocked(
                    f"Cannot proceed: {len(blocking)} critical validation failure(s)", blocking
                )

        values = {"status": target, "version": read_version + 1}
        if action is OfficerAction.PROCEED:
            values["validated_at"] = datetime.now(timezone.utc)

        result = await db.execute(
            update(Entry)
            .where(Entry.id == entry_id, Entry.version == read_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(
                "Entry was modified concurrently; please retry",
                {"entry_id": str(entry_id), "read_version": read_version},
            )

        await db.refresh(entry)

        await AuditService.record(
            db,
            action=f"OFFICER_{action.value}",
            actor=actor,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry_id,
            remarks=remarks,
            event_data={"from": previous_status.value, "to": target.value},
        )
        logger.info("Entry %s: %s → %s by %s", entry_id, previous_status.value, target.value, actor)

        return EntryView(entry=entry, is_finalized=False)

    async def list_entries(
        self,
        db: AsyncSession,
        *,
        status: EntryStatus | None = None,
        created_by: str | None = None,
        finalized: bool | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[EntryView], int]:
        """Filterable, paginated entries, newest first."""
        has_tax = exists().where(TaxComputation.entry_id == Entry.id)
        query = select(Entry, has_tax.label("is_finalized"))
        count_query = select(func.count(Entry.id))

        filters = []
        if status:
            filters.append(Entry.status == status)
        if created_by:
            filters.append(Entry.created_by == created_by)
        if finalized is True:
            filters.append(has_tax)
        elif finalized is False:
            filters.append(~has_tax)

        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(Entry.submitted_at.desc()).offset(offset).limit(per_page)
        rows = (await db.execute(query)).all()

        return [EntryView(entry=entry, is_finalized=bool(flag)) for entry, flag in rows], total
