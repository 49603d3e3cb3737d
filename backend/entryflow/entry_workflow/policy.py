"""Broker edit policy — whether document uploads, overrides and re-extraction are allowed."""

import uuid

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.exceptions import EditLocked
from entryflow.models.entry import EntryStatus
from entryflow.models.tax import TaxComputation

OPEN = "open"
REVIEW_LOCK = "review_lock"

EDITABLE_UNDER_REVIEW_LOCK = frozenset({EntryStatus.PENDING, EntryStatus.FOR_REVIEW})


def broker_edit_allowed(policy: str, status: EntryStatus, finalized: bool) -> tuple[bool, str]:
    """Returns (allowed, reason)."""
    if policy == OPEN:
        return True, "Edits allowed in any status"

    if finalized:
        return False, "Entry is finalized (tax computation confirmed)"
    if EntryStatus(status) not in EDITABLE_UNDER_REVIEW_LOCK:
        return False, f"Entry is {EntryStatus(status).value}; edits allowed only while PENDING or FOR_REVIEW"
    return True, "Entry is open for broker corrections"


async def is_finalized(db: AsyncSession, entry_id: uuid.UUID) -> bool:
    return bool(
        (await db.execute(select(exists().where(TaxComputation.entry_id == entry_id)))).scalar()
    )


async def ensure_broker_can_edit(
    db: AsyncSession, entry_id: uuid.UUID, status: EntryStatus, policy: str
) -> None:
    finalized = await is_finalized(db, entry_id) if policy != OPEN else False
    allowed, reason = broker_edit_allowed(policy, status, finalized)
    if not allowed:
        raise EditLocked(reason, precondition="broker_edit_policy", details={"entry_id": str(entry_id)})
