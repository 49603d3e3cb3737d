"""ValidationService — runs the rule set against an entry's reconciled fields.

A run replaces the entry's previous result set and bumps the entry version,
so any officer action prepared against the old results fails as stale.
"""

import logging
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.audit_generator.service import AuditService
from entryflow.exceptions import EntryNotFound, StaleWrite
from entryflow.models.entry import Entry
from entryflow.models.validation import ValidationResult, ValidationStatus
from entryflow.reconciliation_engine.service import FieldStore
from entryflow.validation.default_rules import DEFAULT_RULES
from entryflow.validation.rules import RuleDefinition, evaluate_rules

logger = logging.getLogger("entryflow.validation")


class ValidationService:
    def __init__(self, field_store: FieldStore, rules: list[RuleDefinition] | None = None):
        self.field_store = field_store
        self.rules = DEFAULT_RULES if rules is None else rules

    async def run(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        *,
        actor: str | None = None,
        actor_role: str = "SYSTEM",
    ) -> list[ValidationResult]:
        """Evaluate every rule and store the new result set in place of the old one."""
        entry = (await db.execute(select(Entry).where(Entry.id == entry_id))).scalar_one_or_none()
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found", {"entry_id": str(entry_id)})
        read_version = entry.version

        snapshot = await self.field_store.entry_snapshot(db, entry_id)
        evaluations = evaluate_rules(snapshot, self.rules)

        bumped = await db.execute(
            update(Entry)
            .where(Entry.id == entry_id, Entry.version == read_version)
            .values(version=read_version + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            raise StaleWrite(
                "Entry changed during validation; please retry",
                {"entry_id": str(entry_id), "read_version": read_version},
            )

        await db.execute(delete(ValidationResult).where(ValidationResult.entry_id == entry_id))

        run_id = uuid.uuid4()
        results = [
            ValidationResult(
                id=uuid.uuid4(),
                entry_id=entry_id,
                run_id=run_id,
                rule_id=e.rule_id,
                rule_type=e.rule_type,
                status=e.status,
                severity=e.severity,
                field_name=e.field_name,
                expected_behavior=e.expected_behavior,
                remarks=e.remarks,
            )
            for e in evaluations
        ]
        db.add_all(results)
        await db.flush()
        await db.refresh(entry)

        failed = [e.rule_id for e in evaluations if e.status is ValidationStatus.FAIL]
        blocking = [e.rule_id for e in evaluations if e.is_blocking]
        logger.info(
            "Validation run %s for entry %s: %d rules, %d failed, %d blocking",
            run_id, entry_id, len(evaluations), len(failed), len(blocking),
        )

        await AuditService.record(
            db,
            action="VALIDATION_RUN",
            actor=actor,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry_id,
            event_data={"run_id": str(run_id), "failed": failed, "blocking": blocking},
        )
        return results

    async def results(self, db: AsyncSession, entry_id: uuid.UUID) -> list[ValidationResult]:
        rows = await db.execute(
            select(ValidationResult)
            .where(ValidationResult.entry_id == entry_id)
            .order_by(ValidationResult.rule_type, ValidationResult.rule_id)
        )
        return list(rows.scalars().all())
