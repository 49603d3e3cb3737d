"""FieldStore — one authoritative record per (document, field).

Flow for an extraction result:
1. For every whitelisted field in the result, load the stored row (if any)
2. Decide replacement by confidence precedence (rules.decide_replacement)
3. Insert, or compare-and-swap on the row's version
4. Record per-field outcomes; a lost race surfaces as StaleWrite

Readers never recompute a winner: the row in the table is the answer.
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from entryflow.audit_generator.service import AuditService
from entryflow.config import Settings
from entryflow.document_extractor.fields import is_allowed, whitelist_for
from entryflow.document_extractor.pipeline import ChainResult
from entryflow.entry_workflow.policy import ensure_broker_can_edit
from entryflow.exceptions import DocumentNotFound, FieldNotAllowed, StaleWrite
from entryflow.models.document import Document, DocumentType
from entryflow.models.extracted_field import ExtractedField, FieldSource
from entryflow.reconciliation_engine.rules import (
    MANUAL_CONFIDENCE,
    UpsertOutcome,
    decide_replacement,
    precedence_key,
)
from entryflow.reconciliation_engine.snapshot import EntryFieldSnapshot, FieldRecord

logger = logging.getLogger("entryflow.fields")


@dataclass
class UpsertResult:
    field_name: str
    outcome: UpsertOutcome
    record: FieldRecord


@dataclass
class FieldView:
    """One row of a document tab. Absent fields are placeholders, never None."""

    field_name: str
    value: str = ""
    confidence: float = 0.0
    source: FieldSource | None = None

    @property
    def has_value(self) -> bool:
        return self.source is not None


@dataclass
class ReconcileSummary:
    document_id: uuid.UUID
    strategy_used: str
    outcomes: dict[str, UpsertOutcome] = field(default_factory=dict)

    @property
    def written(self) -> int:
        return sum(1 for o in self.outcomes.values() if o in (UpsertOutcome.INSERTED, UpsertOutcome.REPLACED))

    @property
    def kept_manual(self) -> list[str]:
        return [name for name, o in self.outcomes.items() if o is UpsertOutcome.KEPT_MANUAL]


class FieldStore:
    """Confidence-aware field table for extracted and manually edited values."""

    def __init__(self, settings: Settings):
        self.edit_policy = settings.broker_edit_policy

    async def upsert(
        self,
        db: AsyncSession,
        document: Document,
        field_name: str,
        value: str,
        confidence: float,
        source: FieldSource,
        *,
        raw_value: str | None = None,
        refresh: bool = False,
        overwrite_manual: bool = False,
    ) -> UpsertResult:
        """Insert or conditionally replace the record for (document, field).

        Raises:
            FieldNotAllowed: field is not in the document type's whitelist.
            StaleWrite: a concurrent writer changed the row first.
        """
        if not is_allowed(document.document_type, field_name):
            raise FieldNotAllowed(
                f"Field '{field_name}' is not allowed for {DocumentType(document.document_type).value}",
                {"field_name": field_name, "document_type": DocumentType(document.document_type).value},
            )

        existing = (
            await db.execute(
                select(ExtractedField).where(
                    ExtractedField.document_id == document.id,
                    ExtractedField.field_name == field_name,
                )
            )
        ).scalar_one_or_none()

        if existing is None:
            row = ExtractedField(
                id=uuid.uuid4(),
                document_id=document.id,
                field_name=field_name,
                raw_value=raw_value,
                normalized_value=value,
                confidence=confidence,
                source=source,
                version=1,
            )
            try:
                async with db.begin_nested():
                    db.add(row)
            except IntegrityError as e:
                raise StaleWrite(
                    f"Concurrent write to field '{field_name}'; please retry",
                    {"document_id": str(document.id), "field_name": field_name},
                ) from e
            return UpsertResult(field_name, UpsertOutcome.INSERTED, FieldRecord.from_row(row))

        replace, outcome = decide_replacement(
            FieldSource(existing.source),
            existing.confidence,
            source,
            confidence,
            refresh=refresh,
            overwrite_manual=overwrite_manual,
        )
        if not replace:
            return UpsertResult(field_name, outcome, FieldRecord.from_row(existing))

        result = await db.execute(
            update(ExtractedField)
            .where(
                ExtractedField.id == existing.id,
                ExtractedField.version == existing.version,
            )
            .values(
                raw_value=existing.raw_value if raw_value is None else raw_value,
                normalized_value=value,
                confidence=confidence,
                source=source,
                version=existing.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(
                f"Field '{field_name}' changed concurrently; please retry",
                {"document_id": str(document.id), "field_name": field_name},
            )

        await db.refresh(existing)
        return UpsertResult(field_name, outcome, FieldRecord.from_row(existing))

    async def reconcile_extraction(
        self,
        db: AsyncSession,
        document: Document,
        extraction: ChainResult,
        *,
        refresh: bool = True,
        overwrite_manual: bool = False,
    ) -> ReconcileSummary:
        """Merge one document's extraction result into the field table."""
        summary = ReconcileSummary(document_id=document.id, strategy_used=extraction.strategy_used)

        for name in whitelist_for(document.document_type):
            result = extraction.fields.get(name)
            if result is None:
                continue
            upserted = await self.upsert(
                db,
                document,
                name,
                result.value,
                result.confidence,
                result.source,
                raw_value=result.raw_value,
                refresh=refresh,
                overwrite_manual=overwrite_manual,
            )
            summary.outcomes[name] = upserted.outcome

        if summary.kept_manual:
            logger.info(
                "Document %s: kept manual overrides for %s", document.id, ", ".join(summary.kept_manual)
            )
        return summary

    async def override(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        field_name: str,
        value: str,
        *,
        actor: str | None = None,
        actor_role: str = "BROKER",
    ) -> UpsertResult | None:
        """Broker manual edit of one field. Returns None when the value is blank."""
        results = await self.override_many(
            db, document_id, {field_name: value}, actor=actor, actor_role=actor_role
        )
        return results[0] if results else None

    async def override_many(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        values: dict[str, str],
        *,
        actor: str | None = None,
        actor_role: str = "BROKER",
    ) -> list[UpsertResult]:
        """Apply broker manual edits. Manual values win over any later automated run.

        Raises:
            DocumentNotFound, FieldNotAllowed, EditLocked
        """
        document = await self.get_document(db, document_id)

        disallowed = [name for name in values if not is_allowed(document.document_type, name)]
        if disallowed:
            raise FieldNotAllowed(
                f"Fields not allowed for {DocumentType(document.document_type).value}: {', '.join(disallowed)}",
                {"fields": disallowed},
            )

        await ensure_broker_can_edit(db, document.entry_id, document.entry.status, self.edit_policy)

        results: list[UpsertResult] = []
        for name, value in values.items():
            if value is None or not str(value).strip():
                continue
            results.append(
                await self.upsert(db, document, name, str(value).strip(), MANUAL_CONFIDENCE, FieldSource.MANUAL)
            )

        await AuditService.record(
            db,
            action="FIELD_OVERRIDE",
            actor=actor,
            actor_role=actor_role,
            reference_type="document",
            reference_id=document.id,
            event_data={"fields": {r.field_name: r.record.value for r in results}},
        )
        return results

    async def get_document(self, db: AsyncSession, document_id: uuid.UUID) -> Document:
        document = (
            await db.execute(
                select(Document).options(selectinload(Document.entry)).where(Document.id == document_id)
            )
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found", {"document_id": str(document_id)})
        return document

    async def get_fields(self, db: AsyncSession, document_id: uuid.UUID) -> dict[str, FieldRecord]:
        rows = (
            await db.execute(select(ExtractedField).where(ExtractedField.document_id == document_id))
        ).scalars().all()
        return {row.field_name: FieldRecord.from_row(row) for row in rows}

    async def visible_fields(self, db: AsyncSession, document: Document) -> list[FieldView]:
        """The document type's whitelist, in order; missing fields render as empty placeholders."""
        records = await self.get_fields(db, document.id)
        views: list[FieldView] = []
        for name in whitelist_for(document.document_type):
            record = records.get(name)
            if record is None:
                views.append(FieldView(field_name=name))
            else:
                views.append(FieldView(name, record.value, record.confidence, record.source))
        return views

    async def entry_snapshot(self, db: AsyncSession, entry_id: uuid.UUID) -> EntryFieldSnapshot:
        """Winning record per (document type, field) across all of an entry's documents."""
        rows = (
            await db.execute(
                select(ExtractedField, Document.document_type)
                .join(Document, Document.id == ExtractedField.document_id)
                .where(Document.entry_id == entry_id)
            )
        ).all()

        snapshot = EntryFieldSnapshot(entry_id=entry_id)
        for row, doc_type in rows:
            doc_type = DocumentType(doc_type)
            if row.field_name not in whitelist_for(doc_type):
                continue
            record = FieldRecord.from_row(row)
            per_type = snapshot.by_type.setdefault(doc_type, {})
            current = per_type.get(record.field_name)
            if current is None or _wins(record, current):
                per_type[record.field_name] = record

        # Document types present without any fields still count as present
        doc_types = (
            await db.execute(select(Document.document_type).where(Document.entry_id == entry_id).distinct())
        ).scalars().all()
        for doc_type in doc_types:
            snapshot.by_type.setdefault(DocumentType(doc_type), {})

        return snapshot


def _wins(candidate: FieldRecord, current: FieldRecord) -> bool:
    # updated_at may be None for rows not yet refreshed; treat as oldest
    def key(r: FieldRecord) -> tuple:
        return precedence_key(r.source, r.confidence, (r.updated_at is not None, r.updated_at or 0))

    return key(candidate) > key(current)
