"""
Concurrent extraction across an entry's documents.

Flow:
  1. Dispatch one extraction per document, bounded by a semaphore
  2. A set cancel event stops new dispatches; in-flight documents finish
  3. Join every dispatched extraction (no partial-entry reconciliation)
  4. Reconcile each document inside its own SAVEPOINT, so one document's
     persistence failure leaves the others committed
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from entryflow.audit_generator.service import AuditService
from entryflow.document_extractor.pipeline import ChainResult, ExtractionChain
from entryflow.entry_workflow.policy import ensure_broker_can_edit
from entryflow.exceptions import EntryNotFound, ExtractionUnavailable
from entryflow.models.document import Document, OcrStatus
from entryflow.models.entry import Entry
from entryflow.reconciliation_engine.service import FieldStore
from entryflow.services.storage import LocalFileStorage

logger = logging.getLogger("entryflow.batch")


class DocumentOutcome(str, enum.Enum):
    RECONCILED = "reconciled"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DocumentReport:
    document_id: uuid.UUID
    outcome: DocumentOutcome
    strategy_used: str | None = None
    fields_written: int = 0
    kept_manual: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class BatchReport:
    entry_id: uuid.UUID
    documents: list[DocumentReport] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return any(d.outcome is DocumentOutcome.CANCELLED for d in self.documents)

    def count(self, outcome: DocumentOutcome) -> int:
        return sum(1 for d in self.documents if d.outcome is outcome)


class ExtractionBatchRunner:
    """Runs the extraction chain over many documents with bounded concurrency."""

    def __init__(
        self,
        chain: ExtractionChain,
        storage: LocalFileStorage,
        field_store: FieldStore,
        max_concurrency: int = 3,
        storage_timeout: float | None = None,
    ):
        self.chain = chain
        self.storage = storage
        self.field_store = field_store
        self.max_concurrency = max(1, max_concurrency)
        self.storage_timeout = storage_timeout

    async def _extract_one(
        self,
        document: Document,
        semaphore: asyncio.Semaphore,
        cancel_event: asyncio.Event,
    ) -> ChainResult | DocumentReport:
        async with semaphore:
            # Checked after acquiring: queued documents are never started once cancelled
            if cancel_event.is_set():
                return DocumentReport(document.id, DocumentOutcome.CANCELLED)

            try:
                content = await asyncio.wait_for(self.storage.get(document.content_ref), self.storage_timeout)
            except (OSError, ValueError, asyncio.TimeoutError) as e:
                logger.warning("Storage read failed for document %s: %r", document.id, e)
                return DocumentReport(
                    document.id, DocumentOutcome.UNAVAILABLE, error=f"Could not process document: {e!r}"
                )

            try:
                return await self.chain.extract(content, document.document_type, document.mime_type)
            except ExtractionUnavailable as e:
                return DocumentReport(document.id, DocumentOutcome.UNAVAILABLE, error=e.message)

    async def run(
        self,
        db: AsyncSession,
        documents: list[Document],
        *,
        entry_id: uuid.UUID,
        cancel_event: asyncio.Event | None = None,
        overwrite_manual: bool = False,
    ) -> BatchReport:
        """Extract and reconcile every document; partial completion is not an error."""
        cancel_event = cancel_event or asyncio.Event()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        report = BatchReport(entry_id=entry_id)

        for document in documents:
            document.ocr_status = OcrStatus.PROCESSING
        await db.flush()

        results = await asyncio.gather(
            *(self._extract_one(doc, semaphore, cancel_event) for doc in documents),
            return_exceptions=True,
        )

        for document, result in zip(documents, results):
            report.documents.append(
                await self._reconcile_one(db, document, result, overwrite_manual)
            )

        logger.info(
            "Batch for entry %s: %d reconciled, %d unavailable, %d failed, %d cancelled",
            entry_id,
            report.count(DocumentOutcome.RECONCILED),
            report.count(DocumentOutcome.UNAVAILABLE),
            report.count(DocumentOutcome.FAILED),
            report.count(DocumentOutcome.CANCELLED),
        )
        return report

    async def _reconcile_one(
        self,
        db: AsyncSession,
        document: Document,
        result: ChainResult | DocumentReport | BaseException,
        overwrite_manual: bool,
    ) -> DocumentReport:
        # Read before any savepoint rollback can expire the instance
        document_id = document.id

        if isinstance(result, BaseException):
            logger.error("Extraction crashed for document %s: %r", document_id, result)
            document.ocr_status = OcrStatus.FAILED
            return DocumentReport(document_id, DocumentOutcome.FAILED, error=repr(result))

        if isinstance(result, DocumentReport):
            document.ocr_status = (
                OcrStatus.PENDING if result.outcome is DocumentOutcome.CANCELLED else OcrStatus.FAILED
            )
            return result

        try:
            async with db.begin_nested():
                summary = await self.field_store.reconcile_extraction(
                    db, document, result, refresh=True, overwrite_manual=overwrite_manual
                )
                document.ocr_status = OcrStatus.EXTRACTED
                document.extraction_strategy = result.strategy_used
        except Exception as e:
            logger.error("Reconciliation failed for document %s: %r", document_id, e)
            document.ocr_status = OcrStatus.FAILED
            return DocumentReport(
                document_id, DocumentOutcome.FAILED, strategy_used=result.strategy_used, error=repr(e)
            )

        return DocumentReport(
            document_id,
            DocumentOutcome.RECONCILED,
            strategy_used=result.strategy_used,
            fields_written=summary.written,
            kept_manual=summary.kept_manual,
        )

    async def run_for_entry(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        *,
        edit_policy: str,
        cancel_event: asyncio.Event | None = None,
        overwrite_manual: bool = False,
        actor: str | None = None,
        actor_role: str = "BROKER",
    ) -> BatchReport:
        """Extract every document of an entry, subject to the broker edit policy."""
        entry = (
            await db.execute(select(Entry).options(selectinload(Entry.documents)).where(Entry.id == entry_id))
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found", {"entry_id": str(entry_id)})
        await ensure_broker_can_edit(db, entry_id, entry.status, edit_policy)

        report = await self.run(
            db,
            list(entry.documents),
            entry_id=entry_id,
            cancel_event=cancel_event,
            overwrite_manual=overwrite_manual,
        )
        await AuditService.record(
            db,
            action="EXTRACTION_RUN",
            actor=actor,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry_id,
            event_data={str(d.document_id): d.outcome.value for d in report.documents},
        )
        return report

    async def run_for_document(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        *,
        edit_policy: str,
        overwrite_manual: bool = False,
        actor: str | None = None,
        actor_role: str = "BROKER",
    ) -> DocumentReport:
        """Re-extract one document.

        Raises:
            DocumentNotFound, EditLocked
            ExtractionUnavailable: the document could not be read at all; nothing was written.
        """
        document = await self.field_store.get_document(db, document_id)
        await ensure_broker_can_edit(db, document.entry_id, document.entry.status, edit_policy)

        report = await self.run(db, [document], entry_id=document.entry_id, overwrite_manual=overwrite_manual)
        result = report.documents[0]
        if result.outcome is DocumentOutcome.UNAVAILABLE:
            raise ExtractionUnavailable(
                result.error or "Could not process document", {"document_id": str(document_id)}
            )

        await AuditService.record(
            db,
            action="EXTRACTION_RUN",
            actor=actor,
            actor_role=actor_role,
            reference_type="document",
            reference_id=document_id,
            event_data={"outcome": result.outcome.value, "strategy_used": result.strategy_used},
        )
        return result


class CancellationRegistry:
    """Cancel events for running entry batches, keyed by entry id.

    Several batches may run for the same entry; cancelling the entry stops all of them.
    """

    def __init__(self):
        self._events: dict[uuid.UUID, set[asyncio.Event]] = {}

    def open(self, entry_id: uuid.UUID) -> asyncio.Event:
        event = asyncio.Event()
        self._events.setdefault(entry_id, set()).add(event)
        return event

    def cancel(self, entry_id: uuid.UUID) -> bool:
        """Stop dispatching for every running batch of the entry. False if none is running."""
        events = self._events.get(entry_id)
        if not events:
            return False
        for event in events:
            event.set()
        return True

    def close(self, entry_id: uuid.UUID, event: asyncio.Event) -> None:
        events = self._events.get(entry_id)
        if events is None:
            return
        events.discard(event)
        if not events:
            del self._events[entry_id]


batch_cancellations = CancellationRegistry()
