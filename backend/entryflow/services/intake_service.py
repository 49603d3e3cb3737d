"""Entry intake: create an entry and store its per-type uploads."""

import logging
import os
import time
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.audit_generator.service import AuditService
from entryflow.config import Settings
from entryflow.entry_workflow.policy import ensure_broker_can_edit
from entryflow.exceptions import UploadRejected
from entryflow.models.document import Document, DocumentType, OcrStatus
from entryflow.models.entry import Entry, EntryStatus
from entryflow.services.storage import LocalFileStorage, get_file_extension, get_mime_type

logger = logging.getLogger("entryflow.intake")

# Upload form keys → document types
FORM_KEYS: dict[str, DocumentType] = {
    "gd": DocumentType.GD,
    "invoice": DocumentType.INVOICE,
    "packing": DocumentType.PACKING_LIST,
    "awb": DocumentType.AWB,
}
TYPE_KEYS = {doc_type: key for key, doc_type in FORM_KEYS.items()}


@dataclass
class Upload:
    document_type: DocumentType
    filename: str
    content: bytes
    content_type: str | None = None


class IntakeService:
    def __init__(self, settings: Settings, storage: LocalFileStorage):
        self.storage = storage
        self.allowed_file_types = settings.allowed_file_types
        self.max_bytes = settings.max_upload_size_mb * 1024 * 1024
        self.edit_policy = settings.broker_edit_policy
        self._last_ms = 0

    def check_upload(self, upload: Upload) -> None:
        """Raises UploadRejected for a bad extension, an empty file or an oversized file."""
        ext = get_file_extension(upload.filename)
        if ext not in self.allowed_file_types:
            raise UploadRejected(
                f"File type '{ext}' not allowed. Allowed: {', '.join(sorted(self.allowed_file_types))}",
                {"filename": upload.filename},
            )
        if not upload.content:
            raise UploadRejected(f"File '{upload.filename}' is empty", {"filename": upload.filename})
        if len(upload.content) > self.max_bytes:
            raise UploadRejected(
                f"File too large. Maximum size: {self.max_bytes // (1024 * 1024)}MB",
                {"filename": upload.filename, "size": len(upload.content)},
            )

    def _storage_path(self, entry_id: uuid.UUID, upload: Upload) -> str:
        # Strictly increasing so two files of one type never share a path
        ms = max(int(time.time() * 1000), self._last_ms + 1)
        self._last_ms = ms
        filename = os.path.basename(upload.filename.replace("\\", "/")) or "upload"
        return f"{entry_id}/{TYPE_KEYS[upload.document_type]}_{ms}_{filename}"

    async def _store(self, db: AsyncSession, entry: Entry, uploads: list[Upload]) -> list[Document]:
        documents = []
        for upload in uploads:
            path = self._storage_path(entry.id, upload)
            mime_type = upload.content_type or get_mime_type(upload.filename)
            await self.storage.put(path, upload.content, mime_type)

            document = Document(
                id=uuid.uuid4(),
                entry_id=entry.id,
                document_type=upload.document_type,
                content_ref=path,
                mime_type=mime_type,
                original_filename=upload.filename,
                file_size=len(upload.content),
                ocr_status=OcrStatus.PENDING,
            )
            db.add(document)
            documents.append(document)

        await db.flush()
        return documents

    async def create_entry(
        self,
        db: AsyncSession,
        uploads: list[Upload],
        *,
        created_by: str | None = None,
        actor_role: str = "BROKER",
    ) -> tuple[Entry, list[Document]]:
        """Create a PENDING entry holding the given documents (several per type allowed)."""
        for upload in uploads:
            self.check_upload(upload)

        entry = Entry(id=uuid.uuid4(), status=EntryStatus.PENDING, created_by=created_by)
        db.add(entry)
        await db.flush()

        documents = await self._store(db, entry, uploads)

        await AuditService.record(
            db,
            action="ENTRY_SUBMITTED",
            actor=created_by,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry.id,
            event_data={"documents": [f"{d.document_type.value}:{d.original_filename}" for d in documents]},
        )
        logger.info("Entry %s submitted with %d document(s)", entry.id, len(documents))
        return entry, documents

    async def add_documents(
        self,
        db: AsyncSession,
        entry: Entry,
        uploads: list[Upload],
        *,
        actor: str | None = None,
        actor_role: str = "BROKER",
    ) -> list[Document]:
        """Append documents to an existing entry, subject to the broker edit policy."""
        await ensure_broker_can_edit(db, entry.id, entry.status, self.edit_policy)
        for upload in uploads:
            self.check_upload(upload)

        documents = await self._store(db, entry, uploads)

        await AuditService.record(
            db,
            action="DOCUMENTS_ADDED",
            actor=actor,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry.id,
            event_data={"documents": [f"{d.document_type.value}:{d.original_filename}" for d in documents]},
        )
        return documents
