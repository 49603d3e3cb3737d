"""Tests for entry intake: upload checks, storage paths and audit."""

import pytest
from sqlalchemy import select

from entryflow.config import Settings
from entryflow.exceptions import EditLocked, UploadRejected
from entryflow.models.audit import AuditEvent
from entryflow.models.document import DocumentType, OcrStatus
from entryflow.models.entry import EntryStatus
from entryflow.services.intake_service import IntakeService, Upload
from entryflow.services.storage import LocalFileStorage

PDF = b"%PDF-1.4 test"


def make_intake(tmp_path, **overrides) -> IntakeService:
    settings = Settings(database_url="sqlite+aiosqlite:///test.db", upload_dir=str(tmp_path / "uploads"), **overrides)
    return IntakeService(settings, LocalFileStorage(settings))


class TestCheckUpload:
    def test_disallowed_extension(self, tmp_path):
        with pytest.raises(UploadRejected, match="not allowed"):
            make_intake(tmp_path).check_upload(Upload(DocumentType.GD, "gd.exe", b"MZ"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(UploadRejected, match="empty"):
            make_intake(tmp_path).check_upload(Upload(DocumentType.GD, "gd.pdf", b""))

    def test_too_large(self, tmp_path):
        intake = make_intake(tmp_path, max_upload_size_mb=1)
        with pytest.raises(UploadRejected, match="too large"):
            intake.check_upload(Upload(DocumentType.GD, "gd.pdf", b"x" * (1024 * 1024 + 1)))

    def test_accepts_image(self, tmp_path):
        make_intake(tmp_path).check_upload(Upload(DocumentType.AWB, "awb.JPG", b"\xff\xd8\xff"))


class TestCreateEntry:
    @pytest.mark.asyncio
    async def test_creates_pending_entry_with_documents(self, db_session, tmp_path):
        intake = make_intake(tmp_path)
        uploads = [
            Upload(DocumentType.GD, "gd.pdf", PDF),
            Upload(DocumentType.INVOICE, "invoice-1.pdf", PDF),
            Upload(DocumentType.INVOICE, "invoice-2.pdf", PDF),
        ]

        entry, documents = await intake.create_entry(db_session, uploads, created_by="broker-1")

        assert entry.status is EntryStatus.PENDING
        assert len(documents) == 3
        assert all(d.ocr_status is OcrStatus.PENDING for d in documents)
        assert len({d.content_ref for d in documents}) == 3
        for document in documents:
            assert document.content_ref.startswith(f"{entry.id}/")
            assert await intake.storage.get(document.content_ref) == PDF
        assert documents[1].mime_type == "application/pdf"

        event = (await db_session.execute(select(AuditEvent))).scalar_one()
        assert event.action == "ENTRY_SUBMITTED"
        assert event.actor == "broker-1"
        assert "INVOICE:invoice-2.pdf" in event.event_data["documents"]

    @pytest.mark.asyncio
    async def test_rejected_upload_creates_nothing(self, db_session, tmp_path):
        intake = make_intake(tmp_path)
        with pytest.raises(UploadRejected):
            await intake.create_entry(
                db_session, [Upload(DocumentType.GD, "gd.pdf", PDF), Upload(DocumentType.AWB, "awb.txt", b"x")]
            )
        assert not (tmp_path / "uploads").exists()

    @pytest.mark.asyncio
    async def test_storage_path_uses_basename(self, db_session, tmp_path):
        intake = make_intake(tmp_path)
        _, [document] = await intake.create_entry(
            db_session, [Upload(DocumentType.PACKING_LIST, "..\\..\\scans/packing.png", b"\x89PNG")]
        )
        assert document.content_ref.endswith("_packing.png")
        assert "/packing_" in document.content_ref
        assert document.mime_type == "image/png"


class TestAddDocuments:
    @pytest.mark.asyncio
    async def test_add_documents(self, db_session, tmp_path, make_entry):
        entry, _ = await make_entry(DocumentType.GD)
        documents = await make_intake(tmp_path).add_documents(
            db_session, entry, [Upload(DocumentType.AWB, "awb.pdf", PDF)], actor="broker-1"
        )

        assert documents[0].document_type is DocumentType.AWB
        event = (await db_session.execute(select(AuditEvent))).scalar_one()
        assert event.action == "DOCUMENTS_ADDED"

    @pytest.mark.asyncio
    async def test_review_lock_blocks_uploads_after_validation(self, db_session, tmp_path, make_entry):
        entry, _ = await make_entry(DocumentType.GD, status=EntryStatus.VALIDATED)
        intake = make_intake(tmp_path, broker_edit_policy="review_lock")

        with pytest.raises(EditLocked):
            await intake.add_documents(db_session, entry, [Upload(DocumentType.AWB, "awb.pdf", PDF)])
