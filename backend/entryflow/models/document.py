import enum
import uuid

from sqlalchemy import BigInteger, Enum as SAEnum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entryflow.models.base import Base, TimestampMixin


class DocumentType(str, enum.Enum):
    GD = "GD"
    INVOICE = "INVOICE"
    PACKING_LIST = "PACKING_LIST"
    AWB = "AWB"


class OcrStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    FAILED = "failed"


class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type: Mapped[DocumentType] = mapped_column(
        SAEnum(
            DocumentType,
            name="document_type",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    content_ref: Mapped[str] = mapped_column(String(1024), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    original_filename: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ocr_status: Mapped[OcrStatus] = mapped_column(
        SAEnum(
            OcrStatus,
            name="ocr_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=OcrStatus.PENDING,
        nullable=False,
    )
    extraction_strategy: Mapped[str | None] = mapped_column(String(50), nullable=True)

    entry: Mapped["Entry"] = relationship(back_populates="documents")  # noqa: F821
