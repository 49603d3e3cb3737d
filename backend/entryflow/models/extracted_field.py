"""ORM model for extracted fields — one authoritative row per (document, field)."""

import enum
import uuid

from sqlalchemy import Enum as SAEnum, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from entryflow.models.base import Base, TimestampMixin


class FieldSource(str, enum.Enum):
    VISION = "vision"
    TEXT_LAYER = "text_layer"
    SYNTHETIC = "synthetic"
    MANUAL = "manual"

    @property
    def is_automated(self) -> bool:
        return self is not FieldSource.MANUAL


class ExtractedField(Base, TimestampMixin):
    __tablename__ = "extracted_fields"
    __table_args__ = (
        UniqueConstraint("document_id", "field_name", name="uq_extracted_fields_document_field"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    raw_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    normalized_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    source: Mapped[FieldSource] = mapped_column(
        SAEnum(
            FieldSource,
            name="field_source",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    # Compare-and-swap counter for concurrent upserts
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
