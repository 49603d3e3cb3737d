"""ORM model for entries — one customs formal-entry submission (a document set)."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entryflow.models.base import Base, TimestampMixin


class EntryStatus(str, enum.Enum):
    PENDING = "PENDING"
    FOR_REVIEW = "FOR_REVIEW"
    VALIDATED = "VALIDATED"
    ERROR = "ERROR"


class Entry(Base, TimestampMixin):
    __tablename__ = "entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    status: Mapped[EntryStatus] = mapped_column(
        SAEnum(
            EntryStatus,
            name="entry_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=EntryStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    validated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Bumped by every status transition and every validation run
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    documents: Mapped[list["Document"]] = relationship(  # noqa: F821
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="Document.created_at",
    )
