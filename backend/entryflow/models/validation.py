"""ORM model for validation results. Each run replaces the entry's previous set."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from entryflow.models.base import Base


class RuleType(str, enum.Enum):
    REQUIRED = "REQUIRED"
    CLASSIFICATION = "CLASSIFICATION"
    VALUATION = "VALUATION"
    LOGISTICS = "LOGISTICS"


class ValidationStatus(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"


class Severity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ValidationResult(Base):
    __tablename__ = "validation_results"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_type: Mapped[RuleType] = mapped_column(
        SAEnum(RuleType, name="rule_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status: Mapped[ValidationStatus] = mapped_column(
        SAEnum(ValidationStatus, name="validation_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    severity: Mapped[Severity | None] = mapped_column(
        SAEnum(Severity, name="validation_severity", values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    field_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expected_behavior: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
