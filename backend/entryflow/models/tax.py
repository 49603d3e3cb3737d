"""ORM model for the confirmed tax computation. Written once, never updated."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from entryflow.models.base import Base

MONEY = Numeric(20, 2)
RATE = Numeric(12, 6)


class TaxComputation(Base):
    __tablename__ = "tax_computations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("entries.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hs_code: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    declared_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    rate_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    declared_value_local: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    duty_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    duty_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    computed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
