"""TaxComputationService — preview and once-only confirmation of duty / VAT.

Preview is side-effect free. Confirm persists exactly one TaxComputation per
entry (unique on entry_id); calling it again returns the stored row.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.audit_generator.service import AuditService
from entryflow.config import Settings
from entryflow.exceptions import EntryNotFound, InvalidTransition
from entryflow.models.document import DocumentType
from entryflow.models.entry import Entry, EntryStatus
from entryflow.models.tax import TaxComputation
from entryflow.reconciliation_engine.service import FieldStore
from entryflow.services.rate_provider import FALLBACK_SOURCE, RateProvider
from entryflow.tax_engine.calculator import TaxLine, compute_line, declared_value_from

logger = logging.getLogger("entryflow.tax")

MANUAL_RATE_SOURCE = "manual"


@dataclass(frozen=True)
class ResolvedRate:
    rate: Decimal
    source: str
    is_fallback: bool = False


@dataclass
class ComputationResult:
    entry_id: uuid.UUID
    rows: list[TaxLine]
    rate_source: str
    is_fallback: bool = False
    declared_value_field: str | None = None
    persisted: bool = False
    created: bool = False
    computation_id: uuid.UUID | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, Decimal]:
        return {
            "total_duty": sum((r.duty_amount for r in self.rows), Decimal("0.00")),
            "total_vat": sum((r.vat_amount for r in self.rows), Decimal("0.00")),
            "total_tax": sum((r.total_tax for r in self.rows), Decimal("0.00")),
        }

    @classmethod
    def from_row(cls, row: TaxComputation, *, created: bool) -> "ComputationResult":
        line = TaxLine(
            line_no=row.line_no,
            description=row.description or "",
            hs_code=row.hs_code,
            currency=row.currency,
            declared_value=Decimal(row.declared_value),
            exchange_rate=Decimal(row.exchange_rate),
            declared_value_local=Decimal(row.declared_value_local),
            duty_rate=Decimal(row.duty_rate),
            duty_amount=Decimal(row.duty_amount),
            vat_base=Decimal(row.declared_value_local) + Decimal(row.duty_amount),
            vat_rate=Decimal(row.vat_rate),
            vat_amount=Decimal(row.vat_amount),
            total_tax=Decimal(row.total_tax),
        )
        return cls(
            entry_id=row.entry_id,
            rows=[line],
            rate_source=row.rate_source or "",
            is_fallback=row.rate_source == FALLBACK_SOURCE,
            persisted=True,
            created=created,
            computation_id=row.id,
        )


class TaxComputationService:
    def __init__(self, settings: Settings, field_store: FieldStore, rate_provider: RateProvider):
        self.field_store = field_store
        self.rate_provider = rate_provider
        self.vat_rate = Decimal(settings.vat_rate)
        self.default_base = settings.default_base_currency
        self.default_quote = settings.default_quote_currency

    async def resolve_rate(
        self,
        exchange_rate: Decimal | None,
        base_currency: str,
        quote_currency: str,
    ) -> ResolvedRate:
        """An officer-supplied rate is used as is; otherwise ask the rate provider."""
        if exchange_rate is not None:
            return ResolvedRate(Decimal(exchange_rate), MANUAL_RATE_SOURCE)
        quote = await self.rate_provider.get_rate(base_currency, quote_currency)
        return ResolvedRate(quote.rate, quote.source, quote.is_fallback)

    async def _get_entry(self, db: AsyncSession, entry_id: uuid.UUID) -> Entry:
        entry = (await db.execute(select(Entry).where(Entry.id == entry_id))).scalar_one_or_none()
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found", {"entry_id": str(entry_id)})
        return entry

    async def preview(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        *,
        exchange_rate: Decimal | None = None,
        base_currency: str | None = None,
        quote_currency: str | None = None,
    ) -> ComputationResult:
        """Compute duty / VAT from the entry's reconciled fields without persisting anything."""
        await self._get_entry(db, entry_id)
        base = base_currency or self.default_base
        quote = quote_currency or self.default_quote
        rate = await self.resolve_rate(exchange_rate, base, quote)

        snapshot = await self.field_store.entry_snapshot(db, entry_id)
        declared_value, value_field = declared_value_from(snapshot)
        hs_code = snapshot.value(DocumentType.GD, "hs_code")

        line = compute_line(
            declared_value,
            rate.rate,
            hs_code,
            self.vat_rate,
            description=snapshot.value(DocumentType.INVOICE, "description_of_goods"),
            currency=base,
        )

        warnings = []
        if value_field is None:
            warnings.append("No declared value or invoice total; computed on zero")
        if rate.is_fallback:
            warnings.append("Live exchange rate unavailable; fallback rate used")

        return ComputationResult(
            entry_id=entry_id,
            rows=[line],
            rate_source=rate.source,
            is_fallback=rate.is_fallback,
            declared_value_field=value_field,
            warnings=warnings,
        )

    async def get(self, db: AsyncSession, entry_id: uuid.UUID) -> TaxComputation | None:
        return (
            await db.execute(select(TaxComputation).where(TaxComputation.entry_id == entry_id))
        ).scalar_one_or_none()

    async def confirm(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        *,
        exchange_rate: Decimal | None = None,
        base_currency: str | None = None,
        quote_currency: str | None = None,
        actor: str | None = None,
        actor_role: str = "CUSTOMS_OFFICER",
    ) -> ComputationResult:
        """Persist the computation once. Idempotent: a second call returns the stored row.

        Raises:
            EntryNotFound: no such entry.
            InvalidTransition: the entry is not VALIDATED.
        """
        entry = await self._get_entry(db, entry_id)

        existing = await self.get(db, entry_id)
        if existing is not None:
            return ComputationResult.from_row(existing, created=False)

        if EntryStatus(entry.status) is not EntryStatus.VALIDATED:
            raise InvalidTransition(
                f"Tax can only be confirmed for a VALIDATED entry (entry is {EntryStatus(entry.status).value})",
                precondition="entry_validated",
                details={"entry_id": str(entry_id), "status": EntryStatus(entry.status).value},
            )

        result = await self.preview(
            db,
            entry_id,
            exchange_rate=exchange_rate,
            base_currency=base_currency,
            quote_currency=quote_currency,
        )
        line = result.rows[0]

        row = TaxComputation(
            id=uuid.uuid4(),
            entry_id=entry_id,
            line_no=line.line_no,
            description=line.description,
            hs_code=line.hs_code,
            currency=line.currency,
            declared_value=line.declared_value,
            exchange_rate=line.exchange_rate,
            rate_source=result.rate_source,
            declared_value_local=line.declared_value_local,
            duty_rate=line.duty_rate,
            duty_amount=line.duty_amount,
            vat_rate=line.vat_rate,
            vat_amount=line.vat_amount,
            total_tax=line.total_tax,
            computed_by=actor,
        )
        try:
            async with db.begin_nested():
                db.add(row)
        except IntegrityError:
            # Another confirm won the race; its row is the computation
            winner = await self.get(db, entry_id)
            if winner is None:
                raise
            logger.info("Concurrent tax confirm for entry %s; returning existing computation", entry_id)
            return ComputationResult.from_row(winner, created=False)

        await AuditService.record(
            db,
            action="TAX_COMPUTED",
            actor=actor,
            actor_role=actor_role,
            reference_type="entry",
            reference_id=entry_id,
            event_data={
                "hs_code": line.hs_code,
                "exchange_rate": str(line.exchange_rate),
                "rate_source": result.rate_source,
                "total_tax": str(line.total_tax),
            },
        )
        logger.info("Tax confirmed for entry %s: total %s (%s)", entry_id, line.total_tax, result.rate_source)

        result.persisted = True
        result.created = True
        result.computation_id = row.id
        return result
