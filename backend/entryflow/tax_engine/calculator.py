"""Duty / VAT computation — pure functions, no DB dependency, easy to unit test.

Per declaration line (amounts in the quote currency, 2 dp, ROUND_HALF_UP):
    dutiable_value = declared_value × exchange_rate
    duty_amount    = dutiable_value × duty_rate(hs_code)
    vat_amount     = (dutiable_value + duty_amount) × vat_rate
    total_tax      = duty_amount + vat_amount
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from entryflow.document_extractor.normalizers import clean_numeric
from entryflow.models.document import DocumentType
from entryflow.reconciliation_engine.snapshot import EntryFieldSnapshot

CENT = Decimal("0.01")
VAT_RATE = Decimal("0.12")
DEFAULT_HS_CODE = "0000000000"
DEFAULT_DESCRIPTION = "Imported goods"

# Evaluated in order; the first matching prefix wins
DUTY_RATE_PREFIXES: list[tuple[tuple[str, ...], Decimal]] = [
    (("8471", "8473"), Decimal("0.00")),
    (("87",), Decimal("0.05")),
]
GENERAL_DUTY_RATE = Decimal("0.03")
NO_DUTY = Decimal("0.00")


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_hs_code(hs_code: str | None) -> str:
    """Digits only: "8471.30.00" → "84713000"."""
    return re.sub(r"\D", "", hs_code or "")


def select_duty_rate(hs_code: str | None) -> Decimal:
    """Duty rate by HS-code prefix: 8471/8473 → 0%, 87 → 5%, any other 4+ digit code → 3%, else 0%."""
    code = normalize_hs_code(hs_code)
    for prefixes, rate in DUTY_RATE_PREFIXES:
        if code.startswith(prefixes):
            return rate
    if len(code) >= 4:
        return GENERAL_DUTY_RATE
    return NO_DUTY


def parse_amount(text: str | None) -> Decimal:
    """Parse an extracted amount; anything unparseable or non-finite is zero.

    >>> parse_amount("USD 12,500.00")
    Decimal('12500.00')
    >>> parse_amount("n/a")
    Decimal('0')
    """
    if not text:
        return Decimal("0")
    try:
        value = Decimal(clean_numeric(str(text)))
    except InvalidOperation:
        return Decimal("0")
    if not value.is_finite():
        return Decimal("0")
    return value


@dataclass(frozen=True)
class TaxLine:
    line_no: int
    description: str
    hs_code: str
    currency: str
    declared_value: Decimal
    exchange_rate: Decimal
    declared_value_local: Decimal
    duty_rate: Decimal
    duty_amount: Decimal
    vat_base: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_tax: Decimal


def compute_line(
    declared_value: Decimal,
    exchange_rate: Decimal,
    hs_code: str | None,
    vat_rate: Decimal = VAT_RATE,
    *,
    line_no: int = 1,
    description: str | None = None,
    currency: str = "USD",
) -> TaxLine:
    """Compute one declaration line. Deterministic for identical inputs."""
    declared_value = Decimal(declared_value)
    exchange_rate = Decimal(exchange_rate)
    duty_rate = select_duty_rate(hs_code)

    dutiable_value = money(declared_value * exchange_rate)
    duty_amount = money(dutiable_value * duty_rate)
    vat_base = dutiable_value + duty_amount
    vat_amount = money(vat_base * vat_rate)

    return TaxLine(
        line_no=line_no,
        description=description or DEFAULT_DESCRIPTION,
        hs_code=hs_code or DEFAULT_HS_CODE,
        currency=currency,
        declared_value=declared_value,
        exchange_rate=exchange_rate,
        declared_value_local=dutiable_value,
        duty_rate=duty_rate,
        duty_amount=duty_amount,
        vat_base=vat_base,
        vat_rate=vat_rate,
        vat_amount=vat_amount,
        total_tax=duty_amount + vat_amount,
    )


def declared_value_from(snapshot: EntryFieldSnapshot) -> tuple[Decimal, str | None]:
    """Declared value for duty: GD declared_value, else INVOICE total_value when absent or zero.

    Returns (value, field the value came from).
    """
    gd_value = parse_amount(snapshot.value(DocumentType.GD, "declared_value"))
    if gd_value > 0:
        return gd_value, "declared_value"
    invoice_total = parse_amount(snapshot.value(DocumentType.INVOICE, "total_value"))
    if invoice_total > 0:
        return invoice_total, "total_value"
    return Decimal("0"), None
