"""Default customs rule set.

Grouped by category (REQUIRED, CLASSIFICATION, VALUATION, LOGISTICS).
Callers may pass their own list to the evaluator instead.
"""

from decimal import Decimal

from entryflow.models.document import DocumentType
from entryflow.models.validation import RuleType, Severity
from entryflow.reconciliation_engine.snapshot import EntryFieldSnapshot
from entryflow.tax_engine.calculator import declared_value_from, normalize_hs_code, parse_amount
from entryflow.validation.rules import RuleCheck, RuleDefinition

GD = DocumentType.GD
INVOICE = DocumentType.INVOICE
PACKING_LIST = DocumentType.PACKING_LIST
AWB = DocumentType.AWB

WEIGHT_TOLERANCE = Decimal("0.02")
VALUE_TOLERANCE = Decimal("0.01")


# ── REQUIRED ──


def _required(doc_type: DocumentType, field_name: str):
    def check(snapshot: EntryFieldSnapshot) -> RuleCheck:
        if not snapshot.has_document(doc_type):
            return RuleCheck(False, f"No {doc_type.value} document uploaded", field_name)
        record = snapshot.get(doc_type, field_name)
        if record is None or not record.value.strip():
            return RuleCheck(False, f"{field_name} is missing", field_name)
        if record.is_placeholder:
            return RuleCheck(False, f"{field_name} is a placeholder; enter the actual value", field_name)
        return RuleCheck(True, field_name=field_name)

    return check


def _declared_value_present(snapshot: EntryFieldSnapshot) -> RuleCheck:
    if snapshot.genuine_value(GD, "declared_value") or snapshot.genuine_value(INVOICE, "total_value"):
        return RuleCheck(True, field_name="declared_value")
    return RuleCheck(
        False,
        "Neither GD declared_value nor INVOICE total_value was extracted or entered",
        "declared_value",
    )


# ── CLASSIFICATION ──


def _hs_code_format(snapshot: EntryFieldSnapshot) -> RuleCheck:
    code = normalize_hs_code(snapshot.value(GD, "hs_code"))
    if not code:
        return RuleCheck(False, "HS code is missing", "hs_code")
    if not 6 <= len(code) <= 10:
        return RuleCheck(False, f"HS code {code} must have 6 to 10 digits", "hs_code")
    if set(code) == {"0"}:
        return RuleCheck(False, "HS code is all zeros", "hs_code")
    return RuleCheck(True, field_name="hs_code")


def _hs_code_chapter(snapshot: EntryFieldSnapshot) -> RuleCheck:
    code = normalize_hs_code(snapshot.value(GD, "hs_code"))
    if len(code) < 2:
        return RuleCheck(False, "HS chapter cannot be determined", "hs_code")
    if not 1 <= int(code[:2]) <= 97:
        return RuleCheck(False, f"HS chapter {code[:2]} is outside 01-97", "hs_code")
    return RuleCheck(True, field_name="hs_code")


# ── VALUATION ──


def _dutiable_base_positive(snapshot: EntryFieldSnapshot) -> RuleCheck:
    value, _ = declared_value_from(snapshot)
    if value <= 0:
        return RuleCheck(False, "Declared value is zero; duty cannot be computed", "declared_value")
    return RuleCheck(True, field_name="declared_value")


def _declared_matches_invoice(snapshot: EntryFieldSnapshot) -> RuleCheck:
    declared = parse_amount(snapshot.genuine_value(GD, "declared_value"))
    invoice_total = parse_amount(snapshot.genuine_value(INVOICE, "total_value"))
    if declared <= 0 or invoice_total <= 0:
        return RuleCheck(True, "Comparison skipped: one side is missing", "declared_value")
    if abs(declared - invoice_total) > invoice_total * VALUE_TOLERANCE:
        return RuleCheck(
            False,
            f"GD declared value {declared} differs from invoice total {invoice_total}",
            "declared_value",
        )
    return RuleCheck(True, field_name="declared_value")


def _unit_price_within_total(snapshot: EntryFieldSnapshot) -> RuleCheck:
    unit_price = parse_amount(snapshot.genuine_value(INVOICE, "unit_price"))
    total = parse_amount(snapshot.genuine_value(INVOICE, "total_value"))
    if unit_price <= 0 or total <= 0:
        return RuleCheck(True, "Comparison skipped: one side is missing", "unit_price")
    if unit_price > total:
        return RuleCheck(False, f"Unit price {unit_price} exceeds invoice total {total}", "unit_price")
    return RuleCheck(True, field_name="unit_price")


# ── LOGISTICS ──


def _gross_weight_consistent(snapshot: EntryFieldSnapshot) -> RuleCheck:
    weights = {}
    for doc_type in (GD, PACKING_LIST, AWB):
        weight = parse_amount(snapshot.genuine_value(doc_type, "gross_weight"))
        if weight > 0:
            weights[doc_type.value] = weight
    if len(weights) < 2:
        return RuleCheck(True, "Fewer than two gross weights to compare", "gross_weight")

    low, high = min(weights.values()), max(weights.values())
    if high - low > high * WEIGHT_TOLERANCE:
        listed = ", ".join(f"{k}={v}" for k, v in weights.items())
        return RuleCheck(False, f"Gross weights disagree: {listed}", "gross_weight")
    return RuleCheck(True, field_name="gross_weight")


def _net_within_gross(snapshot: EntryFieldSnapshot) -> RuleCheck:
    net = parse_amount(snapshot.genuine_value(PACKING_LIST, "net_weight"))
    gross = parse_amount(snapshot.genuine_value(PACKING_LIST, "gross_weight"))
    if net <= 0 or gross <= 0:
        return RuleCheck(True, "Comparison skipped: one side is missing", "net_weight")
    if net > gross:
        return RuleCheck(False, f"Net weight {net} exceeds gross weight {gross}", "net_weight")
    return RuleCheck(True, field_name="net_weight")


def _has_packages(snapshot: EntryFieldSnapshot) -> RuleCheck:
    if not snapshot.has_document(PACKING_LIST):
        return RuleCheck(True, "No packing list uploaded", "number_of_packages")
    packages = parse_amount(snapshot.value(PACKING_LIST, "number_of_packages"))
    if packages < 1:
        return RuleCheck(False, "Packing list declares no packages", "number_of_packages")
    return RuleCheck(True, field_name="number_of_packages")


DEFAULT_RULES: list[RuleDefinition] = [
    RuleDefinition(
        "REQ_GD_HS_CODE", RuleType.REQUIRED,
        "GD must carry the HS code of the goods", Severity.CRITICAL,
        _required(GD, "hs_code"),
    ),
    RuleDefinition(
        "REQ_DECLARED_VALUE", RuleType.REQUIRED,
        "A declared value (GD) or invoice total must be present", Severity.CRITICAL,
        _declared_value_present,
    ),
    RuleDefinition(
        "REQ_GD_CONSIGNEE", RuleType.REQUIRED,
        "GD must name the consignee", Severity.CRITICAL,
        _required(GD, "consignee"),
    ),
    RuleDefinition(
        "REQ_INVOICE_NUMBER", RuleType.REQUIRED,
        "Commercial invoice must carry an invoice number", Severity.CRITICAL,
        _required(INVOICE, "invoice_number"),
    ),
    RuleDefinition(
        "REQ_GD_ORIGIN", RuleType.REQUIRED,
        "GD should state the country of origin", Severity.WARNING,
        _required(GD, "country_of_origin"),
    ),
    RuleDefinition(
        "REQ_AWB_NUMBER", RuleType.REQUIRED,
        "Air waybill should carry the AWB number", Severity.WARNING,
        _required(AWB, "awb_number"),
    ),
    RuleDefinition(
        "CLS_HS_FORMAT", RuleType.CLASSIFICATION,
        "HS code has 6 to 10 digits and is not all zeros", Severity.CRITICAL,
        _hs_code_format,
    ),
    RuleDefinition(
        "CLS_HS_CHAPTER", RuleType.CLASSIFICATION,
        "HS chapter is within 01-97", Severity.INFO,
        _hs_code_chapter,
    ),
    RuleDefinition(
        "VAL_DUTIABLE_BASE", RuleType.VALUATION,
        "Declared value is greater than zero", Severity.CRITICAL,
        _dutiable_base_positive,
    ),
    RuleDefinition(
        "VAL_MATCHES_INVOICE", RuleType.VALUATION,
        "GD declared value is within 1% of the invoice total", Severity.WARNING,
        _declared_matches_invoice,
    ),
    RuleDefinition(
        "VAL_UNIT_PRICE", RuleType.VALUATION,
        "Invoice unit price does not exceed the invoice total", Severity.INFO,
        _unit_price_within_total,
    ),
    RuleDefinition(
        "LOG_GROSS_WEIGHT", RuleType.LOGISTICS,
        "Gross weight agrees (±2%) across GD, packing list and AWB", Severity.WARNING,
        _gross_weight_consistent,
    ),
    RuleDefinition(
        "LOG_NET_WEIGHT", RuleType.LOGISTICS,
        "Net weight does not exceed gross weight", Severity.WARNING,
        _net_within_gross,
    ),
    RuleDefinition(
        "LOG_PACKAGES", RuleType.LOGISTICS,
        "At least one package is declared", Severity.INFO,
        _has_packages,
    ),
]
