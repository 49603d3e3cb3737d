"""
Regular-expression tables for text-layer extraction.

Each field has an ordered list of patterns; the first one that matches wins.
Currency-prefixed fields capture an optional currency code in group 1 and the
amount in group 2.
"""

import re
from dataclasses import dataclass

from entryflow.models.document import DocumentType

_NAME = r"([A-Z][A-Za-z &.,'-]{3,60})"
_AMOUNT = r"(USD|PHP|EUR)?\s*([\d,]+\.?\d*)"
_WEIGHT = r"([\d,]+\.?\d*)\s*(?:kg|kgs|kilos)?"
_FLAGS = re.IGNORECASE


@dataclass(frozen=True)
class FieldPatterns:
    patterns: tuple[re.Pattern, ...]
    currency_prefixed: bool = False


def _p(*patterns: str, currency_prefixed: bool = False, flags: int = _FLAGS) -> FieldPatterns:
    return FieldPatterns(
        patterns=tuple(re.compile(p, flags) for p in patterns),
        currency_prefixed=currency_prefixed,
    )


FIELD_PATTERNS: dict[DocumentType, dict[str, FieldPatterns]] = {
    DocumentType.GD: {
        "declarant_name": _p(
            rf"declarant[:\s]+{_NAME}",
            rf"exporter[:\s]+{_NAME}",
            rf"broker[:\s]+{_NAME}",
        ),
        "consignee": _p(
            rf"consignee[:\s]+{_NAME}",
            rf"importer[:\s]+{_NAME}",
            rf"buyer[:\s]+{_NAME}",
        ),
        "hs_code": _p(
            r"hs[\s-]*code[:\s]*(\d{4,10})",
            r"tariff[\s-]*code[:\s]*(\d{4,10})",
            r"classification[:\s]*(\d{4,10})",
            r"\b(\d{8,10})\b(?!\d)",
        ),
        "declared_value": _p(
            rf"declared[\s-]*value[:\s]*{_AMOUNT}",
            rf"customs[\s-]*value[:\s]*{_AMOUNT}",
            rf"fob[\s-]*value[:\s]*{_AMOUNT}",
            rf"total[\s-]*value[:\s]*{_AMOUNT}",
            currency_prefixed=True,
        ),
        "gross_weight": _p(
            rf"gross[\s-]*weight[:\s]*{_WEIGHT}",
            rf"total[\s-]*weight[:\s]*{_WEIGHT}",
        ),
        "country_of_origin": _p(
            r"country[\s-]*of[\s-]*origin[:\s]+([A-Z]{2,3}|[A-Z][a-z]{2,20})",
            r"origin[:\s]+([A-Z]{2,3}|[A-Z][a-z]{2,20})",
            r"made[\s-]*in[:\s]+([A-Z]{2,3}|[A-Z][a-z]{2,20})",
        ),
    },
    DocumentType.INVOICE: {
        "invoice_number": _p(
            r"invoice[\s-]*(?:no|number|#)\.?[:\s]*([A-Z0-9-]{3,30})",
            r"\b(INV[A-Z0-9-]{3,20})\b",
            r"commercial[\s-]*invoice[:\s]*([A-Z0-9-]{3,30})",
        ),
        "invoice_date": _p(
            r"invoice[\s-]*date[:\s]*(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})",
            r"date[:\s]*(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})",
            r"(\d{4}-\d{2}-\d{2})",
        ),
        "description_of_goods": _p(
            r"description[:\s]+([A-Za-z0-9 ,.\-()]{10,150})",
            r"goods[:\s]+([A-Za-z0-9 ,.\-()]{10,150})",
            r"product[:\s]+([A-Za-z0-9 ,.\-()]{10,150})",
        ),
        "unit_price": _p(
            rf"unit[\s-]*price[:\s]*{_AMOUNT}",
            rf"price[\s-]*per[\s-]*unit[:\s]*{_AMOUNT}",
            currency_prefixed=True,
        ),
        "total_value": _p(
            rf"total[\s-]*(?:amount|value)[:\s]*{_AMOUNT}",
            rf"invoice[\s-]*total[:\s]*{_AMOUNT}",
            rf"grand[\s-]*total[:\s]*{_AMOUNT}",
            currency_prefixed=True,
        ),
    },
    DocumentType.PACKING_LIST: {
        "number_of_packages": _p(
            r"(?:no\.|number)[\s-]*of[\s-]*packages[:\s]*(\d+)",
            r"total[\s-]*packages[:\s]*(\d+)",
            r"packages[:\s]*(\d+)",
            r"cartons[:\s]*(\d+)",
        ),
        "net_weight": _p(
            rf"net[\s-]*weight[:\s]*{_WEIGHT}",
        ),
        "gross_weight": _p(
            rf"gross[\s-]*weight[:\s]*{_WEIGHT}",
            rf"total[\s-]*weight[:\s]*{_WEIGHT}",
        ),
    },
    DocumentType.AWB: {
        "awb_number": _p(
            r"awb[\s-]*(?:no|number|#)?\.?[:\s]*([A-Z0-9-]{5,30})",
            r"air[\s-]*waybill[:\s]*([A-Z0-9-]{5,30})",
            r"waybill[:\s]*([A-Z0-9-]{5,30})",
        ),
        "shipper": _p(
            rf"shipper[:\s]+{_NAME}",
            rf"from[:\s]+{_NAME}",
        ),
        "consignee": _p(
            rf"consignee[:\s]+{_NAME}",
            rf"to[:\s]+{_NAME}",
        ),
        "gross_weight": _p(
            rf"gross[\s-]*weight[:\s]*{_WEIGHT}",
            rf"weight[:\s]*{_WEIGHT}",
        ),
    },
}


def match_patterns(spec: FieldPatterns, text: str) -> str | None:
    """Return the first capture produced by the ordered patterns, or None."""
    for pattern in spec.patterns:
        match = pattern.search(text)
        if match is None:
            continue
        group = 2 if spec.currency_prefixed and match.lastindex and match.lastindex >= 2 and match.group(2) else 1
        value = match.group(group)
        if value and value.strip():
            return value.strip()
    return None
