"""Raw-value cleanup shared by every extraction strategy."""

import re

from entryflow.document_extractor.fields import NUMERIC_FIELDS

_CURRENCY_CODES = re.compile(r"\bUS\$|\b(?:USD|PHP|EUR)\b", re.IGNORECASE)
_CURRENCY_SYMBOLS = re.compile(r"[$₱€£¥]")
_UNIT_SUFFIX = re.compile(r"(?<=[\d.\s])(?:kgs?|kilos?|kilograms?|lbs?)\.?\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"[ \t]+")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces/tabs on every line; keep line breaks."""
    return _WHITESPACE.sub(" ", text).strip()


def clean_numeric(value: str) -> str:
    """Strip thousands separators, currency markers and unit suffixes.

    >>> clean_numeric("USD 12,500.00")
    '12500.00'
    >>> clean_numeric("1,234 kg")
    '1234'
    """
    cleaned = _CURRENCY_CODES.sub("", value)
    cleaned = _CURRENCY_SYMBOLS.sub("", cleaned)
    cleaned = _UNIT_SUFFIX.sub("", cleaned.strip())
    return cleaned.replace(",", "").strip()


def clean_value(field_name: str, value: str) -> str:
    value = value.strip()
    if field_name in NUMERIC_FIELDS:
        return clean_numeric(value)
    return value
