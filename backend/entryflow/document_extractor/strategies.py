"""
Extraction strategies.

Each strategy implements ``attempt(document) -> StrategyOutcome`` and reports
either the fields it found (``FieldsFound``) or that it could not run
(``StrategyUnavailable``). The chain driver in ``pipeline.py`` decides what
to try next; strategies never decide that themselves.

Confidence scale:
    vision 0.92 > text-layer regex 0.88 > text-layer proximity 0.65 > synthetic 0.50
"""

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from entryflow.document_extractor.fields import whitelist_for
from entryflow.document_extractor.normalizers import clean_value
from entryflow.document_extractor.parser import DocumentParser, UnreadableDocument
from entryflow.document_extractor.patterns import FIELD_PATTERNS, match_patterns
from entryflow.models.document import DocumentType
from entryflow.models.extracted_field import FieldSource
from entryflow.services.claude_service import ClaudeService

logger = logging.getLogger("entryflow.strategies")

VISION_CONFIDENCE = 0.92
REGEX_CONFIDENCE = 0.88
PROXIMITY_CONFIDENCE = 0.65
SYNTHETIC_CONFIDENCE = 0.50

_SEPARATOR = re.compile(r"[:=]")


@dataclass(frozen=True)
class DocumentInput:
    content: bytes
    document_type: DocumentType
    mime_type: str


@dataclass(frozen=True)
class FieldResult:
    value: str
    raw_value: str
    confidence: float
    source: FieldSource


@dataclass
class FieldsFound:
    fields: dict[str, FieldResult] = field(default_factory=dict)


@dataclass
class StrategyUnavailable:
    reason: str


StrategyOutcome = FieldsFound | StrategyUnavailable


class ExtractionStrategy:
    """Common capability of every strategy in the chain."""

    name: str = "base"
    source: FieldSource

    async def attempt(self, document: DocumentInput) -> StrategyOutcome:
        raise NotImplementedError

    def _result(self, field_name: str, raw: str, confidence: float) -> FieldResult:
        return FieldResult(
            value=clean_value(field_name, raw),
            raw_value=raw,
            confidence=confidence,
            source=self.source,
        )


class VisionStrategy(ExtractionStrategy):
    """Multimodal extraction through Claude."""

    name = "vision"
    source = FieldSource.VISION

    def __init__(self, claude_service: ClaudeService, parser: DocumentParser | None = None):
        self.claude_service = claude_service
        self.parser = parser or DocumentParser()

    async def attempt(self, document: DocumentInput) -> StrategyOutcome:
        if not self.claude_service.configured:
            return StrategyUnavailable("vision extraction is not configured (no API key)")

        try:
            payload = await asyncio.to_thread(
                self.parser.vision_payload, document.content, document.mime_type
            )
        except UnreadableDocument as e:
            return StrategyUnavailable(str(e))

        values = await self.claude_service.extract_fields(document.document_type, payload)

        fields = {
            name: self._result(name, raw, VISION_CONFIDENCE)
            for name, raw in values.items()
            if raw.strip()
        }
        return FieldsFound(fields={k: v for k, v in fields.items() if v.value})


class TextLayerStrategy(ExtractionStrategy):
    """Regex extraction over the document's text layer, with a line-proximity fallback."""

    name = "text_layer"
    source = FieldSource.TEXT_LAYER

    def __init__(self, parser: DocumentParser | None = None):
        self.parser = parser or DocumentParser()

    async def attempt(self, document: DocumentInput) -> StrategyOutcome:
        try:
            layer = await asyncio.to_thread(
                self.parser.extract_text_layer, document.content, document.mime_type
            )
        except UnreadableDocument as e:
            return StrategyUnavailable(str(e))

        if not layer.has_text:
            return StrategyUnavailable("empty text layer")

        patterns = FIELD_PATTERNS[document.document_type]
        fields: dict[str, FieldResult] = {}

        for name in whitelist_for(document.document_type):
            raw = match_patterns(patterns[name], layer.text)
            confidence = REGEX_CONFIDENCE
            if raw is None:
                raw = proximity_match(name, layer.lines)
                confidence = PROXIMITY_CONFIDENCE
            if raw is None:
                continue

            result = self._result(name, raw, confidence)
            if result.value:
                fields[name] = result

        return FieldsFound(fields=fields)


def proximity_match(field_name: str, lines: list[str]) -> str | None:
    """Find a line mentioning the field and take the first token after ':' or '='."""
    key = field_name.replace("_", " ")
    for line in lines:
        if key not in line.lower():
            continue
        parts = _SEPARATOR.split(line, maxsplit=1)
        if len(parts) < 2:
            continue
        tokens = parts[1].split()
        if tokens and len(tokens[0]) < 100:
            return tokens[0]
    return None


def _millis() -> str:
    return str(int(datetime.now(timezone.utc).timestamp() * 1000))


class SyntheticDefaultStrategy(ExtractionStrategy):
    """Deterministic placeholders so every whitelisted field has a value. Cannot fail."""

    name = "synthetic"
    source = FieldSource.SYNTHETIC

    def __init__(self, clock: Callable[[], str] = _millis, today: Callable[[], str] | None = None):
        self.clock = clock
        self.today = today or (lambda: datetime.now(timezone.utc).date().isoformat())

    def default_for(self, field_name: str) -> str:
        defaults = {
            # GD
            "declarant_name": "Broker/Declarant Name",
            "consignee": "Consignee/Importer Name",
            "hs_code": "0000000000",
            "declared_value": "0",
            "gross_weight": "0",
            "country_of_origin": "PH",
            # Invoice
            "invoice_number": f"INV-{self.clock()[-8:]}",
            "invoice_date": self.today(),
            "description_of_goods": "Goods description",
            "unit_price": "0",
            "total_value": "0",
            # Packing list
            "number_of_packages": "1",
            "net_weight": "0",
            # AWB
            "awb_number": f"AWB-{self.clock()[-10:]}",
            "shipper": "Shipper Name",
        }
        return defaults.get(field_name, f"[{field_name}]")

    async def attempt(self, document: DocumentInput) -> StrategyOutcome:
        return FieldsFound(fields=self.fill(document.document_type, {}))

    def fill(self, doc_type: DocumentType, found: dict[str, FieldResult]) -> dict[str, FieldResult]:
        """Placeholders for every whitelisted field missing from ``found``."""
        return {
            name: self._result(name, self.default_for(name), SYNTHETIC_CONFIDENCE)
            for name in whitelist_for(doc_type)
            if name not in found
        }
