"""Tests for the extraction chain: normalizers, patterns, parser, strategies and chain driver."""

import asyncio
import base64
import io
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from PIL import Image

from entryflow.config import Settings
from entryflow.document_extractor.fields import FIELD_WHITELIST, is_allowed, whitelist_for
from entryflow.document_extractor.normalizers import clean_numeric, clean_value, normalize_whitespace
from entryflow.document_extractor.parser import (
    MAX_IMAGE_DIMENSION,
    DocumentParser,
    UnreadableDocument,
    detect_mime_type,
)
from entryflow.document_extractor.patterns import FIELD_PATTERNS, match_patterns
from entryflow.document_extractor.pipeline import ExtractionChain
from entryflow.document_extractor.strategies import (
    PROXIMITY_CONFIDENCE,
    REGEX_CONFIDENCE,
    SYNTHETIC_CONFIDENCE,
    VISION_CONFIDENCE,
    DocumentInput,
    ExtractionStrategy,
    FieldsFound,
    StrategyUnavailable,
    SyntheticDefaultStrategy,
    TextLayerStrategy,
    VisionStrategy,
    proximity_match,
)
from entryflow.exceptions import ExtractionUnavailable
from entryflow.models.document import DocumentType
from entryflow.models.extracted_field import FieldSource
from entryflow.services.claude_service import ClaudeService

GD_TEXT = """GOODS DECLARATION
Declarant: Blue Harbor Brokerage
Consignee: Acme Imports Inc
HS Code: 8471300000
Declared Value: USD 12,500.00
Gross Weight:   1,250 kg
Country of Origin: CN
"""

FAKE_PDF = b"%PDF-1.4 fake test content"


def make_settings(api_key: str = "") -> Settings:
    return Settings(anthropic_api_key=api_key, database_url="sqlite+aiosqlite:///test.db")


def make_mock_message(content_text: str):
    mock_content = MagicMock()
    mock_content.text = content_text
    mock_message = MagicMock()
    mock_message.content = [mock_content]
    return mock_message


def fixed_synthetic() -> SyntheticDefaultStrategy:
    return SyntheticDefaultStrategy(clock=lambda: "1700000000123", today=lambda: "2026-01-02")


def png_bytes(size: tuple[int, int]) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color="white").save(buffer, format="PNG")
    return buffer.getvalue()


class StaticStrategy(ExtractionStrategy):
    """Returns a fixed field set."""

    name = "static"
    source = FieldSource.TEXT_LAYER

    def __init__(self, values: dict[str, str]):
        self.values = values

    async def attempt(self, document):
        return FieldsFound({k: self._result(k, v, 0.8) for k, v in self.values.items()})


class SlowStrategy(ExtractionStrategy):
    name = "slow"
    source = FieldSource.VISION

    async def attempt(self, document):
        await asyncio.sleep(5)
        return FieldsFound()


# ── Pure function tests (no DB needed) ──


class TestNormalizers:
    def test_clean_numeric_strips_currency_and_separators(self):
        assert clean_numeric("USD 12,500.00") == "12500.00"
        assert clean_numeric("$1,500.50") == "1500.50"

    def test_clean_numeric_strips_us_dollar_prefix(self):
        assert clean_numeric("US$ 1,000") == "1000"
        assert clean_numeric("us$250.75") == "250.75"

    def test_clean_numeric_strips_weight_units(self):
        assert clean_numeric("1,234 kg") == "1234"
        assert clean_numeric("980.5 KGS") == "980.5"

    def test_clean_value_leaves_text_fields_alone(self):
        assert clean_value("consignee", "  Acme Imports, Inc.  ") == "Acme Imports, Inc."

    def test_clean_value_numeric_field(self):
        assert clean_value("declared_value", "PHP 3,000") == "3000"

    def test_normalize_whitespace(self):
        assert normalize_whitespace("Gross   Weight:\t 12 ") == "Gross Weight: 12"


class TestWhitelist:
    def test_every_type_has_a_whitelist(self):
        assert set(FIELD_WHITELIST) == set(DocumentType)

    def test_gd_field_order(self):
        assert whitelist_for(DocumentType.GD)[0] == "declarant_name"
        assert "hs_code" in whitelist_for("GD")

    def test_is_allowed(self):
        assert is_allowed(DocumentType.AWB, "awb_number")
        assert not is_allowed(DocumentType.AWB, "invoice_number")


class TestPatterns:
    def test_gd_patterns(self):
        patterns = FIELD_PATTERNS[DocumentType.GD]
        assert match_patterns(patterns["hs_code"], GD_TEXT) == "8471300000"
        assert match_patterns(patterns["consignee"], GD_TEXT) == "Acme Imports Inc"
        assert match_patterns(patterns["country_of_origin"], GD_TEXT) == "CN"

    def test_currency_prefixed_amount_returns_amount_group(self):
        patterns = FIELD_PATTERNS[DocumentType.GD]
        assert match_patterns(patterns["declared_value"], GD_TEXT) == "12,500.00"

    def test_no_match_returns_none(self):
        patterns = FIELD_PATTERNS[DocumentType.AWB]
        assert match_patterns(patterns["awb_number"], "nothing relevant here") is None

    def test_invoice_number(self):
        patterns = FIELD_PATTERNS[DocumentType.INVOICE]
        assert match_patterns(patterns["invoice_number"], "Invoice No: INV-2026-001") == "INV-2026-001"


class TestProximityMatch:
    def test_first_token_after_separator(self):
        assert proximity_match("net_weight", ["Packing details", "Net weight = 980 kg"]) == "980"

    def test_requires_separator(self):
        assert proximity_match("net_weight", ["net weight 980"]) is None

    def test_missing_field(self):
        assert proximity_match("shipper", ["Consignee: ACME"]) is None


class TestParser:
    def test_detect_mime_type_trusts_magic_bytes(self):
        assert detect_mime_type(FAKE_PDF, "image/png") == "application/pdf"
        assert detect_mime_type(png_bytes((4, 4)), None) == "image/png"
        assert detect_mime_type(b"plain", "text/plain") == "text/plain"

    def test_text_layer_from_plain_text(self):
        layer = DocumentParser().extract_text_layer(GD_TEXT.encode(), "text/plain")
        assert layer.has_text
        assert "Gross Weight: 1,250 kg" in layer.lines

    def test_image_has_no_text_layer(self):
        with pytest.raises(UnreadableDocument):
            DocumentParser().extract_text_layer(png_bytes((4, 4)), "image/png")

    def test_pdf_vision_payload_is_document_block(self):
        payload = DocumentParser().vision_payload(FAKE_PDF, "application/pdf")
        assert payload.block_type == "document"
        assert base64.standard_b64decode(payload.base64) == FAKE_PDF

    def test_large_image_is_downscaled(self):
        payload = DocumentParser().vision_payload(png_bytes((3000, 100)), "image/png")
        assert payload.block_type == "image"
        with Image.open(io.BytesIO(base64.standard_b64decode(payload.base64))) as img:
            assert max(img.size) == MAX_IMAGE_DIMENSION

    def test_vision_rejects_text(self):
        with pytest.raises(UnreadableDocument):
            DocumentParser().vision_payload(b"hello", "text/plain")


class TestSyntheticDefaults:
    def test_injected_clock_makes_defaults_deterministic(self):
        strategy = fixed_synthetic()
        assert strategy.default_for("invoice_number") == "INV-00000123"
        assert strategy.default_for("awb_number") == "AWB-0000000123"
        assert strategy.default_for("invoice_date") == "2026-01-02"
        assert strategy.default_for("hs_code") == "0000000000"

    def test_fill_only_missing_fields(self):
        found = {"hs_code": MagicMock()}
        filled = fixed_synthetic().fill(DocumentType.GD, found)
        assert "hs_code" not in filled
        assert set(filled) == set(whitelist_for(DocumentType.GD)) - {"hs_code"}
        assert all(r.source is FieldSource.SYNTHETIC for r in filled.values())
        assert all(r.confidence == SYNTHETIC_CONFIDENCE for r in filled.values())


# ── Strategy tests ──


class TestStrategies:
    @pytest.mark.asyncio
    async def test_vision_unavailable_without_key(self):
        strategy = VisionStrategy(ClaudeService(make_settings()))
        outcome = await strategy.attempt(DocumentInput(FAKE_PDF, DocumentType.GD, "application/pdf"))
        assert isinstance(outcome, StrategyUnavailable)

    @pytest.mark.asyncio
    async def test_text_layer_regex_and_proximity(self):
        text = GD_TEXT.replace("Country of Origin: CN", "Country of origin = PH")
        outcome = await TextLayerStrategy().attempt(
            DocumentInput(text.encode(), DocumentType.GD, "text/plain")
        )
        assert isinstance(outcome, FieldsFound)
        assert outcome.fields["declared_value"].value == "12500.00"
        assert outcome.fields["declared_value"].confidence == REGEX_CONFIDENCE
        assert outcome.fields["gross_weight"].value == "1250"
        assert outcome.fields["country_of_origin"].value == "PH"
        assert outcome.fields["country_of_origin"].confidence == PROXIMITY_CONFIDENCE

    @pytest.mark.asyncio
    async def test_text_layer_unavailable_for_image(self):
        outcome = await TextLayerStrategy().attempt(
            DocumentInput(png_bytes((4, 4)), DocumentType.GD, "image/png")
        )
        assert isinstance(outcome, StrategyUnavailable)


# ── Chain tests ──


class TestExtractionChain:
    @pytest.mark.asyncio
    async def test_empty_content_is_unavailable(self):
        chain = ExtractionChain([TextLayerStrategy()], fallback=fixed_synthetic())
        with pytest.raises(ExtractionUnavailable):
            await chain.extract(b"", DocumentType.GD, "application/pdf")

    @pytest.mark.asyncio
    async def test_vision_fields_then_synthetic_gap_fill(self):
        service = ClaudeService(make_settings("test-key"))
        chain = ExtractionChain(
            [VisionStrategy(service), TextLayerStrategy()], fallback=fixed_synthetic()
        )
        response = {"hs_code": "8471300000", "declared_value": "USD 12,500", "consignee": ""}

        with patch.object(service.client.messages, "create", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = make_mock_message(json.dumps(response))
            result = await chain.extract(FAKE_PDF, DocumentType.GD, "application/pdf")

        assert result.strategy_used == "vision"
        assert result.fields["hs_code"].source is FieldSource.VISION
        assert result.fields["hs_code"].confidence == VISION_CONFIDENCE
        assert result.fields["declared_value"].value == "12500"
        # Blank vision values are gaps, filled synthetically
        assert result.fields["consignee"].source is FieldSource.SYNTHETIC
        assert set(result.fields) == set(whitelist_for(DocumentType.GD))

    @pytest.mark.asyncio
    async def test_text_layer_used_when_vision_not_configured(self):
        chain = ExtractionChain.from_settings(make_settings())
        result = await chain.extract(GD_TEXT.encode(), DocumentType.GD, "text/plain")

        assert result.strategy_used == "text_layer"
        assert result.fields["hs_code"].value == "8471300000"
        assert result.fields["hs_code"].source is FieldSource.TEXT_LAYER
        assert [a.strategy for a in result.attempts][:2] == ["vision", "text_layer"]
        assert result.attempts[0].succeeded is False

    @pytest.mark.asyncio
    async def test_vision_error_falls_through_to_synthetic(self):
        service = ClaudeService(make_settings("test-key"))
        chain = ExtractionChain([VisionStrategy(service), TextLayerStrategy()], fallback=fixed_synthetic())

        with patch.object(service.client.messages, "create", new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = RuntimeError("connection reset")
            result = await chain.extract(FAKE_PDF, DocumentType.INVOICE, "application/pdf")

        assert result.strategy_used == "synthetic"
        assert result.fields["invoice_number"].value == "INV-00000123"
        assert all(r.source is FieldSource.SYNTHETIC for r in result.fields.values())
        assert "connection reset" in result.attempts[0].detail

    @pytest.mark.asyncio
    async def test_timed_out_strategy_is_skipped(self):
        chain = ExtractionChain(
            [SlowStrategy(), StaticStrategy({"awb_number": "176-12345675"})],
            fallback=fixed_synthetic(),
            strategy_timeout=0.01,
        )
        result = await chain.extract(FAKE_PDF, DocumentType.AWB, "application/pdf")

        assert result.strategy_used == "static"
        assert result.fields["awb_number"].value == "176-12345675"
        assert result.attempts[0].succeeded is False

    @pytest.mark.asyncio
    async def test_fields_outside_whitelist_are_dropped(self):
        chain = ExtractionChain(
            [StaticStrategy({"net_weight": "980", "bank_account": "123-456"})],
            fallback=fixed_synthetic(),
        )
        result = await chain.extract(FAKE_PDF, "PACKING_LIST", "application/pdf")

        assert "bank_account" not in result.fields
        assert set(result.fields) == set(whitelist_for(DocumentType.PACKING_LIST))
        assert result.fields["net_weight"].value == "980"
