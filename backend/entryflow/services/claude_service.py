"""
Claude API service for customs field extraction.

Sends the scanned document (PDF as a ``document`` block, images as ``image``
blocks) together with the document type's field whitelist and field-specific
instructions, and expects a single flat JSON object mapping field names to
string values back.
"""

import json
import logging

import anthropic

from entryflow.config import Settings
from entryflow.document_extractor.fields import (
    DOCUMENT_TYPE_NAMES,
    FIELD_INSTRUCTIONS,
    whitelist_for,
)
from entryflow.document_extractor.parser import VisionPayload
from entryflow.models.document import DocumentType

logger = logging.getLogger("entryflow.claude")

EXTRACTION_SYSTEM_PROMPT = """You are a customs document OCR expert. Your job is to read scanned customs documents (goods declarations, commercial invoices, packing lists, air waybills) and extract the requested fields exactly.

Return ONLY valid JSON with the exact field names as keys and string values. No markdown, no code blocks, no explanation."""

GENERAL_RULES = """GENERAL RULES:
- Scan the ENTIRE document - fields may be in headers, tables, footers, or margins
- For numbers: Extract digits only (remove currency symbols, units like "kg", commas)
- For names/companies: Extract full text including spaces and punctuation
- Look for variations: "No." = "Number", "Wt" = "Weight", "Qty" = "Quantity"
- If a field truly cannot be found after thorough search, use empty string \"\""""


def _parse_json_response(response_text: str) -> dict:
    """Parse JSON from Claude response, handling markdown code blocks."""
    text = response_text.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, IndexError) as e:
        logger.error("Failed to parse Claude response as JSON: %s", e)
        raise ValueError(f"Claude response was not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError("Claude response was not a JSON object")
    return parsed


def build_extraction_prompt(doc_type: DocumentType) -> str:
    """Type-specific prompt: field list, field instructions, general rules."""
    field_list = "\n".join(f"- {name}" for name in whitelist_for(doc_type))
    return (
        f"This is a {DOCUMENT_TYPE_NAMES[doc_type]}.\n\n"
        f"Extract ALL of these fields from the document:\n{field_list}\n\n"
        f"FIELD-SPECIFIC INSTRUCTIONS:\n{FIELD_INSTRUCTIONS[doc_type]}\n\n"
        f"{GENERAL_RULES}\n\n"
        'Example: {"declarant_name": "ABC Corp", "hs_code": "8471300000", "declared_value": "12500"}'
    )


def _build_content(payload: VisionPayload, prompt: str) -> list[dict]:
    """Build Claude message content: the document block first, then the prompt."""
    return [
        {
            "type": payload.block_type,
            "source": {
                "type": "base64",
                "media_type": payload.media_type,
                "data": payload.base64,
            },
        },
        {"type": "text", "text": prompt},
    ]


class ClaudeService:
    def __init__(self, settings: Settings):
        self.client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key or None,
            timeout=settings.vision_timeout_seconds,
            max_retries=0,
        )
        self.model = settings.claude_model
        self.max_tokens = settings.claude_max_tokens
        self.configured = bool(settings.anthropic_api_key)

    async def extract_fields(
        self,
        doc_type: DocumentType,
        payload: VisionPayload,
    ) -> dict[str, str]:
        """Extract whitelisted fields from a scanned document.

        Args:
            doc_type: Declared document type; selects the field list and instructions.
            payload: Base64 document or image block.

        Returns:
            Field name → string value, restricted to the whitelist. Values may be empty.

        Raises:
            ValueError: the response was not a JSON object.
            anthropic.APIError: network, auth or timeout failures.
        """
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=EXTRACTION_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": _build_content(payload, build_extraction_prompt(doc_type))}],
        )

        result = _parse_json_response(message.content[0].text)

        allowed = whitelist_for(doc_type)
        fields = {
            name: "" if value is None else str(value)
            for name, value in result.items()
            if name in allowed
        }
        non_empty = sum(1 for v in fields.values() if v.strip())
        logger.info("Vision %s: extracted %d/%d fields", doc_type.value, non_empty, len(allowed))
        return fields
