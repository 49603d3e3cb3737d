"""
Document parser for in-memory document content.

Supports:
- PDF: text layer via pdfplumber; the raw PDF is passed to vision as-is
- Images (PNG/JPG): no text layer; re-encoded (and downscaled) for vision
- text/*: decoded directly as a text layer
"""

import base64
import io
import logging
from dataclasses import dataclass, field

import pdfplumber
from PIL import Image, UnidentifiedImageError

from entryflow.document_extractor.normalizers import normalize_whitespace

logger = logging.getLogger("entryflow.parser")

# Max image dimension before resizing (Claude vision has limits)
MAX_IMAGE_DIMENSION = 2048

IMAGE_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg"})


class UnreadableDocument(Exception):
    """The bytes could not be decoded by the parser for this mime type."""


@dataclass
class TextLayer:
    """Text extracted from a document, one normalized entry per non-empty line."""

    text: str = ""
    lines: list[str] = field(default_factory=list)
    page_count: int = 0

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())


@dataclass
class VisionPayload:
    """A Claude content block ready to send: ``document`` for PDFs, ``image`` otherwise."""

    block_type: str
    media_type: str
    base64: str


def detect_mime_type(content: bytes, declared: str | None = None) -> str:
    """Trust the declared mime type unless the magic bytes say otherwise."""
    if content.startswith(b"%PDF"):
        return "application/pdf"
    if content.startswith(b"\x89PNG"):
        return "image/png"
    if content.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return declared or "application/octet-stream"


class DocumentParser:
    """Routes document bytes to the appropriate parsing strategy."""

    def extract_text_layer(self, content: bytes, mime_type: str) -> TextLayer:
        """Extract and normalize the text layer.

        Raises:
            UnreadableDocument: the content has no text layer or cannot be parsed.
        """
        mime_type = detect_mime_type(content, mime_type)

        if mime_type == "application/pdf":
            raw_text, page_count = self._pdf_text(content)
        elif mime_type.startswith("text/"):
            raw_text, page_count = content.decode("utf-8", errors="replace"), 1
        else:
            raise UnreadableDocument(f"No text layer for mime type {mime_type}")

        lines = [normalize_whitespace(line) for line in raw_text.splitlines()]
        lines = [line for line in lines if line]

        logger.info("Text layer: %d pages, %d lines, %d chars", page_count, len(lines), len(raw_text))

        return TextLayer(text="\n".join(lines), lines=lines, page_count=page_count)

    def _pdf_text(self, content: bytes) -> tuple[str, int]:
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            raise UnreadableDocument(f"Failed to parse PDF: {e}") from e
        return "\n".join(pages), len(pages)

    def vision_payload(self, content: bytes, mime_type: str) -> VisionPayload:
        """Prepare document bytes for a vision request.

        Raises:
            UnreadableDocument: unsupported mime type or undecodable image.
        """
        mime_type = detect_mime_type(content, mime_type)

        if mime_type == "application/pdf":
            return VisionPayload(
                block_type="document",
                media_type="application/pdf",
                base64=base64.standard_b64encode(content).decode("utf-8"),
            )
        if mime_type in IMAGE_MIME_TYPES:
            return VisionPayload(
                block_type="image",
                media_type="image/png",
                base64=self._encode_image(content),
            )
        raise UnreadableDocument(f"Vision does not accept mime type {mime_type}")

    def _encode_image(self, content: bytes) -> str:
        try:
            with Image.open(io.BytesIO(content)) as img:
                if max(img.size) > MAX_IMAGE_DIMENSION:
                    ratio = MAX_IMAGE_DIMENSION / max(img.size)
                    new_size = (int(img.size[0] * ratio), int(img.size[1] * ratio))
                    img = img.resize(new_size, Image.Resampling.LANCZOS)

                # Convert to PNG for consistent encoding
                img_bytes = io.BytesIO()
                img.save(img_bytes, format="PNG")
        except (UnidentifiedImageError, OSError) as e:
            raise UnreadableDocument(f"Failed to decode image: {e}") from e

        return base64.standard_b64encode(img_bytes.getvalue()).decode("utf-8")
