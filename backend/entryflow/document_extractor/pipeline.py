"""
Ordered extraction chain for customs documents.

Flow:
  1. Vision (Claude) — skipped when unconfigured, falls through on any failure
  2. Text layer (pdfplumber + regex, proximity fallback) — only if 1 did not run
  3. Synthetic defaults — fill every whitelisted field still missing
  4. Return fields + per-field source + the strategy that produced the base set
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from entryflow.config import Settings
from entryflow.document_extractor.fields import whitelist_for
from entryflow.document_extractor.parser import DocumentParser
from entryflow.document_extractor.strategies import (
    DocumentInput,
    ExtractionStrategy,
    FieldResult,
    StrategyUnavailable,
    SyntheticDefaultStrategy,
    TextLayerStrategy,
    VisionStrategy,
)
from entryflow.exceptions import ExtractionUnavailable
from entryflow.models.document import DocumentType
from entryflow.services.claude_service import ClaudeService

logger = logging.getLogger("entryflow.pipeline")


@dataclass
class StrategyAttempt:
    strategy: str
    succeeded: bool
    detail: str = ""
    field_count: int = 0


@dataclass
class ChainResult:
    """Complete result of one document's extraction."""

    document_type: DocumentType
    fields: dict[str, FieldResult]
    strategy_used: str
    attempts: list[StrategyAttempt] = field(default_factory=list)
    processing_time_ms: int = 0


class ExtractionChain:
    """Tries strategies in order until one runs, then fills gaps with synthetic defaults."""

    def __init__(
        self,
        strategies: list[ExtractionStrategy],
        fallback: SyntheticDefaultStrategy | None = None,
        strategy_timeout: float | None = None,
    ):
        self.strategies = strategies
        self.fallback = fallback or SyntheticDefaultStrategy()
        self.strategy_timeout = strategy_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionChain":
        parser = DocumentParser()
        return cls(
            strategies=[
                VisionStrategy(ClaudeService(settings), parser),
                TextLayerStrategy(parser),
            ],
            strategy_timeout=settings.vision_timeout_seconds,
        )

    async def extract(
        self,
        content: bytes,
        declared_type: DocumentType | str,
        mime_type: str,
    ) -> ChainResult:
        """Run the chain on one document.

        "Nothing found" is not an error: the result then holds only synthetic
        placeholders.

        Raises:
            ExtractionUnavailable: the document has no content to run on.
        """
        start_time = time.monotonic()
        doc_type = DocumentType(declared_type)

        if not content:
            raise ExtractionUnavailable(
                "Could not process document: no content",
                {"document_type": doc_type.value},
            )

        document = DocumentInput(content=content, document_type=doc_type, mime_type=mime_type)
        allowed = set(whitelist_for(doc_type))
        attempts: list[StrategyAttempt] = []
        found: dict[str, FieldResult] = {}
        strategy_used = self.fallback.name

        for strategy in self.strategies:
            try:
                outcome = await asyncio.wait_for(strategy.attempt(document), self.strategy_timeout)
            except Exception as e:
                logger.warning("%s strategy failed for %s: %r", strategy.name, doc_type.value, e)
                attempts.append(StrategyAttempt(strategy.name, False, f"error: {e!r}"))
                continue

            if isinstance(outcome, StrategyUnavailable):
                logger.info("%s strategy unavailable for %s: %s", strategy.name, doc_type.value, outcome.reason)
                attempts.append(StrategyAttempt(strategy.name, False, outcome.reason))
                continue

            found = {name: result for name, result in outcome.fields.items() if name in allowed}
            strategy_used = strategy.name
            attempts.append(StrategyAttempt(strategy.name, True, field_count=len(found)))
            break

        placeholders = self.fallback.fill(doc_type, found)
        if placeholders:
            attempts.append(StrategyAttempt(self.fallback.name, True, field_count=len(placeholders)))

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "Extracted %s via %s: %d genuine, %d synthetic (%d ms)",
            doc_type.value,
            strategy_used,
            len(found),
            len(placeholders),
            elapsed_ms,
        )

        return ChainResult(
            document_type=doc_type,
            fields={**found, **placeholders},
            strategy_used=strategy_used,
            attempts=attempts,
            processing_time_ms=elapsed_ms,
        )
