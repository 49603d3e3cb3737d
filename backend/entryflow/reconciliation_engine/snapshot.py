"""Read-side views of reconciled fields, shared by validation and tax computation."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from entryflow.models.document import DocumentType
from entryflow.models.extracted_field import ExtractedField, FieldSource


@dataclass(frozen=True)
class FieldRecord:
    field_name: str
    value: str
    raw_value: str | None
    confidence: float
    source: FieldSource
    updated_at: datetime | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.source is FieldSource.SYNTHETIC

    @property
    def is_manual(self) -> bool:
        return self.source is FieldSource.MANUAL

    @classmethod
    def from_row(cls, row: ExtractedField) -> "FieldRecord":
        return cls(
            field_name=row.field_name,
            value=row.normalized_value or "",
            raw_value=row.raw_value,
            confidence=row.confidence,
            source=FieldSource(row.source),
            updated_at=row.updated_at,
        )


@dataclass
class EntryFieldSnapshot:
    """The authoritative value of each field, per document type, across an entry's documents."""

    entry_id: uuid.UUID
    by_type: dict[DocumentType, dict[str, FieldRecord]] = field(default_factory=dict)

    def get(self, doc_type: DocumentType, field_name: str) -> FieldRecord | None:
        return self.by_type.get(doc_type, {}).get(field_name)

    def value(self, doc_type: DocumentType, field_name: str) -> str | None:
        """Non-blank value, placeholders included."""
        record = self.get(doc_type, field_name)
        if record is None or not record.value.strip():
            return None
        return record.value.strip()

    def genuine_value(self, doc_type: DocumentType, field_name: str) -> str | None:
        """Non-blank value that was actually extracted or entered, not a placeholder."""
        record = self.get(doc_type, field_name)
        if record is None or record.is_placeholder:
            return None
        return self.value(doc_type, field_name)

    def has_document(self, doc_type: DocumentType) -> bool:
        return doc_type in self.by_type
