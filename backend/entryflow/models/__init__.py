from entryflow.models.base import Base, TimestampMixin
from entryflow.models.entry import Entry, EntryStatus
from entryflow.models.document import Document, DocumentType, OcrStatus
from entryflow.models.extracted_field import ExtractedField, FieldSource
from entryflow.models.validation import RuleType, Severity, ValidationResult, ValidationStatus
from entryflow.models.tax import TaxComputation
from entryflow.models.audit import AuditEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "Entry",
    "EntryStatus",
    "Document",
    "DocumentType",
    "OcrStatus",
    "ExtractedField",
    "FieldSource",
    "ValidationResult",
    "RuleType",
    "Severity",
    "ValidationStatus",
    "TaxComputation",
    "AuditEvent",
]
