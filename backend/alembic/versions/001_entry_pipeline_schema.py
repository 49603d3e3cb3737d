"""Entry pipeline schema: entries, documents, extracted fields, validation, tax, audit

Revision ID: 001_entry_pipeline
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_entry_pipeline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(20, 2)
RATE = sa.Numeric(12, 6)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Entries (one per submission); "completed" is derived from tax_computations
    op.create_table(
        "entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "FOR_REVIEW", "VALIDATED", "ERROR", name="entry_status"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("created_by", sa.String(200), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_entries_status", "entries", ["status"])
    op.create_index("ix_entries_created_by", "entries", ["created_by"])

    # Documents (immutable files; only OCR bookkeeping changes)
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "entry_id",
            UUID(as_uuid=True),
            sa.ForeignKey("entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "document_type",
            sa.Enum("GD", "INVOICE", "PACKING_LIST", "AWB", name="document_type"),
            nullable=False,
        ),
        sa.Column("content_ref", sa.String(1024), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("original_filename", sa.String(512), nullable=False),
        sa.Column("file_size", sa.BigInteger, nullable=False),
        sa.Column(
            "ocr_status",
            sa.Enum("pending", "processing", "extracted", "failed", name="ocr_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("extraction_strategy", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_documents_entry_id", "documents", ["entry_id"])

    # Extracted fields: one authoritative row per (document, field)
    op.create_table(
        "extracted_fields",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "document_id",
            UUID(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("raw_value", sa.Text, nullable=True),
        sa.Column("normalized_value", sa.Text, nullable=False, server_default=""),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "source",
            sa.Enum("vision", "text_layer", "synthetic", "manual", name="field_source"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("document_id", "field_name", name="uq_extracted_fields_document_field"),
    )
    op.create_index("ix_extracted_fields_document_id", "extracted_fields", ["document_id"])

    # Validation results: replaced wholesale by each run
    op.create_table(
        "validation_results",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "entry_id",
            UUID(as_uuid=True),
            sa.ForeignKey("entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("run_id", UUID(as_uuid=True), nullable=False),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column(
            "rule_type",
            sa.Enum("REQUIRED", "CLASSIFICATION", "VALUATION", "LOGISTICS", name="rule_type"),
            nullable=False,
        ),
        sa.Column("status", sa.Enum("pass", "fail", name="validation_status"), nullable=False),
        sa.Column(
            "severity",
            sa.Enum("critical", "warning", "info", name="validation_severity"),
            nullable=True,
        ),
        sa.Column("field_name", sa.String(100), nullable=True),
        sa.Column("expected_behavior", sa.Text, nullable=True),
        sa.Column("remarks", sa.Text, nullable=True),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_validation_results_entry_id", "validation_results", ["entry_id"])

    # Tax computations: written once per entry
    op.create_table(
        "tax_computations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "entry_id",
            UUID(as_uuid=True),
            sa.ForeignKey("entries.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("line_no", sa.Integer, nullable=False, server_default="1"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("hs_code", sa.String(20), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("declared_value", MONEY, nullable=False),
        sa.Column("exchange_rate", RATE, nullable=False),
        sa.Column("rate_source", sa.String(100), nullable=True),
        sa.Column("declared_value_local", MONEY, nullable=False),
        sa.Column("duty_rate", RATE, nullable=False),
        sa.Column("duty_amount", MONEY, nullable=False),
        sa.Column("vat_rate", RATE, nullable=False),
        sa.Column("vat_amount", MONEY, nullable=False),
        sa.Column("total_tax", MONEY, nullable=False),
        sa.Column("computed_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Audit events (append-only)
    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("actor_role", sa.String(50), nullable=True),
        sa.Column("reference_type", sa.String(100), nullable=True),
        sa.Column("reference_id", UUID(as_uuid=True), nullable=True),
        sa.Column("remarks", sa.Text, nullable=True),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_events_reference", "audit_events", ["reference_type", "reference_id"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("tax_computations")
    op.drop_table("validation_results")
    op.drop_table("extracted_fields")
    op.drop_table("documents")
    op.drop_table("entries")

    for enum_name in (
        "validation_severity",
        "validation_status",
        "rule_type",
        "field_source",
        "ocr_status",
        "document_type",
        "entry_status",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
