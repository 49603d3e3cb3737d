"""Tests for the rule evaluator, the default customs rules and ValidationService."""

import uuid

import pytest
from sqlalchemy import func, select

from entryflow.exceptions import EntryNotFound
from entryflow.models.audit import AuditEvent
from entryflow.models.document import DocumentType
from entryflow.models.extracted_field import FieldSource
from entryflow.models.validation import RuleType, Severity, ValidationResult, ValidationStatus
from entryflow.reconciliation_engine.snapshot import EntryFieldSnapshot, FieldRecord
from entryflow.validation.default_rules import DEFAULT_RULES
from entryflow.validation.rules import RuleCheck, RuleDefinition, evaluate_rules
from entryflow.validation.service import ValidationService

GD = DocumentType.GD
INVOICE = DocumentType.INVOICE
PACKING_LIST = DocumentType.PACKING_LIST
AWB = DocumentType.AWB

VALID_FIELDS = {
    GD: {
        "hs_code": "8471300000",
        "declared_value": "12500",
        "consignee": "Acme Imports Inc",
        "country_of_origin": "CN",
        "gross_weight": "1250",
    },
    INVOICE: {"invoice_number": "INV-2026-001", "total_value": "12500", "unit_price": "250"},
    PACKING_LIST: {"number_of_packages": "10", "net_weight": "1100", "gross_weight": "1245"},
    AWB: {"awb_number": "176-12345675", "gross_weight": "1250"},
}


def make_snapshot(fields: dict[DocumentType, dict[str, str]], source: FieldSource = FieldSource.VISION):
    snapshot = EntryFieldSnapshot(entry_id=uuid.uuid4())
    for doc_type, values in fields.items():
        snapshot.by_type[doc_type] = {
            name: FieldRecord(name, value, value, 0.92, source) for name, value in values.items()
        }
    return snapshot


def with_changes(**changes: dict[str, str | None]) -> EntryFieldSnapshot:
    """VALID_FIELDS with per-type overrides; None removes a field."""
    fields = {doc_type: dict(values) for doc_type, values in VALID_FIELDS.items()}
    for type_name, values in changes.items():
        per_type = fields.setdefault(DocumentType[type_name], {})
        for name, value in values.items():
            if value is None:
                per_type.pop(name, None)
            else:
                per_type[name] = value
    return make_snapshot(fields)


def outcome(snapshot: EntryFieldSnapshot, rule_id: str):
    return next(e for e in evaluate_rules(snapshot, DEFAULT_RULES) if e.rule_id == rule_id)


# ── Pure function tests (no DB needed) ──


class TestEvaluator:
    def test_one_result_per_rule(self):
        evaluations = evaluate_rules(make_snapshot(VALID_FIELDS), DEFAULT_RULES)
        assert [e.rule_id for e in evaluations] == [r.rule_id for r in DEFAULT_RULES]

    def test_valid_entry_has_no_failures(self):
        evaluations = evaluate_rules(make_snapshot(VALID_FIELDS), DEFAULT_RULES)
        failed = [e.rule_id for e in evaluations if e.status is ValidationStatus.FAIL]
        assert failed == []

    def test_severity_kept_on_pass(self):
        evaluation = outcome(make_snapshot(VALID_FIELDS), "REQ_GD_HS_CODE")
        assert evaluation.status is ValidationStatus.PASS
        assert evaluation.severity is Severity.CRITICAL
        assert evaluation.is_blocking is False

    def test_raising_predicate_is_a_failure(self):
        def broken(snapshot):
            raise ZeroDivisionError("division by zero")

        rules = [RuleDefinition("BROKEN", RuleType.VALUATION, "never raises", Severity.WARNING, broken)]
        [evaluation] = evaluate_rules(make_snapshot({}), rules)

        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.severity is Severity.WARNING
        assert "could not be evaluated" in evaluation.remarks

    def test_custom_rules(self):
        rules = [
            RuleDefinition(
                "HAS_AWB", RuleType.LOGISTICS, "AWB uploaded", Severity.CRITICAL,
                lambda s: RuleCheck(s.has_document(AWB), field_name="awb_number"),
            )
        ]
        [evaluation] = evaluate_rules(make_snapshot({GD: {}}), rules)
        assert evaluation.is_blocking


class TestRequiredRules:
    def test_missing_document(self):
        snapshot = make_snapshot({k: v for k, v in VALID_FIELDS.items() if k is not INVOICE})
        evaluation = outcome(snapshot, "REQ_INVOICE_NUMBER")
        assert evaluation.status is ValidationStatus.FAIL
        assert "No INVOICE document" in evaluation.remarks

    def test_missing_field(self):
        evaluation = outcome(with_changes(GD={"consignee": None}), "REQ_GD_CONSIGNEE")
        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.is_blocking

    def test_placeholder_does_not_satisfy_required(self):
        fields = dict(VALID_FIELDS)
        snapshot = make_snapshot(fields)
        snapshot.by_type[GD]["hs_code"] = FieldRecord("hs_code", "0000000000", None, 0.5, FieldSource.SYNTHETIC)

        evaluation = outcome(snapshot, "REQ_GD_HS_CODE")
        assert evaluation.status is ValidationStatus.FAIL
        assert "placeholder" in evaluation.remarks

    def test_declared_value_falls_back_to_invoice_total(self):
        snapshot = with_changes(GD={"declared_value": None})
        assert outcome(snapshot, "REQ_DECLARED_VALUE").status is ValidationStatus.PASS
        assert outcome(snapshot, "VAL_DUTIABLE_BASE").status is ValidationStatus.PASS

    def test_missing_awb_is_only_a_warning(self):
        snapshot = make_snapshot({k: v for k, v in VALID_FIELDS.items() if k is not AWB})
        evaluation = outcome(snapshot, "REQ_AWB_NUMBER")
        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.is_blocking is False


class TestClassificationRules:
    @pytest.mark.parametrize("hs_code", ["12", "0000000000", "12345678901"])
    def test_bad_hs_code_format(self, hs_code):
        evaluation = outcome(with_changes(GD={"hs_code": hs_code}), "CLS_HS_FORMAT")
        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.is_blocking

    def test_dotted_hs_code_is_normalized(self):
        evaluation = outcome(with_changes(GD={"hs_code": "8471.30.00"}), "CLS_HS_FORMAT")
        assert evaluation.status is ValidationStatus.PASS

    def test_chapter_outside_range_is_info(self):
        evaluation = outcome(with_changes(GD={"hs_code": "9801000000"}), "CLS_HS_CHAPTER")
        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.severity is Severity.INFO


class TestValuationRules:
    def test_zero_declared_value_blocks(self):
        snapshot = with_changes(GD={"declared_value": "0"}, INVOICE={"total_value": None})
        assert outcome(snapshot, "VAL_DUTIABLE_BASE").is_blocking

    def test_declared_value_disagrees_with_invoice(self):
        evaluation = outcome(with_changes(INVOICE={"total_value": "13000"}), "VAL_MATCHES_INVOICE")
        assert evaluation.status is ValidationStatus.FAIL
        assert evaluation.severity is Severity.WARNING

    def test_declared_value_within_tolerance(self):
        evaluation = outcome(with_changes(INVOICE={"total_value": "12550"}), "VAL_MATCHES_INVOICE")
        assert evaluation.status is ValidationStatus.PASS

    def test_unit_price_exceeds_total(self):
        evaluation = outcome(with_changes(INVOICE={"unit_price": "20000"}), "VAL_UNIT_PRICE")
        assert evaluation.status is ValidationStatus.FAIL


class TestLogisticsRules:
    def test_gross_weights_disagree(self):
        evaluation = outcome(with_changes(PACKING_LIST={"gross_weight": "1000"}), "LOG_GROSS_WEIGHT")
        assert evaluation.status is ValidationStatus.FAIL
        assert "PACKING_LIST=1000" in evaluation.remarks

    def test_single_weight_is_not_compared(self):
        snapshot = with_changes(PACKING_LIST={"gross_weight": None}, AWB={"gross_weight": None})
        assert outcome(snapshot, "LOG_GROSS_WEIGHT").status is ValidationStatus.PASS

    def test_net_exceeds_gross(self):
        evaluation = outcome(with_changes(PACKING_LIST={"net_weight": "1300"}), "LOG_NET_WEIGHT")
        assert evaluation.status is ValidationStatus.FAIL

    def test_no_packing_list_passes_package_rule(self):
        snapshot = make_snapshot({k: v for k, v in VALID_FIELDS.items() if k is not PACKING_LIST})
        assert outcome(snapshot, "LOG_PACKAGES").status is ValidationStatus.PASS

    def test_zero_packages(self):
        evaluation = outcome(with_changes(PACKING_LIST={"number_of_packages": "0"}), "LOG_PACKAGES")
        assert evaluation.status is ValidationStatus.FAIL


# ── ValidationService tests (need DB) ──


class TestValidationService:
    @pytest.mark.asyncio
    async def test_unknown_entry(self, db_session, field_store):
        with pytest.raises(EntryNotFound):
            await ValidationService(field_store).run(db_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_run_replaces_previous_results(self, db_session, field_store, make_entry):
        entry, docs = await make_entry(GD, INVOICE)
        await field_store.upsert(db_session, docs[GD], "hs_code", "8471300000", 0.92, FieldSource.VISION)
        service = ValidationService(field_store)

        first = await service.run(db_session, entry.id, actor="officer-1", actor_role="CUSTOMS_OFFICER")
        second = await service.run(db_session, entry.id)

        assert len(first) == len(DEFAULT_RULES)
        assert first[0].run_id != second[0].run_id
        count = (
            await db_session.execute(
                select(func.count(ValidationResult.id)).where(ValidationResult.entry_id == entry.id)
            )
        ).scalar_one()
        assert count == len(DEFAULT_RULES)
        assert entry.version == 3

    @pytest.mark.asyncio
    async def test_results_grouped_and_audited(self, db_session, field_store, make_entry):
        entry, _ = await make_entry(GD)
        service = ValidationService(field_store)
        await service.run(db_session, entry.id)

        results = await service.results(db_session, entry.id)
        types = [r.rule_type for r in results]
        assert types == sorted(types, key=lambda t: t.value)

        hs_rule = next(r for r in results if r.rule_id == "REQ_GD_HS_CODE")
        assert hs_rule.status is ValidationStatus.FAIL
        assert hs_rule.severity is Severity.CRITICAL

        event = (await db_session.execute(select(AuditEvent))).scalar_one()
        assert event.action == "VALIDATION_RUN"
        assert "REQ_GD_HS_CODE" in event.event_data["blocking"]
