"""Rule definitions and the evaluator — pure functions, no DB dependency, easy to unit test.

A rule is data plus a predicate: (rule_id, rule_type, expected_behavior,
severity, predicate). Severity belongs to the rule, never to the outcome.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from entryflow.models.validation import RuleType, Severity, ValidationStatus
from entryflow.reconciliation_engine.snapshot import EntryFieldSnapshot

logger = logging.getLogger("entryflow.validation")


@dataclass(frozen=True)
class RuleCheck:
    passed: bool
    remarks: str | None = None
    field_name: str | None = None


@dataclass(frozen=True)
class RuleDefinition:
    rule_id: str
    rule_type: RuleType
    expected_behavior: str
    severity: Severity
    predicate: Callable[[EntryFieldSnapshot], RuleCheck]


@dataclass(frozen=True)
class RuleEvaluation:
    rule_id: str
    rule_type: RuleType
    status: ValidationStatus
    severity: Severity | None
    expected_behavior: str
    field_name: str | None = None
    remarks: str | None = None

    @property
    def is_blocking(self) -> bool:
        return self.status is ValidationStatus.FAIL and self.severity is Severity.CRITICAL


def evaluate_rules(snapshot: EntryFieldSnapshot, rules: list[RuleDefinition]) -> list[RuleEvaluation]:
    """Evaluate every rule against the snapshot. Always returns one result per rule.

    A predicate that raises counts as a failed check at the rule's severity.
    """
    evaluations: list[RuleEvaluation] = []
    for rule in rules:
        try:
            check = rule.predicate(snapshot)
        except Exception as e:
            logger.warning("Rule %s raised during evaluation: %r", rule.rule_id, e)
            check = RuleCheck(False, f"Rule could not be evaluated: {e}")

        evaluations.append(
            RuleEvaluation(
                rule_id=rule.rule_id,
                rule_type=rule.rule_type,
                status=ValidationStatus.PASS if check.passed else ValidationStatus.FAIL,
                severity=rule.severity,
                expected_behavior=rule.expected_behavior,
                field_name=check.field_name,
                remarks=check.remarks,
            )
        )
    return evaluations
