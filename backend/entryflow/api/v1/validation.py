"""Validation endpoints — run the rule set for an entry and read the current results."""

import uuid
from collections import defaultdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.dependencies import Actor, get_actor, get_db, get_validation_service, get_workflow_service
from entryflow.entry_workflow.service import EntryWorkflowService
from entryflow.entry_workflow.state_machine import blocking_failures
from entryflow.models.validation import ValidationResult
from entryflow.schemas.validation import ValidationResultResponse, ValidationResultsResponse
from entryflow.validation.service import ValidationService

router = APIRouter()


@router.post("/{entry_id}/validate", response_model=ValidationResultsResponse)
async def run_validation(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    validation: ValidationService = Depends(get_validation_service),
    actor: Actor = Depends(get_actor),
) -> ValidationResultsResponse:
    results = await validation.run(db, entry_id, actor=actor.id, actor_role=actor.role)
    return _results_to_response(entry_id, results)


@router.get("/{entry_id}/validation", response_model=ValidationResultsResponse)
async def get_validation(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    validation: ValidationService = Depends(get_validation_service),
    workflow: EntryWorkflowService = Depends(get_workflow_service),
) -> ValidationResultsResponse:
    """Current result set, grouped by rule type for the officer view."""
    await workflow.get_entry(db, entry_id)
    results = await validation.results(db, entry_id)
    return _results_to_response(entry_id, results)


def _result_to_response(result: ValidationResult) -> ValidationResultResponse:
    return ValidationResultResponse(
        rule_id=result.rule_id,
        rule_type=result.rule_type.value,
        status=result.status.value,
        severity=result.severity.value if result.severity else None,
        field_name=result.field_name,
        expected_behavior=result.expected_behavior,
        remarks=result.remarks,
        evaluated_at=result.evaluated_at,
    )


def _results_to_response(entry_id: uuid.UUID, results: list[ValidationResult]) -> ValidationResultsResponse:
    items = [_result_to_response(r) for r in results]
    grouped: dict[str, list[ValidationResultResponse]] = defaultdict(list)
    for item in items:
        grouped[item.rule_type].append(item)

    blocking = [b["rule_id"] for b in blocking_failures(results)]
    return ValidationResultsResponse(
        entry_id=entry_id,
        run_id=results[0].run_id if results else None,
        can_proceed=not blocking,
        blocking=blocking,
        results=items,
        by_rule_type=dict(grouped),
    )
