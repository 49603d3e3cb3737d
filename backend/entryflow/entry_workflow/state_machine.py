"""Officer transition table for entries — pure functions, no DB dependency.

    PENDING ──SEND_BACK──▶ FOR_REVIEW
       │  └──PROCEED────▶ VALIDATED ──(tax confirmed)──▶ "COMPLETED" (derived)
       └─────REJECT─────▶ ERROR (terminal)

Every officer action is allowed from PENDING, FOR_REVIEW and VALIDATED
(re-decisions before finalization). PROCEED is the only guarded transition:
it is blocked by any critical validation failure.
"""

import enum

from entryflow.exceptions import InvalidTransition
from entryflow.models.entry import EntryStatus
from entryflow.models.validation import Severity, ValidationStatus

OFFICER_ROLE = "CUSTOMS_OFFICER"
COMPLETED = "COMPLETED"


class OfficerAction(str, enum.Enum):
    SEND_BACK = "SEND_BACK"
    REJECT = "REJECT"
    PROCEED = "PROCEED"


TRANSITIONS: dict[OfficerAction, EntryStatus] = {
    OfficerAction.SEND_BACK: EntryStatus.FOR_REVIEW,
    OfficerAction.REJECT: EntryStatus.ERROR,
    OfficerAction.PROCEED: EntryStatus.VALIDATED,
}

TERMINAL_STATUSES = frozenset({EntryStatus.ERROR})


def remarks_required(action: OfficerAction) -> bool:
    return action in (OfficerAction.SEND_BACK, OfficerAction.REJECT)


def blocking_failures(results) -> list[dict]:
    """Critical failures that block PROCEED. Warnings and info are advisory."""
    blocking = []
    for r in results:
        if r.severity is None:
            continue
        if ValidationStatus(r.status) is ValidationStatus.FAIL and Severity(r.severity) is Severity.CRITICAL:
            blocking.append({"rule_id": r.rule_id, "field_name": r.field_name, "remarks": r.remarks})
    return blocking


def check_transition(
    status: EntryStatus,
    action: OfficerAction,
    *,
    actor_role: str,
    remarks: str | None,
    finalized: bool,
) -> EntryStatus:
    """Return the target status, or raise InvalidTransition naming the failed precondition.

    The PROCEED validation guard is checked separately by the caller, since it
    needs the current result set.
    """
    if actor_role != OFFICER_ROLE:
        raise InvalidTransition(
            f"Only a customs officer may {action.value}",
            precondition="officer_role",
            details={"actor_role": actor_role},
        )

    if remarks_required(action) and not (remarks and remarks.strip()):
        raise InvalidTransition(
            f"Remarks are required for {action.value}",
            precondition="remarks_required",
            details={"action": action.value},
        )

    status = EntryStatus(status)
    if status in TERMINAL_STATUSES or finalized:
        raise InvalidTransition(
            f"Entry is {'finalized' if finalized else status.value}; no further officer actions",
            precondition="terminal_state",
            details={"status": status.value, "is_finalized": finalized},
        )

    return TRANSITIONS[action]


def display_status(status: EntryStatus, finalized: bool) -> str:
    """COMPLETED once tax is confirmed, otherwise the stored status."""
    return COMPLETED if finalized else EntryStatus(status).value
