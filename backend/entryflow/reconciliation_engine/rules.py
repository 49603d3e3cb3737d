"""Confidence-precedence rules — pure functions, no DB dependency, easy to unit test."""

import enum

from entryflow.models.extracted_field import FieldSource

MANUAL_CONFIDENCE = 1.0


class UpsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    KEPT_HIGHER_CONFIDENCE = "kept_higher_confidence"
    KEPT_MANUAL = "kept_manual"


def decide_replacement(
    stored_source: FieldSource,
    stored_confidence: float,
    new_source: FieldSource,
    new_confidence: float,
    *,
    refresh: bool = False,
    overwrite_manual: bool = False,
) -> tuple[bool, UpsertOutcome]:
    """Decide whether an incoming value displaces the stored one.

    - An incoming manual value always wins.
    - A stored manual value is never displaced by an automated one unless the
      caller explicitly confirmed the overwrite.
    - Otherwise the incoming value wins if its confidence is strictly higher,
      or if it comes from a fresh user-requested run (``refresh``) and is not
      a synthetic placeholder aimed at a genuine value.

    Returns (replace, outcome).
    """
    if not new_source.is_automated:
        return True, UpsertOutcome.REPLACED

    if not stored_source.is_automated:
        if overwrite_manual:
            return True, UpsertOutcome.REPLACED
        return False, UpsertOutcome.KEPT_MANUAL

    if new_confidence > stored_confidence:
        return True, UpsertOutcome.REPLACED

    # A placeholder never displaces a genuine extraction, even on refresh
    if refresh and not (new_source is FieldSource.SYNTHETIC and stored_source is not FieldSource.SYNTHETIC):
        return True, UpsertOutcome.REPLACED

    return False, UpsertOutcome.KEPT_HIGHER_CONFIDENCE


def precedence_key(source: FieldSource, confidence: float, updated_at) -> tuple:
    """Sort key picking one winner among records of the same field: manual, then confidence, then recency."""
    return (not source.is_automated, confidence, updated_at)
