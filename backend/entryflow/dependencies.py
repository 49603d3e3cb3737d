from dataclasses import dataclass
from functools import lru_cache

from fastapi import Header

from entryflow.config import settings
from entryflow.database import get_db
from entryflow.document_extractor.batch import ExtractionBatchRunner
from entryflow.document_extractor.pipeline import ExtractionChain
from entryflow.entry_workflow.service import EntryWorkflowService
from entryflow.reconciliation_engine.service import FieldStore
from entryflow.services.intake_service import IntakeService
from entryflow.services.rate_provider import RateProvider
from entryflow.services.storage import LocalFileStorage
from entryflow.tax_engine.service import TaxComputationService
from entryflow.validation.service import ValidationService

# Re-export get_db for use in Depends()
get_db = get_db


@dataclass(frozen=True)
class Actor:
    id: str | None
    role: str


def get_actor(
    x_actor_id: str | None = Header(None),
    x_actor_role: str = Header("BROKER"),
) -> Actor:
    """Caller identity as asserted by the upstream auth layer."""
    return Actor(id=x_actor_id, role=x_actor_role.upper())


def get_storage() -> LocalFileStorage:
    return LocalFileStorage(settings)


def get_field_store() -> FieldStore:
    return FieldStore(settings)


def get_batch_runner() -> ExtractionBatchRunner:
    return ExtractionBatchRunner(
        ExtractionChain.from_settings(settings),
        get_storage(),
        get_field_store(),
        max_concurrency=settings.extraction_max_concurrency,
        storage_timeout=settings.storage_timeout_seconds,
    )


def get_workflow_service() -> EntryWorkflowService:
    return EntryWorkflowService()


def get_validation_service() -> ValidationService:
    return ValidationService(get_field_store())


# One instance per process so the FX cache survives across requests
@lru_cache
def get_rate_provider() -> RateProvider:
    return RateProvider(settings)


def get_tax_service() -> TaxComputationService:
    return TaxComputationService(settings, get_field_store(), get_rate_provider())


def get_intake_service() -> IntakeService:
    return IntakeService(settings, get_storage())
