from entryflow.schemas.document import DocumentFieldsResponse, DocumentResponse, FieldViewResponse
from entryflow.schemas.entry import EntryDetailResponse, EntryListResponse, EntryResponse
from entryflow.schemas.health import HealthResponse
from entryflow.schemas.tax import TaxComputationResponse

__all__ = [
    "DocumentFieldsResponse",
    "DocumentResponse",
    "EntryDetailResponse",
    "EntryListResponse",
    "EntryResponse",
    "FieldViewResponse",
    "HealthResponse",
    "TaxComputationResponse",
]
