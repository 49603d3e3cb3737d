from fastapi import APIRouter

from entryflow.api.v1 import audit, documents, entries, health, tax, validation

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(entries.router, prefix="/v1/entries", tags=["entries"])
api_router.include_router(validation.router, prefix="/v1/entries", tags=["validation"])
api_router.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
api_router.include_router(tax.router, prefix="/v1", tags=["tax"])
api_router.include_router(audit.router, prefix="/v1/audit", tags=["audit"])
