import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.config import settings
from entryflow.dependencies import get_db, get_storage
from entryflow.schemas.health import HealthResponse
from entryflow.services.storage import LocalFileStorage

router = APIRouter()

VERSION = "0.1.0"


def _storage_status(storage: LocalFileStorage) -> str:
    # The root is created on first upload
    if not storage.root.exists():
        return "empty"
    return "healthy" if os.access(storage.root, os.W_OK) else "read_only"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
) -> HealthResponse:
    """Liveness plus the state of each dependency the entry pipeline relies on."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        db_status = "unhealthy"

    storage_status = _storage_status(storage)

    # Without a key, extraction degrades to the text layer and synthetic defaults
    vision_status = "configured" if settings.anthropic_api_key else "text_layer_only"

    healthy = db_status == "healthy" and storage_status != "read_only"
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        database=db_status,
        storage=storage_status,
        vision=vision_status,
        broker_edit_policy=settings.broker_edit_policy,
        timestamp=datetime.now(timezone.utc),
        environment=settings.environment,
        version=VERSION,
    )
