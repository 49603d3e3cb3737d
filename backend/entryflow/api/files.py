"""Signed retrieval of stored document files (the target of /documents/{id}/link)."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from entryflow.dependencies import get_storage
from entryflow.services.storage import LocalFileStorage, get_mime_type

router = APIRouter()


@router.get("/{path:path}")
async def get_file(
    path: str,
    expires: int,
    signature: str,
    storage: LocalFileStorage = Depends(get_storage),
) -> FileResponse:
    if not storage.verify_signature(path, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired link")
    try:
        full = storage.local_path(path)
    except (ValueError, FileNotFoundError):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(full, media_type=get_mime_type(path))
