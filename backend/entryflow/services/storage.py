"""
Blob storage boundary: ``get``, ``put`` and ``signed_url`` over the upload directory.

Documents are addressed by an opaque relative path (``content_ref``); the
core never sees where or how the bytes are kept.
"""

import asyncio
import hashlib
import hmac
import os
import time
from pathlib import Path
from urllib.parse import quote, urlencode

import aiofiles

from entryflow.config import Settings


def get_file_extension(filename: str) -> str:
    """Extract the file extension without the dot, lowercased."""
    _, ext = os.path.splitext(filename)
    return ext.lstrip(".").lower()


def get_mime_type(filename: str) -> str:
    """Map file extension to MIME type."""
    ext = get_file_extension(filename)
    mime_map = {
        "pdf": "application/pdf",
        "png": "image/png",
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
    }
    return mime_map.get(ext, "application/octet-stream")


class LocalFileStorage:
    def __init__(self, settings: Settings):
        self.root = Path(settings.upload_dir)
        self.timeout = settings.storage_timeout_seconds
        self.secret = settings.signed_url_secret.encode("utf-8")
        self.url_base = settings.signed_url_base.rstrip("/")

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if not full.is_relative_to(self.root.resolve()):
            raise ValueError(f"Path escapes storage root: {path}")
        return full

    async def get(self, path: str) -> bytes:
        """Read a blob. Raises FileNotFoundError, or TimeoutError past the storage timeout."""
        full = self._resolve(path)

        async def _read() -> bytes:
            async with aiofiles.open(full, "rb") as f:
                return await f.read()

        return await asyncio.wait_for(_read(), self.timeout)

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """Write a blob and return its path. Existing blobs are never overwritten."""
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        if full.exists():
            raise FileExistsError(f"Blob already exists: {path}")

        async with aiofiles.open(full, "wb") as f:
            await f.write(data)
        return path

    def local_path(self, path: str) -> Path:
        """Filesystem location of a stored blob. Raises FileNotFoundError if absent."""
        full = self._resolve(path)
        if not full.is_file():
            raise FileNotFoundError(f"Blob not found: {path}")
        return full

    def signed_url(self, path: str, ttl: int = 300) -> str:
        """Time-limited retrieval handle for a stored blob."""
        expires = int(time.time()) + ttl
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{self.url_base}/{quote(path)}?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(path, expires), signature)

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()
