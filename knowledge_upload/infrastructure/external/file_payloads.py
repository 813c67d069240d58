"""File-backed payloads"""

import logging
import mimetypes
import os
import uuid
from typing import Optional

import aiofiles
from fastapi import UploadFile

from ...domain.entities.payload import FilePayload

logger = logging.getLogger(__name__)

COPY_SLICE_BYTES = 1024 * 1024


class LocalFilePayload(FilePayload):
    """Payload read lazily from a file on disk"""

    def __init__(self, path: str, name: Optional[str] = None, content_type: Optional[str] = None):
        self.path = path
        self._name = name or os.path.basename(path)
        self._content_type = content_type or mimetypes.guess_type(self._name)[0] or "application/octet-stream"
        self._size = os.path.getsize(path)

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._size

    @property
    def content_type(self) -> str:
        return self._content_type

    async def read(self, offset: int = 0, length: int = -1) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            await f.seek(offset)
            return await f.read(length)

    def discard(self) -> None:
        """Delete the backing file if it still exists"""
        if os.path.exists(self.path):
            os.remove(self.path)


async def save_upload_file(upload: UploadFile, spool_dir: str) -> LocalFilePayload:
    """Copy a request upload to the spool directory so it outlives the request."""
    os.makedirs(spool_dir, exist_ok=True)
    filename = upload.filename or "upload"
    file_path = os.path.join(spool_dir, f"{uuid.uuid4().hex}_{os.path.basename(filename)}")

    try:
        async with aiofiles.open(file_path, "wb") as f:
            while True:
                data = await upload.read(COPY_SLICE_BYTES)
                if not data:
                    break
                await f.write(data)
    except OSError:
        if os.path.exists(file_path):
            os.remove(file_path)
        raise

    logger.debug(f"Spooled {filename} to {file_path}")
    return LocalFilePayload(file_path, name=filename, content_type=upload.content_type)
