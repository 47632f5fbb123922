# app/integrations/uploads.py
"""Blob storage for uploaded files"""
import asyncio
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger

from app.core.config import settings


@dataclass
class StoredFile:
    url: str
    content_type: str
    size: int


class UploadSink(Protocol):
    async def store(self, file_name: str, content_type: str, data: bytes) -> StoredFile:
        ...


class LocalUploadSink:
    """Stores files under a directory and serves them from a base URL"""

    def __init__(self, directory: str = settings.UPLOAD_DIR, base_url: str = settings.UPLOAD_BASE_URL):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    async def store(self, file_name: str, content_type: str, data: bytes) -> StoredFile:
        extension = os.path.splitext(file_name)[1].lower()
        stored_name = f"{uuid.uuid4().hex}{extension}"
        target = self.directory / stored_name

        await asyncio.to_thread(self._write, target, data)
        logger.info(f"Stored upload {file_name} as {stored_name} ({len(data)} bytes)")

        return StoredFile(url=f"{self.base_url}/{stored_name}", content_type=content_type, size=len(data))

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
