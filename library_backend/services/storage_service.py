"""
storage_service.py — Uploaded file storage
Book covers and book PDFs are written under UPLOAD_DIR and served by the app
at /uploads.
"""

import asyncio
import os
import uuid
from pathlib import Path

from library_backend.config import UPLOAD_DIR

PUBLIC_PREFIX = "/uploads"


class FileStorage:
    def __init__(self, root: str = UPLOAD_DIR):
        self.root = Path(root)

    @staticmethod
    def _safe_extension(filename: str) -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        return ext if ext.isascii() and ext[1:].isalnum() else ""

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)

    async def save(self, folder: str, prefix: str, filename: str, data: bytes) -> str:
        """Store ``data`` and return its public URL path."""
        name = f"{prefix}-{uuid.uuid4().hex}{self._safe_extension(filename)}"
        path = self.root / folder / name
        await asyncio.to_thread(self._write, path, data)
        return f"{PUBLIC_PREFIX}/{folder}/{name}"
