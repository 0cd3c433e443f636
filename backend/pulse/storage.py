# backend/pulse/storage.py
"""Local disk binary store. Files are addressed by generated names only."""
import logging
import os
import random
import re
import time
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
from fastapi import UploadFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB
_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


class FileTooLarge(Exception):
    def __init__(self, limit: int):
        super().__init__(f"File exceeds maximum size of {limit // (1024 * 1024)} MB")
        self.limit = limit


class LocalStorage:
    def __init__(self, base_dir):
        self.base = Path(base_dir)

    def ensure_dirs(self) -> None:
        self.base.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_name(original_name: Optional[str]) -> str:
        """`<epoch ms>-<random><ext>`; only the extension survives from the client name."""
        ext = Path(original_name or "").suffix.lower()
        if not _SAFE_EXTENSION.match(ext):
            ext = ""
        return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"

    def path(self, name: str) -> Path:
        # generated names never contain separators; refuse anything that does
        if not name or name != os.path.basename(name) or name in (".", ".."):
            raise ValueError(f"invalid storage name: {name!r}")
        return self.base / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def size(self, name: str) -> int:
        return self.path(name).stat().st_size

    def delete(self, name: str) -> bool:
        path = self.path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    async def save_upload(self, upload_file: UploadFile, name: str, max_bytes: int) -> int:
        """Copy the upload to disk in chunks; returns the byte count.

        Raises FileTooLarge (and removes the partial file) once more than
        max_bytes have been read.
        """
        destination = self.path(name)
        size = 0
        try:
            async with aiofiles.open(destination, "wb") as out_file:
                while True:
                    chunk = await upload_file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_bytes:
                        raise FileTooLarge(max_bytes)
                    await out_file.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        finally:
            await upload_file.close()
        logger.info("stored %s (%d bytes)", name, size)
        return size

    async def iter_range(
        self, name: str, start: int, end: int, chunk_size: int = CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield bytes start..end inclusive."""
        remaining = end - start + 1
        async with aiofiles.open(self.path(name), "rb") as in_file:
            await in_file.seek(start)
            while remaining > 0:
                chunk = await in_file.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
