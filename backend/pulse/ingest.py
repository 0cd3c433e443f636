# backend/pulse/ingest.py
import asyncio
import json
import logging
from typing import Iterable, List, Optional

from fastapi import UploadFile

from .auth import Principal
from .models import SensitivityStatus, Video, VideoStatus
from .repository import VideoRepository
from .storage import FileTooLarge, LocalStorage
from .worker import ProcessingScheduler

logger = logging.getLogger(__name__)


class UploadRejected(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def parse_categories(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


async def ingest_upload(
    upload_file: Optional[UploadFile],
    *,
    principal: Principal,
    storage: LocalStorage,
    repository: VideoRepository,
    scheduler: ProcessingScheduler,
    max_bytes: int,
    categories: Iterable[str] = (),
    notes: Optional[str] = None,
) -> Video:
    """Validate and store an upload, create its record and start processing.

    Returns as soon as the record exists; processing runs detached.
    """
    if upload_file is None or not upload_file.filename:
        raise UploadRejected(400, "Video file is required")

    mime_type = (upload_file.content_type or "").lower()
    if not mime_type.startswith("video/"):
        await upload_file.close()
        raise UploadRejected(400, "Only video files are allowed")

    storage_name = storage.generate_name(upload_file.filename)
    try:
        size = await storage.save_upload(upload_file, storage_name, max_bytes)
    except FileTooLarge as exc:
        raise UploadRejected(413, str(exc))

    video = Video(
        owner_id=principal.id,
        tenant_id=principal.tenant_id,
        original_name=upload_file.filename,
        storage_name=storage_name,
        mime_type=mime_type,
        size_bytes=size,
        status=VideoStatus.PROCESSING,
        sensitivity_status=SensitivityStatus.PENDING,
        progress=0,
        categories=json.dumps(list(categories)),
        notes=notes,
    )
    try:
        video = await asyncio.to_thread(repository.create, video)
    except Exception:
        storage.delete(storage_name)
        raise

    logger.info("accepted upload %s from %s (tenant %s)", video.id, principal.id, principal.tenant_id)
    scheduler.schedule(video)
    return video
