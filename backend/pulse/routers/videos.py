# backend/pulse/routers/videos.py
import asyncio
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, Response, UploadFile

from ..auth import Principal, get_principal, require_role
from ..ingest import UploadRejected, ingest_upload, parse_categories
from ..models import Role, SensitivityStatus, VideoStatus, serialize_video
from ..repository import VideoFilters
from ..streaming import stream_video

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post("", status_code=201)
async def upload_video(
    request: Request,
    video: Optional[UploadFile] = File(default=None),
    categories: Optional[str] = Form(default=None),
    notes: Optional[str] = Form(default=None),
    principal: Principal = Depends(require_role(Role.EDITOR, Role.ADMIN)),
):
    """
    Accept:
      - multipart field 'video' -> the video file
      - form fields 'categories' (comma separated) and 'notes' (optional)
    Returns the created video; processing continues in the background.
    """
    state = request.app.state
    try:
        created = await ingest_upload(
            video,
            principal=principal,
            storage=state.storage,
            repository=state.videos,
            scheduler=state.scheduler,
            max_bytes=state.settings.max_upload_bytes,
            categories=parse_categories(categories),
            notes=notes,
        )
    except UploadRejected as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return {"video": serialize_video(created)}


@router.get("")
def list_videos(
    request: Request,
    status: Optional[VideoStatus] = None,
    sensitivityStatus: Optional[SensitivityStatus] = None,
    search: Optional[str] = None,
    minSize: Optional[int] = None,
    maxSize: Optional[int] = None,
    dateFrom: Optional[date] = None,
    dateTo: Optional[date] = None,
    principal: Principal = Depends(get_principal),
):
    filters = VideoFilters(
        status=status,
        sensitivity_status=sensitivityStatus,
        search=search,
        min_size=minSize,
        max_size=maxSize,
        date_from=dateFrom,
        date_to=dateTo,
    )
    rows = request.app.state.videos.list_for_tenant(principal.tenant_id, filters)
    return {"videos": [serialize_video(video, owner) for video, owner in rows]}


@router.get("/{video_id}")
def get_video(video_id: str, request: Request, principal: Principal = Depends(get_principal)):
    video = request.app.state.videos.get(video_id, principal.tenant_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return {"video": serialize_video(video)}


@router.get("/{video_id}/stream")
async def stream(video_id: str, request: Request, principal: Principal = Depends(get_principal)):
    state = request.app.state
    video = await asyncio.to_thread(state.videos.get, video_id, principal.tenant_id)
    # other tenants get the same 404 as a missing id
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    if not state.storage.exists(video.storage_name):
        raise HTTPException(status_code=404, detail="Video file not found")
    return stream_video(state.storage, video.storage_name, video.mime_type, request.headers.get("range"))


@router.delete("/{video_id}", status_code=204)
def delete_video(
    video_id: str,
    request: Request,
    principal: Principal = Depends(require_role(Role.EDITOR, Role.ADMIN)),
):
    state = request.app.state
    video = state.videos.get(video_id, principal.tenant_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")

    # editors can only delete their own videos; admins any in the tenant
    if principal.role != Role.ADMIN and video.owner_id != principal.id:
        raise HTTPException(status_code=403, detail="You are not allowed to delete this video")

    try:
        state.storage.delete(video.storage_name)
    except OSError:
        logger.warning("failed to delete file for video %s", video_id, exc_info=True)

    state.videos.delete(video_id, principal.tenant_id)
    return Response(status_code=204)


@router.post("/{video_id}/subscribe")
def subscribe(
    video_id: str,
    request: Request,
    connectionId: Optional[str] = Body(default=None, embed=True),
    principal: Principal = Depends(get_principal),
):
    """Join a realtime connection (see /ws) to this video's progress channel."""
    if not connectionId:
        raise HTTPException(status_code=400, detail="connectionId required")
    state = request.app.state
    if not state.videos.get(video_id, principal.tenant_id):
        raise HTTPException(status_code=404, detail="Video not found")
    state.hub.subscribe(connectionId, video_id)
    return {"ok": True}
