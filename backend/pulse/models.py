# backend/pulse/models.py
import json
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes stored as naive UTC.

    SQLite has no timezone support, so values are converted to UTC on the way
    in and tagged as UTC on the way out. Naive input is taken to be UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return uuid4().hex


class Role(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class VideoStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SensitivityStatus(str, Enum):
    PENDING = "pending"
    SAFE = "safe"
    FLAGGED = "flagged"


TERMINAL_STATUSES = frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED})


class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True, nullable=False)
    email: str = Field(index=True, unique=True, nullable=False)
    password_hash: str = Field(nullable=False)
    name: str = Field(nullable=False)
    tenant_id: str = Field(index=True, nullable=False)
    role: Role = Field(default=Role.VIEWER, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Video(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True, nullable=False)
    owner_id: str = Field(foreign_key="user.id", index=True, nullable=False)
    tenant_id: str = Field(index=True, nullable=False)
    original_name: str = Field(nullable=False)
    storage_name: str = Field(nullable=False)  # generated, never derived from original_name
    mime_type: str = Field(nullable=False)
    size_bytes: int = Field(nullable=False)
    status: VideoStatus = Field(default=VideoStatus.UPLOADED, nullable=False)
    sensitivity_status: SensitivityStatus = Field(default=SensitivityStatus.PENDING, nullable=False)
    progress: int = Field(default=0, nullable=False)  # 0 - 100
    duration_seconds: Optional[int] = Field(default=None)
    categories: str = Field(default="[]")  # store JSON string
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    def category_list(self) -> List[str]:
        try:
            value = json.loads(self.categories) if self.categories else []
        except ValueError:
            return []
        return [str(item) for item in value] if isinstance(value, list) else []


# Fields the processing pipeline may change after creation.
MUTABLE_VIDEO_FIELDS = frozenset({"status", "sensitivity_status", "progress", "duration_seconds"})


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "tenantId": user.tenant_id,
        "role": Role(user.role).value,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def serialize_video(video: Video, owner: Optional[User] = None) -> dict:
    """Public representation of a video; the storage location is never exposed."""
    if owner is not None:
        owner_repr = {"id": owner.id, "name": owner.name, "email": owner.email}
    else:
        owner_repr = video.owner_id
    return {
        "id": video.id,
        "owner": owner_repr,
        "tenantId": video.tenant_id,
        "originalFileName": video.original_name,
        "mimeType": video.mime_type,
        "sizeBytes": video.size_bytes,
        "status": VideoStatus(video.status).value,
        "sensitivityStatus": SensitivityStatus(video.sensitivity_status).value,
        "processingProgress": video.progress,
        "durationSeconds": video.duration_seconds,
        "categories": video.category_list(),
        "notes": video.notes,
        "createdAt": video.created_at.isoformat() if video.created_at else None,
        "updatedAt": video.updated_at.isoformat() if video.updated_at else None,
    }
