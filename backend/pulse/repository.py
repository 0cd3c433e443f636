# backend/pulse/repository.py
"""Tenant-scoped persistence for users and videos.

Every read and write takes the tenant id as a required argument; there is no
way to load or mutate a video without naming the tenant it belongs to.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from .models import (
    MUTABLE_VIDEO_FIELDS,
    TERMINAL_STATUSES,
    Role,
    SensitivityStatus,
    User,
    Video,
    VideoStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class VideoFilters:
    status: Optional[VideoStatus] = None
    sensitivity_status: Optional[SensitivityStatus] = None
    search: Optional[str] = None
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None  # inclusive: the whole day is matched


class VideoRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, video: Video) -> Video:
        with Session(self.engine) as session:
            session.add(video)
            session.commit()
            session.refresh(video)
            return video

    def get(self, video_id: str, tenant_id: str) -> Optional[Video]:
        with Session(self.engine) as session:
            stmt = select(Video).where(Video.id == video_id, Video.tenant_id == tenant_id)
            return session.exec(stmt).first()

    def list_for_tenant(
        self, tenant_id: str, filters: Optional[VideoFilters] = None
    ) -> List[Tuple[Video, Optional[User]]]:
        filters = filters or VideoFilters()
        stmt = (
            select(Video, User)
            .join(User, col(Video.owner_id) == col(User.id), isouter=True)
            .where(Video.tenant_id == tenant_id)
        )
        if filters.status is not None:
            stmt = stmt.where(Video.status == filters.status)
        if filters.sensitivity_status is not None:
            stmt = stmt.where(Video.sensitivity_status == filters.sensitivity_status)
        if filters.search:
            stmt = stmt.where(col(Video.original_name).icontains(filters.search, autoescape=True))
        if filters.min_size is not None:
            stmt = stmt.where(Video.size_bytes >= filters.min_size)
        if filters.max_size is not None:
            stmt = stmt.where(Video.size_bytes <= filters.max_size)
        if filters.date_from is not None:
            start = datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc)
            stmt = stmt.where(Video.created_at >= start)
        if filters.date_to is not None:
            end = datetime.combine(filters.date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            stmt = stmt.where(Video.created_at < end)
        stmt = stmt.order_by(col(Video.created_at).desc())

        with Session(self.engine) as session:
            return [(video, owner) for video, owner in session.exec(stmt).all()]

    def update_fields(self, video_id: str, tenant_id: str, **fields) -> Optional[Video]:
        """Apply a partial update to a video that is still being processed.

        Returns None when the video does not exist in the tenant or has
        already reached a terminal status.
        """
        unknown = set(fields) - MUTABLE_VIDEO_FIELDS
        if unknown:
            raise ValueError(f"immutable video fields: {', '.join(sorted(unknown))}")

        with Session(self.engine) as session:
            stmt = select(Video).where(Video.id == video_id, Video.tenant_id == tenant_id)
            video = session.exec(stmt).first()
            if video is None or video.status in TERMINAL_STATUSES:
                return None
            for key, value in fields.items():
                setattr(video, key, value)
            video.updated_at = utcnow()
            session.add(video)
            session.commit()
            session.refresh(video)
            return video

    def delete(self, video_id: str, tenant_id: str) -> bool:
        with Session(self.engine) as session:
            stmt = select(Video).where(Video.id == video_id, Video.tenant_id == tenant_id)
            video = session.exec(stmt).first()
            if video is None:
                return False
            session.delete(video)
            session.commit()
            return True


class UserRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, user: User) -> User:
        with Session(self.engine) as session:
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def get(self, user_id: str) -> Optional[User]:
        with Session(self.engine) as session:
            return session.get(User, user_id)

    def get_in_tenant(self, user_id: str, tenant_id: str) -> Optional[User]:
        with Session(self.engine) as session:
            stmt = select(User).where(User.id == user_id, User.tenant_id == tenant_id)
            return session.exec(stmt).first()

    def get_by_email(self, email: str) -> Optional[User]:
        with Session(self.engine) as session:
            return session.exec(select(User).where(User.email == email)).first()

    def list_for_tenant(self, tenant_id: str) -> List[User]:
        with Session(self.engine) as session:
            stmt = select(User).where(User.tenant_id == tenant_id).order_by(col(User.created_at))
            return list(session.exec(stmt).all())

    def count_admins(self, tenant_id: str) -> int:
        with Session(self.engine) as session:
            stmt = (
                select(func.count())
                .select_from(User)
                .where(User.tenant_id == tenant_id, User.role == Role.ADMIN)
            )
            return session.exec(stmt).one()

    def update_role(self, user_id: str, tenant_id: str, role: Role) -> Optional[User]:
        with Session(self.engine) as session:
            stmt = select(User).where(User.id == user_id, User.tenant_id == tenant_id)
            user = session.exec(stmt).first()
            if user is None:
                return None
            user.role = role
            user.updated_at = utcnow()
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("user %s role set to %s", user_id, role.value)
            return user

    def delete(self, user_id: str, tenant_id: str) -> bool:
        with Session(self.engine) as session:
            stmt = select(User).where(User.id == user_id, User.tenant_id == tenant_id)
            user = session.exec(stmt).first()
            if user is None:
                return False
            session.delete(user)
            session.commit()
            return True
