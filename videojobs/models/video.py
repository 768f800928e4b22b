from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from videojobs.db.base_class import Base
from videojobs.models.video_job import utcnow


class Video(Base):
    """User-visible metadata for a finished asset. Bytes live on video_jobs.video_buffer."""

    __tablename__ = "videos"

    video_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    job_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("video_jobs.job_id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    format: Mapped[str] = mapped_column(String(16), nullable=False, default="mp4")
    duration_sec: Mapped[float | None] = mapped_column(Float, nullable=True)
    size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", name="uq_videos_job_id"),
        Index("idx_videos_owner_created", "owner_id", "created_at"),
    )
