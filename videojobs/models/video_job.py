from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from videojobs.db.base_class import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnknownStatusError(ValueError):
    """Raised when the external API reports a status outside the known vocabulary."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown job status: {value!r}")


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @classmethod
    def parse(cls, value: str | None) -> "JobStatus":
        """
        Map a raw status string onto the closed vocabulary.

        The external API spells the running state "in_progress"; it is
        stored as "processing".
        """
        raw = (value or "").strip().lower()
        if raw == "in_progress":
            return cls.PROCESSING
        try:
            return cls(raw)
        except ValueError:
            raise UnknownStatusError(value) from None


TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


class VideoJob(Base):
    __tablename__ = "video_jobs"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # assigned by the external service once it accepts the job
    external_job_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=JobStatus.QUEUED.value, index=True)  # queued|processing|completed|failed
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # finished asset bytes, overwritten by job id
    video_buffer: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True, deferred=True)
    video_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    buffer_downloaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_video_jobs_last_checked", "last_checked_at"),
    )
