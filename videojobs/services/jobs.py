from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import exists, func, select, update
from sqlalchemy.orm import Session

from videojobs.models.video import Video
from videojobs.models.video_job import TERMINAL_STATUSES, JobStatus, VideoJob, utcnow


class JobNotFound(Exception):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only copy of the fields the poller needs; detached from any session."""

    job_id: str
    external_job_id: str | None
    status: JobStatus
    progress: int
    webhook_url: str | None
    owner_id: str
    created_at: datetime | None
    last_checked_at: datetime | None

    @classmethod
    def from_row(cls, job: VideoJob) -> "JobSnapshot":
        return cls(
            job_id=job.job_id,
            external_job_id=job.external_job_id,
            status=JobStatus.parse(job.status),
            progress=int(job.progress or 0),
            webhook_url=job.webhook_url or None,
            owner_id=job.owner_id,
            created_at=job.created_at,
            last_checked_at=job.last_checked_at,
        )


def clamp_progress(progress: Any) -> int:
    try:
        value = int(progress or 0)
    except (TypeError, ValueError):
        value = 0
    return max(0, min(100, value))


def create_job(
    db: Session,
    *,
    owner_id: str,
    external_job_id: str | None = None,
    webhook_url: str | None = None,
    job_id: str | None = None,
) -> VideoJob:
    job = VideoJob(
        owner_id=owner_id,
        external_job_id=external_job_id,
        webhook_url=webhook_url or None,
        status=JobStatus.QUEUED.value,
        progress=0,
    )
    if job_id:
        job.job_id = job_id
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def find_job(db: Session, job_id: str) -> VideoJob | None:
    return db.query(VideoJob).filter(VideoJob.job_id == job_id).first()


def get_job(db: Session, job_id: str) -> VideoJob:
    job = find_job(db, job_id)
    if job is None:
        raise JobNotFound(job_id)
    return job


def register_external_job(db: Session, job_id: str, external_job_id: str, webhook_url: str | None = None) -> VideoJob:
    """
    Attach a new external job id to an existing job so the poller picks it up.

    The job starts over: queued/0, a fresh polling horizon, and no asset from
    the previous external job (its `videos` row and stored bytes are removed).
    """
    job = get_job(db, job_id)
    db.query(Video).filter(Video.job_id == job_id).delete(synchronize_session=False)

    now = utcnow()
    job.external_job_id = external_job_id
    job.webhook_url = webhook_url or None
    job.status = JobStatus.QUEUED.value
    job.progress = 0
    job.error = None
    job.video_buffer = None
    job.video_size = None
    job.buffer_downloaded_at = None
    job.created_at = now
    job.last_checked_at = None
    db.commit()
    db.refresh(job)
    return job


def get_eligible_jobs(db: Session, *, now: datetime, max_age: timedelta, limit: int) -> list[JobSnapshot]:
    """
    Registered, non-terminal jobs younger than max_age.
    Never-checked and longest-stale jobs come first.
    """
    rows = (
        db.query(VideoJob)
        .filter(
            VideoJob.external_job_id.is_not(None),
            VideoJob.status.not_in(TERMINAL_STATUSES),
            VideoJob.created_at > now - max_age,
        )
        .order_by(VideoJob.last_checked_at.asc().nulls_first(), VideoJob.created_at.asc())
        .limit(limit)
        .all()
    )
    return [JobSnapshot.from_row(r) for r in rows]


def record_poll(
    db: Session,
    job_id: str,
    *,
    status: JobStatus,
    progress: int,
    checked_at: datetime | None = None,
) -> bool:
    """
    Persist a freshly observed status.

    The write only applies while the stored status is still non-terminal, so
    an earlier observation can never overwrite a terminal one and a terminal
    transition is applied exactly once. Returns whether the row was updated.
    """
    checked_at = checked_at or utcnow()
    values: dict[str, Any] = {
        "status": status.value,
        "progress": clamp_progress(progress),
        "last_checked_at": checked_at,
        "updated_at": checked_at,
    }
    result = db.execute(
        update(VideoJob)
        .where(VideoJob.job_id == job_id, VideoJob.status.not_in(TERMINAL_STATUSES))
        .values(**values)
    )
    db.commit()
    return bool(result.rowcount)


def touch_checked(db: Session, job_id: str, checked_at: datetime | None = None) -> None:
    db.execute(update(VideoJob).where(VideoJob.job_id == job_id).values(last_checked_at=checked_at or utcnow()))
    db.commit()


def set_job_error(db: Session, job_id: str, error: str) -> VideoJob:
    job = get_job(db, job_id)
    job.error = error
    db.commit()
    db.refresh(job)
    return job


def save_video_buffer(db: Session, job_id: str, data: bytes) -> None:
    """Overwrite the stored asset bytes for a job. Safe to repeat."""
    now = utcnow()
    result = db.execute(
        update(VideoJob)
        .where(VideoJob.job_id == job_id)
        .values(video_buffer=data, video_size=len(data), buffer_downloaded_at=now, updated_at=now)
    )
    db.commit()
    if not result.rowcount:
        raise JobNotFound(job_id)


def get_video_for_job(db: Session, job_id: str) -> Video | None:
    return db.query(Video).filter(Video.job_id == job_id).first()


def create_video_record(
    db: Session,
    *,
    job_id: str,
    owner_id: str,
    size_bytes: int | None,
    duration_sec: float | None = None,
    fmt: str = "mp4",
) -> Video:
    video = Video(
        job_id=job_id,
        owner_id=owner_id,
        size_bytes=size_bytes,
        duration_sec=duration_sec,
        format=fmt,
    )
    db.add(video)
    db.commit()
    db.refresh(video)
    return video


def get_polling_stats(db: Session) -> dict[str, int]:
    """Counts over every job that has an external id, regardless of age."""
    tracked = VideoJob.external_job_id.is_not(None)

    counts = {s.value: 0 for s in JobStatus}
    rows = db.execute(select(VideoJob.status, func.count()).where(tracked).group_by(VideoJob.status)).all()
    total = 0
    for status, count in rows:
        total += int(count)
        if status in counts:
            counts[status] += int(count)

    without_asset = db.execute(
        select(func.count())
        .select_from(VideoJob)
        .where(
            tracked,
            VideoJob.status == JobStatus.COMPLETED.value,
            ~exists().where(Video.job_id == VideoJob.job_id),
        )
    ).scalar_one()

    return {
        "total": total,
        **counts,
        "completed_without_asset": int(without_asset or 0),
    }
