from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from videojobs.db.session import get_db
from videojobs.services.jobs import find_job, get_polling_stats, get_video_for_job

router = APIRouter(tags=["status"])


class JobStatusResponse(BaseModel):
    ok: bool
    job_id: str
    external_job_id: str | None
    status: str
    progress: int
    error: str | None
    video_id: str | None
    has_asset: bool
    created_at: str | None
    last_checked_at: str | None


@router.get("/status/{job_id}", response_model=JobStatusResponse)
def get_status(job_id: str, db: Session = Depends(get_db)) -> JobStatusResponse:
    """
    Persisted view of a job. Always available; at most one poll cycle stale.
    Clients that missed the webhook or the WebSocket event fall back to this.
    """
    job = find_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    video = get_video_for_job(db, job_id)
    return JobStatusResponse(
        ok=True,
        job_id=job.job_id,
        external_job_id=job.external_job_id,
        status=job.status,
        progress=job.progress,
        error=job.error,
        video_id=video.video_id if video else None,
        has_asset=video is not None,
        created_at=job.created_at.isoformat() if job.created_at else None,
        last_checked_at=job.last_checked_at.isoformat() if job.last_checked_at else None,
    )


class StatsResponse(BaseModel):
    ok: bool
    total: int
    queued: int
    processing: int
    completed: int
    failed: int
    completed_without_asset: int
    poller_running: bool


@router.get("/stats", response_model=StatsResponse)
def get_stats(request: Request, db: Session = Depends(get_db)) -> StatsResponse:
    stats = get_polling_stats(db)
    poller = getattr(request.app.state, "poller", None)
    return StatsResponse(ok=True, poller_running=bool(poller and poller.is_running), **stats)
