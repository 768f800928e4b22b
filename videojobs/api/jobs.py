from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from videojobs.api.deps import get_poller
from videojobs.db.session import get_db
from videojobs.models.video_job import JobStatus, UnknownStatusError
from videojobs.services.jobs import JobSnapshot, create_job, find_job, register_external_job
from videojobs.services.poller import JobPoller

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobRegisterRequest(BaseModel):
    external_job_id: str
    owner_id: str
    webhook_url: str | None = None
    job_id: str | None = None


class JobRegisterResponse(BaseModel):
    ok: bool
    job_id: str
    external_job_id: str
    status: str
    webhook_enabled: bool


@router.post("", response_model=JobRegisterResponse)
def register_job(req: JobRegisterRequest, db: Session = Depends(get_db)) -> JobRegisterResponse:
    """
    Start tracking an external job. The next poll cycle picks it up.
    Passing an existing job_id re-registers that job.
    """
    external_job_id = (req.external_job_id or "").strip()
    owner_id = (req.owner_id or "").strip()
    if not external_job_id or not owner_id:
        raise HTTPException(status_code=400, detail="external_job_id and owner_id are required")

    webhook_url = (req.webhook_url or "").strip() or None
    if webhook_url and not webhook_url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="webhook_url must be an http(s) URL")

    existing = find_job(db, req.job_id) if req.job_id else None
    if existing:
        job = register_external_job(db, existing.job_id, external_job_id, webhook_url)
    else:
        job = create_job(
            db,
            owner_id=owner_id,
            external_job_id=external_job_id,
            webhook_url=webhook_url,
            job_id=req.job_id,
        )

    return JobRegisterResponse(
        ok=True,
        job_id=job.job_id,
        external_job_id=job.external_job_id,
        status=job.status,
        webhook_enabled=bool(job.webhook_url),
    )


class PollResponse(BaseModel):
    ok: bool
    job_id: str
    change: str
    status: str | None
    progress: int | None
    video_id: str | None = None
    error: str | None = None


def _load_snapshot(db: Session, job_id: str) -> JobSnapshot:
    job = find_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if not job.external_job_id:
        raise HTTPException(status_code=409, detail="Job has no external job id")
    return JobSnapshot.from_row(job)


@router.post("/{job_id}/poll", response_model=PollResponse)
def force_poll(job_id: str, db: Session = Depends(get_db), poller: JobPoller = Depends(get_poller)) -> PollResponse:
    """Poll one job right now through the same pipeline the scheduler uses."""
    snapshot = _load_snapshot(db, job_id)
    if snapshot.status.is_terminal:
        raise HTTPException(status_code=409, detail=f"Job already {snapshot.status.value}")

    try:
        outcome = poller.poll_job(snapshot)
    except UnknownStatusError as e:
        return PollResponse(ok=False, job_id=job_id, change="unchanged", status=None, progress=None, error=str(e))

    return PollResponse(
        ok=outcome.error is None,
        job_id=job_id,
        change=outcome.change.value,
        status=outcome.status.value if outcome.status else None,
        progress=outcome.progress,
        video_id=outcome.video_id,
        error=outcome.error,
    )


class AssetRetryResponse(BaseModel):
    ok: bool
    job_id: str
    video_id: str


@router.post("/{job_id}/asset", response_model=AssetRetryResponse)
def retry_asset(job_id: str, db: Session = Depends(get_db), poller: JobPoller = Depends(get_poller)) -> AssetRetryResponse:
    """
    Re-run asset retrieval for a completed job whose download failed.
    Idempotent: a job that already has its asset just returns it.
    """
    snapshot = _load_snapshot(db, job_id)
    if snapshot.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Job is {snapshot.status.value}, not completed")

    video_id = poller.terminal_handler.handle_success(snapshot)
    if not video_id:
        raise HTTPException(status_code=502, detail="Asset download failed")
    poller.notifier.notify_completed(job_id, video_id, None)
    return AssetRetryResponse(ok=True, job_id=job_id, video_id=video_id)
