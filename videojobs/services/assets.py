from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from videojobs.services.jobs import (
    JobSnapshot,
    create_video_record,
    find_job,
    get_video_for_job,
    save_video_buffer,
    set_job_error,
)
from videojobs.services.sora_client import ExternalJobStatus, SoraApiError, SoraClient

logger = logging.getLogger(__name__)


class TerminalHandler:
    """
    Side effects of a job reaching a terminal status.

    Success downloads the finished asset, overwrites the job's stored bytes
    and creates the single `videos` row for the job. Every step tolerates a
    previous partial run, so calling it again after a crash is harmless.
    """

    def __init__(self, client: SoraClient, session_factory: Callable[[], Session]) -> None:
        self.client = client
        self.session_factory = session_factory

    def handle_success(self, job: JobSnapshot, observed: Optional[ExternalJobStatus] = None) -> Optional[str]:
        """Returns the video id, or None when the asset could not be retrieved."""
        if not job.external_job_id:
            raise ValueError(f"Job {job.job_id} has no external job id")

        db = self.session_factory()
        try:
            existing = get_video_for_job(db, job.job_id)
            row = find_job(db, job.job_id)
            if existing and row is not None and row.buffer_downloaded_at is not None:
                logger.debug("Asset already stored for job %s (video %s)", job.job_id, existing.video_id)
                return existing.video_id
        finally:
            db.close()

        logger.info("Downloading asset for job %s (external %s)", job.job_id, job.external_job_id)
        try:
            data = self.client.fetch_asset(job.external_job_id)
        except SoraApiError as e:
            # job stays completed without an asset; see /stats completed_without_asset
            logger.error("Asset download failed for job %s: %s", job.job_id, e)
            return None

        duration = observed.seconds if observed else None

        db = self.session_factory()
        try:
            save_video_buffer(db, job.job_id, data)
            logger.info("Stored %.2f MB for job %s", len(data) / 1024 / 1024, job.job_id)
            return self._ensure_video_record(db, job, size_bytes=len(data), duration_sec=duration)
        finally:
            db.close()

    def _ensure_video_record(
        self, db: Session, job: JobSnapshot, *, size_bytes: int, duration_sec: Optional[float]
    ) -> str:
        existing = get_video_for_job(db, job.job_id)
        if existing:
            return existing.video_id

        try:
            video = create_video_record(
                db,
                job_id=job.job_id,
                owner_id=job.owner_id,
                size_bytes=size_bytes,
                duration_sec=duration_sec,
            )
        except IntegrityError:
            # another run inserted it first; uq_videos_job_id makes that a success
            db.rollback()
            existing = get_video_for_job(db, job.job_id)
            if existing is None:
                raise
            return existing.video_id

        logger.info("Video record %s created for job %s", video.video_id, job.job_id)
        return video.video_id

    def handle_failure(self, job: JobSnapshot, error: Optional[str]) -> str:
        message = error or "Unknown error"
        db = self.session_factory()
        try:
            set_job_error(db, job.job_id, message)
        finally:
            db.close()
        return message
