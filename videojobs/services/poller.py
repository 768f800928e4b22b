"""
Background poller for external video jobs.

Each cycle reads the stalest eligible jobs from the database, asks the
external API for their current state and, when something changed, persists
it and notifies the job's webhook and local subscribers. Terminal
transitions additionally store the finished asset or the failure message.

The database is the only source of truth: nothing about a job is kept in
memory between cycles, so a restart loses nothing.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from videojobs.core.config import settings
from videojobs.db.session import SessionLocal
from videojobs.models.video_job import JobStatus, utcnow
from videojobs.services.assets import TerminalHandler
from videojobs.services.change_detector import ChangeKind, detect_change
from videojobs.services.jobs import JobSnapshot, get_eligible_jobs, record_poll, touch_checked
from videojobs.services.notifier import Notifier
from videojobs.services.realtime import EventHub
from videojobs.services.sora_client import SoraApiError, SoraClient, build_sora_client

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    job_id: str
    change: ChangeKind = ChangeKind.UNCHANGED
    status: Optional[JobStatus] = None
    progress: Optional[int] = None
    video_id: Optional[str] = None
    applied: bool = True
    error: Optional[str] = None


@dataclass
class CycleResult:
    selected: int = 0
    processed: int = 0
    changed: int = 0
    errors: int = 0
    skipped: int = 0

    def add(self, outcome: Optional[PollOutcome]) -> None:
        if outcome is None:
            self.skipped += 1
            return
        self.processed += 1
        if outcome.error:
            self.errors += 1
        elif outcome.change.changed:
            self.changed += 1


class JobPoller:
    """
    Owns the polling loop: `start()` runs a cycle immediately and then every
    `interval_s` on a daemon thread until `stop()`.

    `stop()` only sets an event, so it is safe from a signal handler. The job
    being processed when it is called finishes; the rest of that batch is
    skipped.
    """

    def __init__(
        self,
        client: SoraClient,
        notifier: Notifier,
        terminal_handler: Optional[TerminalHandler] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        interval_s: float = 5.0,
        batch_size: int = 100,
        max_age: timedelta = timedelta(hours=24),
        concurrency: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client = client
        self.notifier = notifier
        self.session_factory = session_factory
        self.terminal_handler = terminal_handler or TerminalHandler(client, session_factory)
        self.interval_s = interval_s
        self.batch_size = batch_size
        self.max_age = max_age
        self.concurrency = max(1, int(concurrency))
        self.clock = clock

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        with self._lock:
            thread = self._thread
            if thread is not None and thread.is_alive():
                if not self._stop.is_set():
                    logger.warning("Job poller already running")
                    return
                # stop(wait=False) left the old loop finishing its in-flight job
                thread.join()
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="job-poller", daemon=True)
            self._thread.start()

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Job poller stopped")

    def _run(self) -> None:
        logger.info(
            "Job poller started (interval=%ss, batch=%s, concurrency=%s)",
            self.interval_s,
            self.batch_size,
            self.concurrency,
        )
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                # e.g. the database is unreachable; try again next tick
                logger.exception("Error in job polling cycle")
            if self._stop.wait(self.interval_s):
                break

    # ------------------------------------------------------------------
    # cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleResult:
        db = self.session_factory()
        try:
            jobs = get_eligible_jobs(db, now=self.clock(), max_age=self.max_age, limit=self.batch_size)
        finally:
            db.close()

        result = CycleResult(selected=len(jobs))
        if not jobs:
            return result

        logger.info("Polling %d job(s)", len(jobs))

        if self.concurrency == 1:
            for job in jobs:
                result.add(self._poll_isolated(job))
        else:
            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="job-poll") as pool:
                for outcome in pool.map(self._poll_isolated, jobs):
                    result.add(outcome)

        logger.debug(
            "Cycle done: selected=%d processed=%d changed=%d errors=%d skipped=%d",
            result.selected,
            result.processed,
            result.changed,
            result.errors,
            result.skipped,
        )
        return result

    def _poll_isolated(self, job: JobSnapshot) -> Optional[PollOutcome]:
        if self._stop.is_set():
            return None
        try:
            return self.poll_job(job)
        except Exception as e:
            logger.exception("Error polling job %s (external %s)", job.job_id, job.external_job_id)
            self._touch_quietly(job.job_id)
            return PollOutcome(job_id=job.job_id, error=str(e) or e.__class__.__name__)

    def _touch_quietly(self, job_id: str) -> None:
        db = self.session_factory()
        try:
            touch_checked(db, job_id, self.clock())
        except Exception:
            db.rollback()
            logger.exception("Could not update last_checked_at for job %s", job_id)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # per job
    # ------------------------------------------------------------------

    def poll_job(self, job: JobSnapshot) -> PollOutcome:
        if not job.external_job_id:
            raise ValueError(f"Job {job.job_id} has no external job id")

        checked_at = self.clock()
        logger.debug("Polling job %s (external %s)", job.job_id, job.external_job_id)

        try:
            observed = self.client.fetch_status(job.external_job_id)
        except SoraApiError as e:
            logger.warning("Status fetch failed for job %s: %s", job.job_id, e)
            self._touch_quietly(job.job_id)
            return PollOutcome(job_id=job.job_id, error=str(e))

        change = detect_change(job.status, job.progress, observed.status, observed.progress)
        if change.changed:
            logger.debug(
                "Job %s: %s -> %s (progress %s%% -> %s%%)",
                job.job_id,
                job.status.value,
                observed.status.value,
                job.progress,
                observed.progress,
            )

        db = self.session_factory()
        try:
            applied = record_poll(
                db,
                job.job_id,
                status=observed.status,
                progress=observed.progress,
                checked_at=checked_at,
            )
        finally:
            db.close()

        if not applied:
            # someone else already recorded a terminal status for this job
            logger.info("Job %s is already terminal; nothing to notify", job.job_id)
            return PollOutcome(job_id=job.job_id, applied=False)

        outcome = PollOutcome(
            job_id=job.job_id,
            change=change,
            status=observed.status,
            progress=observed.progress,
        )

        if change.changed:
            self.notifier.notify_change(job, observed)

        if change is ChangeKind.TERMINAL_SUCCESS:
            logger.info("Job %s completed (external %s)", job.job_id, job.external_job_id)
            outcome.video_id = self.terminal_handler.handle_success(job, observed)
            if outcome.video_id:
                self.notifier.notify_completed(job.job_id, outcome.video_id, observed.seconds)
        elif change is ChangeKind.TERMINAL_FAILURE:
            message = self.terminal_handler.handle_failure(job, observed.error)
            logger.warning("Job %s failed (external %s): %s", job.job_id, job.external_job_id, message)
            self.notifier.notify_failed(job.job_id, message)

        return outcome


def build_poller(
    hub: EventHub,
    client: Optional[SoraClient] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> JobPoller:
    client = client or build_sora_client()
    notifier = Notifier(hub, secret=settings.webhook_secret, timeout_s=settings.webhook_timeout_sec)
    return JobPoller(
        client,
        notifier,
        session_factory=session_factory,
        interval_s=settings.poll_interval_sec,
        batch_size=settings.poll_batch_size,
        max_age=timedelta(hours=settings.poll_max_age_hours),
        concurrency=settings.poll_concurrency,
    )
