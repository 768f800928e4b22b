import os

from celery import Celery

from videojobs.core.celery_settings import is_test_env
from videojobs.core.config import settings


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v and v.strip() else default


BROKER_URL = (
    _env("CELERY_BROKER_URL")
    or _env("REDIS_URL")
    or "redis://localhost:6379/0"
)

RESULT_BACKEND = _env("CELERY_RESULT_BACKEND") or BROKER_URL

# IMPORTANT: the variable name MUST be `celery_app`
celery_app = Celery(
    "videojobs",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
)

# Ensure tasks are discovered
celery_app.autodiscover_tasks(["videojobs.worker"])

celery_app.conf.update(
    task_track_started=True,
    result_extended=True,
    enable_utc=True,
    timezone="UTC",
    task_always_eager=is_test_env(),
    task_eager_propagates=is_test_env(),
    # POLLER_MODE=celery: `celery -A videojobs.worker.celery_app beat` drives the cycles.
    # A cycle that could not start before the next tick is dropped, not queued.
    beat_schedule={
        "poll-external-video-jobs": {
            "task": "poller.run_cycle",
            "schedule": settings.poll_interval_sec,
            "options": {"expires": settings.poll_interval_sec},
        },
    },
)

__all__ = ["celery_app"]
