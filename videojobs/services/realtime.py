from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EventHub:
    """
    In-process publish/subscribe keyed by job id.

    Subscribers are plain callables. The poller thread publishes while
    WebSocket handlers subscribe and unsubscribe from the event loop, so
    every mutation of the per-job sets happens under one lock and publish
    delivers to a snapshot. Nothing is buffered: late subscribers miss
    earlier events.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, set[Subscriber]] = {}

    def subscribe(self, job_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(job_id, set()).add(subscriber)

    def unsubscribe(self, job_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.get(job_id)
            if not subs:
                return
            subs.discard(subscriber)
            if not subs:
                del self._subscribers[job_id]

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        with self._lock:
            for job_id in list(self._subscribers):
                subs = self._subscribers[job_id]
                subs.discard(subscriber)
                if not subs:
                    del self._subscribers[job_id]

    def subscriber_count(self, job_id: str | None = None) -> int:
        with self._lock:
            if job_id is not None:
                return len(self._subscribers.get(job_id, ()))
            return sum(len(s) for s in self._subscribers.values())

    def publish(self, job_id: str, event: dict[str, Any]) -> int:
        """Deliver to current subscribers of job_id. Returns how many were called."""
        with self._lock:
            targets = list(self._subscribers.get(job_id, ()))

        delivered = 0
        for deliver in targets:
            try:
                deliver(event)
                delivered += 1
            except Exception:
                logger.exception("Local subscriber for job %s failed", job_id)
        return delivered

    def emit_progress(self, job_id: str, progress: int, status: str, message: str | None = None) -> int:
        return self.publish(
            job_id,
            {
                "type": "progress",
                "jobId": job_id,
                "progress": progress,
                "status": status,
                "message": message or f"Processing... {progress}%",
                "timestamp": iso_now(),
            },
        )

    def emit_completed(self, job_id: str, video_id: str | None, duration: float | None) -> int:
        return self.publish(
            job_id,
            {
                "type": "completed",
                "jobId": job_id,
                "videoId": video_id,
                "duration": duration,
                "timestamp": iso_now(),
            },
        )

    def emit_error(self, job_id: str, error: str) -> int:
        return self.publish(
            job_id,
            {"type": "error", "jobId": job_id, "error": error, "timestamp": iso_now()},
        )
