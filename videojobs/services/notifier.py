from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from videojobs.models.video_job import JobStatus
from videojobs.services.jobs import JobSnapshot
from videojobs.services.realtime import EventHub, iso_now
from videojobs.services.sora_client import ExternalJobStatus

logger = logging.getLogger(__name__)


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Compact JSON; the signature is computed over exactly these bytes."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip().lower())


def build_webhook_payload(job: JobSnapshot, observed: ExternalJobStatus) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "jobId": job.job_id,
        "externalJobId": job.external_job_id,
        "soraJobId": job.external_job_id,
        "status": observed.status.value,
        "progress": observed.progress,
        "timestamp": iso_now(),
    }
    if observed.status == JobStatus.COMPLETED and observed.url:
        payload["videoUrl"] = observed.url
        payload["contentExpiresAt"] = observed.expires_at
    if observed.status == JobStatus.FAILED:
        payload["error"] = observed.error or "Unknown error"
    return payload


class Notifier:
    """
    Fans a job change out to the caller's webhook and to local subscribers.

    Both channels are best-effort: failures are logged, never raised, never
    retried. The next poll cycle and GET /status are the safety net.
    """

    def __init__(
        self,
        hub: EventHub,
        secret: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.hub = hub
        self.secret = secret
        self.timeout_s = timeout_s
        self.transport = transport

    def notify_change(self, job: JobSnapshot, observed: ExternalJobStatus) -> None:
        self.hub.emit_progress(job.job_id, observed.progress, observed.status.value)
        self.send_webhook(job, observed)

    def notify_completed(self, job_id: str, video_id: str | None, duration: float | None) -> None:
        self.hub.emit_completed(job_id, video_id, duration)

    def notify_failed(self, job_id: str, error: str) -> None:
        self.hub.emit_error(job_id, error)

    def send_webhook(self, job: JobSnapshot, observed: ExternalJobStatus) -> bool:
        if not job.webhook_url:
            logger.debug("No webhook URL for job %s", job.job_id)
            return False

        body = serialize_payload(build_webhook_payload(job, observed))
        headers = {
            "Content-Type": "application/json",
            "X-Signature": sign_payload(self.secret, body),
            "X-Timestamp": str(int(time.time() * 1000)),
        }

        try:
            with httpx.Client(timeout=self.timeout_s, transport=self.transport) as client:
                r = client.post(job.webhook_url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Error sending webhook to %s for job %s: %s", job.webhook_url, job.job_id, e)
            return False

        if r.is_success:
            logger.debug("Webhook sent for job %s: %s", job.job_id, job.webhook_url)
            return True

        logger.warning("Webhook failed (%s) for job %s: %s", r.status_code, job.job_id, job.webhook_url)
        return False
