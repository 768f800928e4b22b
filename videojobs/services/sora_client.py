from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from videojobs.core.config import settings
from videojobs.models.video_job import JobStatus


class SoraApiError(Exception):
    """Network failure or non-2xx answer from the external video API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass
class ExternalJobStatus:
    status: JobStatus
    progress: int
    url: Optional[str] = None
    expires_at: Optional[Any] = None
    error: Optional[str] = None
    seconds: Optional[float] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ExternalJobStatus":
        err = data.get("error")
        if isinstance(err, dict):
            err = err.get("message") or "Unknown error"

        seconds = data.get("seconds")
        try:
            seconds = float(seconds) if seconds is not None else None
        except (TypeError, ValueError):
            seconds = None

        return cls(
            status=JobStatus.parse(data.get("status")),
            progress=max(0, min(100, int(data.get("progress") or 0))),
            url=data.get("url"),
            expires_at=data.get("expires_at"),
            error=err or None,
            seconds=seconds,
        )


class SoraClient:
    """
    Minimal client for the external video jobs API.

    Two calls only: job status and finished content. No retries here; the
    poller's next cycle is the retry for status reads.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout_s,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self.transport,
        )

    def _get(self, path: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            with self._client() as client:
                r = client.get(url)
        except httpx.HTTPError as e:
            raise SoraApiError(f"Sora API request failed: {e}") from e

        if r.status_code >= 400:
            raise SoraApiError(f"Sora API error: {r.status_code} {r.reason_phrase}", status_code=r.status_code)
        return r

    def fetch_status(self, external_job_id: str) -> ExternalJobStatus:
        r = self._get(f"/videos/{external_job_id}")
        try:
            data = r.json()
        except ValueError as e:
            raise SoraApiError(f"Sora API returned non-JSON status for {external_job_id}") from e
        return ExternalJobStatus.from_payload(data)

    def fetch_asset(self, external_job_id: str) -> bytes:
        r = self._get(f"/videos/{external_job_id}/content")
        return r.content


def build_sora_client() -> SoraClient:
    return SoraClient(
        base_url=settings.sora_base_url,
        api_key=settings.openai_api_key,
        timeout_s=settings.sora_timeout_sec,
    )
