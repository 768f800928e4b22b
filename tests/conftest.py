import os
from datetime import datetime, timedelta, timezone

import httpx
import pytest

# Force test settings before importing the app (settings are read at import time)
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["WEBHOOK_SECRET"] = "test-secret"
os.environ["POLLER_ENABLED"] = "0"
os.environ["OPENAI_API_KEY"] = "sk-test"

from videojobs.db.base import Base  # noqa: E402
from videojobs.db.session import SessionLocal, engine  # noqa: E402
from videojobs.models.video_job import VideoJob  # noqa: E402
from videojobs.services.notifier import Notifier  # noqa: E402
from videojobs.services.poller import JobPoller  # noqa: E402
from videojobs.services.realtime import EventHub  # noqa: E402
from videojobs.services.sora_client import ExternalJobStatus, SoraApiError  # noqa: E402

WEBHOOK_SECRET = "test-secret"


class FakeSoraClient:
    """In-memory stand-in for SoraClient. Values may be payload dicts/bytes or exceptions to raise."""

    def __init__(self, default_status: dict | None = None):
        self.statuses: dict = {}
        self.assets: dict = {}
        self.default_status = default_status
        self.status_calls: list[str] = []
        self.asset_calls: list[str] = []

    def fetch_status(self, external_job_id: str) -> ExternalJobStatus:
        self.status_calls.append(external_job_id)
        value = self.statuses.get(external_job_id, self.default_status)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise SoraApiError("Sora API error: 404 Not Found", status_code=404)
        return ExternalJobStatus.from_payload(value)

    def fetch_asset(self, external_job_id: str) -> bytes:
        self.asset_calls.append(external_job_id)
        value = self.assets.get(external_job_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise SoraApiError("Failed to download video: 404 Not Found", status_code=404)
        return value


class WebhookRecorder:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


class EventCollector:
    def __init__(self):
        self.events: list[dict] = []

    def __call__(self, event: dict) -> None:
        self.events.append(event)

    def of_type(self, kind: str) -> list[dict]:
        return [e for e in self.events if e.get("type") == kind]


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def fake_client():
    return FakeSoraClient()


@pytest.fixture
def webhooks():
    return WebhookRecorder()


@pytest.fixture
def notifier(hub, webhooks):
    return Notifier(hub, WEBHOOK_SECRET, timeout_s=1.0, transport=httpx.MockTransport(webhooks))


@pytest.fixture
def poller(fake_client, notifier):
    return JobPoller(fake_client, notifier, session_factory=SessionLocal, interval_s=0.05)


@pytest.fixture
def make_job(db):
    def _make(
        job_id: str,
        *,
        external_job_id: str | None = "ext-default",
        status: str = "queued",
        progress: int = 0,
        webhook_url: str | None = None,
        owner_id: str = "owner-1",
        created_at: datetime | None = None,
        last_checked_at: datetime | None = None,
    ) -> VideoJob:
        job = VideoJob(
            job_id=job_id,
            owner_id=owner_id,
            external_job_id=external_job_id if external_job_id != "ext-default" else f"ext-{job_id}",
            status=status,
            progress=progress,
            webhook_url=webhook_url,
            created_at=created_at or datetime.now(timezone.utc) - timedelta(minutes=1),
            last_checked_at=last_checked_at,
        )
        db.add(job)
        db.commit()
        return job

    return _make


def fresh(db, job_id: str) -> VideoJob:
    db.expire_all()
    return db.query(VideoJob).filter(VideoJob.job_id == job_id).one()
