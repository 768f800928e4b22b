import pytest

from conftest import fresh
from videojobs.db.session import SessionLocal
from videojobs.models.video import Video
from videojobs.services.assets import TerminalHandler
from videojobs.services.jobs import JobSnapshot, create_video_record
from videojobs.services.sora_client import ExternalJobStatus, SoraApiError


@pytest.fixture
def handler(fake_client):
    return TerminalHandler(fake_client, SessionLocal)


def test_success_stores_bytes_and_creates_one_video(db, handler, fake_client, make_job):
    row = make_job("j1", status="completed", progress=100, owner_id="u7")
    fake_client.assets["ext-j1"] = b"asset"
    observed = ExternalJobStatus.from_payload({"status": "completed", "progress": 100, "seconds": 12})

    video_id = handler.handle_success(JobSnapshot.from_row(row), observed)

    video = db.query(Video).filter(Video.video_id == video_id).one()
    assert video.job_id == "j1"
    assert video.owner_id == "u7"
    assert video.format == "mp4"
    assert video.duration_sec == 12.0
    assert fresh(db, "j1").video_buffer == b"asset"


def test_success_twice_is_harmless(db, handler, fake_client, make_job):
    row = make_job("j1", status="completed", progress=100)
    fake_client.assets["ext-j1"] = b"asset"
    snapshot = JobSnapshot.from_row(row)

    first = handler.handle_success(snapshot)
    second = handler.handle_success(snapshot)

    assert first == second
    assert fake_client.asset_calls == ["ext-j1"]
    assert db.query(Video).count() == 1


def test_success_after_partial_run_reuses_existing_video(db, handler, fake_client, make_job):
    row = make_job("j1", status="completed", progress=100)
    existing = create_video_record(db, job_id="j1", owner_id="owner-1", size_bytes=None)
    fake_client.assets["ext-j1"] = b"asset"

    video_id = handler.handle_success(JobSnapshot.from_row(row))

    assert video_id == existing.video_id
    assert fake_client.asset_calls == ["ext-j1"]
    assert db.query(Video).count() == 1
    assert fresh(db, "j1").buffer_downloaded_at is not None


def test_download_failure_leaves_job_completed_without_asset(db, handler, fake_client, make_job):
    row = make_job("j1", status="completed", progress=100)
    fake_client.assets["ext-j1"] = SoraApiError("Failed to download video: 503", status_code=503)

    assert handler.handle_success(JobSnapshot.from_row(row)) is None

    job = fresh(db, "j1")
    assert job.status == "completed"
    assert job.buffer_downloaded_at is None
    assert db.query(Video).count() == 0


def test_success_requires_external_id(handler, make_job):
    row = make_job("j1", external_job_id=None, status="completed")
    with pytest.raises(ValueError):
        handler.handle_success(JobSnapshot.from_row(row))


def test_failure_records_message(db, handler, make_job):
    row = make_job("j1", status="failed")

    assert handler.handle_failure(JobSnapshot.from_row(row), "quota exceeded") == "quota exceeded"
    assert fresh(db, "j1").error == "quota exceeded"

    assert handler.handle_failure(JobSnapshot.from_row(row), None) == "Unknown error"
    assert fresh(db, "j1").error == "Unknown error"
