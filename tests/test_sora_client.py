import httpx
import pytest

from videojobs.models.video_job import JobStatus, UnknownStatusError
from videojobs.services.sora_client import SoraApiError, SoraClient


def _client(handler) -> SoraClient:
    return SoraClient("https://api.example.test/v1/", "sk-test", timeout_s=2.0, transport=httpx.MockTransport(handler))


def test_fetch_status_parses_payload_and_sends_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"id": "video_1", "status": "in_progress", "progress": 45, "seconds": "8"})

    result = _client(handler).fetch_status("video_1")

    assert seen["url"] == "https://api.example.test/v1/videos/video_1"
    assert seen["auth"] == "Bearer sk-test"
    assert result.status is JobStatus.PROCESSING
    assert result.progress == 45
    assert result.seconds == 8.0
    assert result.error is None


def test_fetch_status_reads_error_message_and_clamps_progress():
    def handler(request):
        return httpx.Response(200, json={"status": "failed", "progress": 140, "error": {"message": "moderation blocked"}})

    result = _client(handler).fetch_status("video_2")
    assert result.status is JobStatus.FAILED
    assert result.progress == 100
    assert result.error == "moderation blocked"


def test_fetch_status_completed_keeps_url_and_expiry():
    def handler(request):
        return httpx.Response(
            200,
            json={"status": "completed", "progress": 100, "url": "https://cdn.test/v.mp4", "expires_at": 1706176800},
        )

    result = _client(handler).fetch_status("video_3")
    assert result.url == "https://cdn.test/v.mp4"
    assert result.expires_at == 1706176800


def test_non_2xx_raises_with_status_code():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    with pytest.raises(SoraApiError) as exc:
        _client(handler).fetch_status("video_4")
    assert exc.value.status_code == 429
    assert exc.value.is_rate_limited


def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SoraApiError) as exc:
        _client(handler).fetch_status("video_5")
    assert exc.value.status_code is None


def test_unknown_status_is_a_validation_error():
    def handler(request):
        return httpx.Response(200, json={"status": "exploded", "progress": 0})

    with pytest.raises(UnknownStatusError):
        _client(handler).fetch_status("video_6")


def test_fetch_asset_returns_bytes():
    def handler(request):
        assert request.url.path.endswith("/videos/video_7/content")
        return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp42")

    assert _client(handler).fetch_asset("video_7") == b"\x00\x00\x00\x18ftypmp42"


def test_fetch_asset_failure_raises():
    def handler(request):
        return httpx.Response(500)

    with pytest.raises(SoraApiError) as exc:
        _client(handler).fetch_asset("video_8")
    assert exc.value.status_code == 500
