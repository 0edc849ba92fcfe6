from __future__ import annotations

import http.client
import io
import json
from urllib.error import HTTPError, URLError

import pytest

from sora_cli.deadline import Deadline
from sora_cli.errors import ApiError, CancellationError, MissingJobId, ProtocolError, TransportError
from sora_cli.media.conform import MediaAsset
from sora_cli.providers.openai import OpenAIVideoClient


class DummyResponse:
    def __init__(self, body: bytes, status: int = 200, headers: dict | None = None) -> None:
        self._buffer = io.BytesIO(body)
        self.status = status
        self.headers = headers or {}

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    def __enter__(self) -> "DummyResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


def _json(payload: dict) -> DummyResponse:
    return DummyResponse(json.dumps(payload).encode("utf-8"))


def _capture(monkeypatch, response) -> list:
    seen: list = []

    def fake_urlopen(req, timeout=0):
        seen.append((req, timeout))
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr("sora_cli.providers.openai.urlopen", fake_urlopen)
    return seen


def test_submit_create_without_media_sends_json(monkeypatch) -> None:
    seen = _capture(monkeypatch, _json({"id": "video_1", "status": "queued"}))
    client = OpenAIVideoClient("test-key", api_base="https://api.test/v1/")

    job_id = client.submit_create("sora-2", "a fox", None, "1280x720", "8")

    assert job_id == "video_1"
    req, _ = seen[0]
    assert req.full_url == "https://api.test/v1/videos"
    assert req.get_method() == "POST"
    assert req.get_header("Authorization") == "Bearer test-key"
    assert req.get_header("Content-type") == "application/json"
    assert json.loads(req.data) == {"model": "sora-2", "prompt": "a fox", "size": "1280x720", "seconds": "8"}


def test_submit_create_with_media_uses_multipart(monkeypatch) -> None:
    seen = _capture(monkeypatch, _json({"id": "video_2", "status": "queued"}))
    client = OpenAIVideoClient("test-key", api_base="https://api.test/v1")
    media = MediaAsset(
        data=b"png-bytes",
        filename="ref.png",
        content_type="image/png",
        width=1280,
        height=720,
        kind="image",
    )

    assert client.submit_create("sora-2-pro", "a fox", media, "1280x720", "4") == "video_2"

    req, _ = seen[0]
    assert req.get_header("Content-type").startswith("multipart/form-data; boundary=")
    body = req.data
    assert b'name="input_reference"; filename="ref.png"' in body
    assert b"Content-Type: image/png" in body
    assert b"png-bytes" in body
    assert b'name="model"\r\n\r\nsora-2-pro' in body
    assert b'name="seconds"\r\n\r\n4' in body


def test_submit_remix_posts_prompt(monkeypatch) -> None:
    seen = _capture(monkeypatch, _json({"id": "video_3", "status": "queued"}))
    client = OpenAIVideoClient("test-key", api_base="https://api.test/v1")

    assert client.submit_remix("video_1", "make it night") == "video_3"

    req, _ = seen[0]
    assert req.full_url == "https://api.test/v1/videos/video_1/remix"
    assert json.loads(req.data) == {"prompt": "make it night"}


def test_non_2xx_is_api_error(monkeypatch) -> None:
    body = io.BytesIO(b'{"error": {"message": "bad size"}}')
    error = HTTPError("https://api.test/v1/videos", 400, "Bad Request", hdrs=None, fp=body)
    _capture(monkeypatch, error)
    client = OpenAIVideoClient("test-key", api_base="https://api.test/v1")

    with pytest.raises(ApiError) as excinfo:
        client.submit_create("sora-2", "a fox", None, "1280x720", "8")
    assert excinfo.value.status == 400
    assert "bad size" in excinfo.value.body


def test_connection_failure_is_transport_error(monkeypatch) -> None:
    _capture(monkeypatch, URLError("connection refused"))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(TransportError):
        client.fetch_status("video_1")


def test_unparseable_envelope_is_protocol_error(monkeypatch) -> None:
    _capture(monkeypatch, DummyResponse(b"<html>gateway</html>"))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(ProtocolError):
        client.submit_remix("video_1", "again")


def test_missing_id_is_reported(monkeypatch) -> None:
    _capture(monkeypatch, _json({"status": "queued"}))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(MissingJobId):
        client.submit_create("sora-2", "a fox", None, "1280x720", "8")


def test_submit_envelope_error_is_api_error(monkeypatch) -> None:
    _capture(monkeypatch, _json({"id": "", "error": {"message": "content policy"}}))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(ApiError, match="content policy"):
        client.submit_create("sora-2", "a fox", None, "1280x720", "8")


def test_fetch_status_returns_job_error_as_data(monkeypatch) -> None:
    _capture(
        monkeypatch,
        _json({"id": "video_1", "status": "failed", "progress": 45, "error": {"message": "moderation"}}),
    )
    client = OpenAIVideoClient("test-key")

    report = client.fetch_status("video_1")

    assert report.status == "failed"
    assert report.progress == 45
    assert report.error == "moderation"


def test_download_streams_chunks(monkeypatch) -> None:
    payload = b"x" * 200_000
    seen = _capture(monkeypatch, DummyResponse(payload, headers={"Content-Length": str(len(payload))}))
    client = OpenAIVideoClient("test-key", api_base="https://api.test/v1")
    url = client.content_url("video_1")

    with client.download(url) as stream:
        assert stream.length == len(payload)
        received = b"".join(stream.iter_chunks())

    assert received == payload
    req, _ = seen[0]
    assert req.full_url == "https://api.test/v1/videos/video_1/content"
    assert req.get_header("Authorization") == "Bearer test-key"


def test_deadline_clamps_timeout(monkeypatch) -> None:
    seen = _capture(monkeypatch, _json({"id": "video_1", "status": "queued"}))
    client = OpenAIVideoClient("test-key", timeout_s=60.0)

    client.fetch_status("video_1", deadline=Deadline(5.0))

    _, timeout = seen[0]
    assert 0 < timeout <= 5.0


def test_cancelled_deadline_skips_request(monkeypatch) -> None:
    seen = _capture(monkeypatch, _json({"id": "video_1"}))
    client = OpenAIVideoClient("test-key")
    deadline = Deadline(60.0)
    deadline.cancel()

    with pytest.raises(CancellationError):
        client.fetch_status("video_1", deadline=deadline)
    assert seen == []


class TruncatedResponse(DummyResponse):
    def read(self, size: int = -1) -> bytes:
        raise http.client.IncompleteRead(b'{"id": "vid')


def test_truncated_reply_is_transport_error(monkeypatch) -> None:
    _capture(monkeypatch, TruncatedResponse(b""))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(TransportError):
        client.fetch_status("video_1")


def test_garbled_status_line_is_transport_error(monkeypatch) -> None:
    _capture(monkeypatch, http.client.BadStatusLine("garbage"))
    client = OpenAIVideoClient("test-key")
    with pytest.raises(TransportError):
        client.submit_remix("video_1", "again")


def test_truncated_download_is_transport_error(monkeypatch) -> None:
    _capture(monkeypatch, TruncatedResponse(b"", headers={"Content-Length": "100"}))
    client = OpenAIVideoClient("test-key")
    with client.download(client.content_url("video_1")) as stream:
        with pytest.raises(TransportError):
            b"".join(stream.iter_chunks())
