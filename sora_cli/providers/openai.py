"""OpenAI videos API client."""

from __future__ import annotations

import http.client
import json
import socket
import time
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .. import __version__
from ..config import DEFAULT_API_BASE
from ..deadline import Deadline
from ..errors import ApiError, MissingJobId, ProtocolError, TransportError
from ..media.conform import MediaAsset
from .base import ContentStream, JobStatusReport


_ERROR_BODY_LIMIT = 4 << 20
_CHUNK_SIZE = 64 * 1024


class OpenAIVideoClient:
    """One request per call; no call is retried here."""

    def __init__(
        self,
        api_key: str,
        api_base: str | None = None,
        timeout_s: float = 60.0,
        organization: str | None = None,
        project: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self.timeout_s = timeout_s
        self.organization = organization
        self.project = project

    def submit_create(
        self,
        model: str,
        prompt: str,
        media: MediaAsset | None,
        size: str,
        seconds: str,
        deadline: Deadline | None = None,
    ) -> str:
        endpoint = f"{self.api_base}/videos"
        fields: dict[str, Any] = {"model": model, "prompt": prompt}
        if size:
            fields["size"] = size
        if seconds:
            fields["seconds"] = str(seconds)
        if media is None:
            body = json.dumps(fields).encode("utf-8")
            content_type = "application/json"
        else:
            boundary = f"----SoraBoundary{int(time.time() * 1000)}"
            body = _build_multipart_body(
                boundary,
                list(fields.items()),
                [("input_reference", media.filename, media.data, media.content_type)],
            )
            content_type = f"multipart/form-data; boundary={boundary}"
        response = self._request_json("POST", endpoint, body=body, content_type=content_type, deadline=deadline)
        return _job_id_from(response)

    def submit_remix(self, source_id: str, prompt: str, deadline: Deadline | None = None) -> str:
        endpoint = f"{self.api_base}/videos/{quote(source_id, safe='')}/remix"
        body = json.dumps({"prompt": prompt}).encode("utf-8")
        response = self._request_json(
            "POST", endpoint, body=body, content_type="application/json", deadline=deadline
        )
        return _job_id_from(response)

    def fetch_status(self, job_id: str, deadline: Deadline | None = None) -> JobStatusReport:
        endpoint = f"{self.api_base}/videos/{quote(job_id, safe='')}"
        response = self._request_json("GET", endpoint, deadline=deadline)
        return JobStatusReport(
            id=str(response.get("id") or job_id),
            status=str(response.get("status") or ""),
            progress=_progress_value(response.get("progress")),
            error=_error_message(response.get("error")),
            raw=response,
        )

    def content_url(self, job_id: str) -> str:
        return f"{self.api_base}/videos/{quote(job_id, safe='')}/content"

    @contextmanager
    def download(self, url: str, deadline: Deadline | None = None) -> Iterator[ContentStream]:
        req = Request(url, headers=self._headers(), method="GET")
        timeout_s = deadline.clamp(self.timeout_s) if deadline else self.timeout_s
        try:
            response = urlopen(req, timeout=timeout_s)
        except HTTPError as exc:
            raise ApiError(exc.code, _read_http_error(exc)) from exc
        except (URLError, socket.timeout, ConnectionError, http.client.HTTPException) as exc:
            raise TransportError(f"download request failed: {exc}") from exc
        with response:
            length = _content_length(response)
            yield ContentStream(length=length, chunks=_iter_response(response, deadline))

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": f"sora-cli/{__version__}",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        if self.project:
            headers["OpenAI-Project"] = self.project
        return headers

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        content_type: str | None = None,
        deadline: Deadline | None = None,
    ) -> dict[str, Any]:
        headers = self._headers()
        headers["Accept"] = "application/json"
        if content_type:
            headers["Content-Type"] = content_type
        req = Request(url, data=body, headers=headers, method=method)
        timeout_s = deadline.clamp(self.timeout_s) if deadline else self.timeout_s
        try:
            with urlopen(req, timeout=timeout_s) as response:
                status_code = int(getattr(response, "status", 200))
                raw = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            raise ApiError(exc.code, _read_http_error(exc)) from exc
        except (URLError, socket.timeout, ConnectionError, http.client.HTTPException) as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"{method} {url}: response is not JSON: {raw[:200]!r}") from exc
        if not isinstance(payload, dict):
            raise ProtocolError(f"{method} {url}: expected a JSON object, got {type(payload).__name__}")
        if method == "POST":
            message = _error_message(payload.get("error"))
            if message:
                raise ApiError(status_code, message)
        return payload


def _job_id_from(response: Mapping[str, Any]) -> str:
    job_id = str(response.get("id") or "").strip()
    if not job_id:
        raise MissingJobId()
    return job_id


def _error_message(value: Any) -> str | None:
    if isinstance(value, Mapping):
        message = value.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        return None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _progress_value(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0, min(100, int(value)))


def _read_http_error(exc: HTTPError) -> str:
    try:
        raw = exc.read(_ERROR_BODY_LIMIT) if exc.fp else b""
    except OSError:
        raw = b""
    text = raw.decode("utf-8", errors="replace").strip() if raw else ""
    return text or str(exc.reason or exc)


def _content_length(response: Any) -> int | None:
    headers = getattr(response, "headers", None)
    raw = headers.get("Content-Length") if headers is not None else None
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _iter_response(response: Any, deadline: Deadline | None) -> Iterator[bytes]:
    while True:
        if deadline is not None:
            deadline.check()
        try:
            chunk = response.read(_CHUNK_SIZE)
        except (OSError, http.client.HTTPException) as exc:
            raise TransportError(f"download interrupted: {exc}") from exc
        if not chunk:
            return
        yield chunk


def _build_multipart_body(
    boundary: str,
    fields: Sequence[tuple[str, Any]],
    files: Sequence[tuple[str, str, bytes, str | None]],
) -> bytes:
    boundary_bytes = boundary.encode("utf-8")
    payload = bytearray()
    for key, value in fields:
        if value is None:
            continue
        payload.extend(b"--")
        payload.extend(boundary_bytes)
        payload.extend(b"\r\n")
        disposition = f'Content-Disposition: form-data; name="{_multipart_quote(key)}"\r\n\r\n'
        payload.extend(disposition.encode("utf-8"))
        payload.extend(str(value).encode("utf-8"))
        payload.extend(b"\r\n")
    for field_name, filename, blob, mime_type in files:
        payload.extend(b"--")
        payload.extend(boundary_bytes)
        payload.extend(b"\r\n")
        disposition = (
            "Content-Disposition: form-data; "
            f'name="{_multipart_quote(field_name)}"; filename="{_multipart_quote(filename)}"\r\n'
        )
        payload.extend(disposition.encode("utf-8"))
        if mime_type:
            payload.extend(f"Content-Type: {mime_type}\r\n".encode("utf-8"))
        payload.extend(b"\r\n")
        payload.extend(blob)
        payload.extend(b"\r\n")
    payload.extend(b"--")
    payload.extend(boundary_bytes)
    payload.extend(b"--\r\n")
    return bytes(payload)


def _multipart_quote(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')
