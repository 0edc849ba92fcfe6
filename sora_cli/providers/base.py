"""Video client base types."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Protocol

from ..deadline import Deadline
from ..media.conform import MediaAsset


@dataclass(frozen=True)
class JobStatusReport:
    id: str
    status: str
    progress: int | None = None
    error: str | None = None
    raw: Mapping[str, Any] | None = None


@dataclass
class ContentStream:
    length: int | None
    chunks: Iterator[bytes]

    def iter_chunks(self) -> Iterator[bytes]:
        return self.chunks


class VideoClient(Protocol):
    def submit_create(
        self,
        model: str,
        prompt: str,
        media: MediaAsset | None,
        size: str,
        seconds: str,
        deadline: Deadline | None = None,
    ) -> str:
        ...

    def submit_remix(self, source_id: str, prompt: str, deadline: Deadline | None = None) -> str:
        ...

    def fetch_status(self, job_id: str, deadline: Deadline | None = None) -> JobStatusReport:
        ...

    def content_url(self, job_id: str) -> str:
        ...

    def download(self, url: str, deadline: Deadline | None = None) -> AbstractContextManager[ContentStream]:
        ...
