"""Job lifecycle: resolve, submit, poll, download, record."""

from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, TextIO

from .cli_progress import DownloadMeter, ProgressTicker
from .config import ALLOWED_SECONDS, DEFAULT_MODEL, DEFAULT_SECONDS, DEFAULT_SIZE, Settings
from .deadline import Deadline
from .errors import (
    CancellationError,
    HistoryWriteError,
    JobError,
    SoraError,
    TransportError,
    ValidationError,
)
from .history import HistoryEntry, HistoryStore
from .media.conform import MediaAsset, conform, parse_size
from .media.transcode import Transcoder
from .providers.base import ContentStream, VideoClient
from .utils import ensure_dir, now_utc_iso


logger = logging.getLogger("sora_cli.lifecycle")

STREAM_SINK = "-"


class JobState(str, Enum):
    RESOLVING = "resolving"
    SUBMITTED = "submitted"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    RECORDED = "recorded"
    FAILED = "failed"


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


_SUCCESS_STATUSES = {"succeeded", "completed", "complete", "done", "ready"}
_FAILURE_STATUSES = {"failed", "error", "cancelled", "canceled"}

# Parameters a remix inherits from its source job, with the flag that sets each.
_REMIX_INHERITED = (
    ("model", "--pro"),
    ("size", "--portrait/--landscape"),
    ("seconds", "--seconds"),
    ("input_file", "--file"),
)


def classify_status(raw: str | None) -> JobStatus:
    value = str(raw or "").strip().lower()
    if value in _SUCCESS_STATUSES:
        return JobStatus.SUCCEEDED
    if value in _FAILURE_STATUSES:
        return JobStatus.FAILED
    return JobStatus.PENDING


@dataclass(frozen=True)
class JobRequest:
    prompt: str
    model: str | None = None
    size: str | None = None
    seconds: str | None = None
    input_file: Path | None = None
    remix_from: str | None = None
    output: str | None = None


def validate_request(request: JobRequest) -> str:
    """Reject conflicting parameters and return the model to submit with."""
    if request.remix_from:
        conflicts = [flag for attr, flag in _REMIX_INHERITED if getattr(request, attr) is not None]
        if conflicts:
            raise ValidationError(
                f"Cannot use {', '.join(conflicts)} with --remix. "
                "When remixing, duration, resolution, and model are inherited from the original video. "
                "To transform a video with different parameters, use --file instead."
            )
        return DEFAULT_MODEL
    seconds = request.seconds or DEFAULT_SECONDS
    if seconds not in ALLOWED_SECONDS:
        raise ValidationError(f"Invalid --seconds value: {seconds} (must be 4, 8, or 12)")
    try:
        parse_size(request.size or DEFAULT_SIZE)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return request.model or DEFAULT_MODEL


@dataclass(frozen=True)
class JobResult:
    job_id: str
    output: Path | None
    bytes_written: int
    elapsed_s: float
    model: str
    remixed_from: str | None = None


class JobLifecycle:
    """Runs one job from submission to a recorded download.

    ``state`` tracks progress through ``JobState``; any raised ``SoraError``
    leaves it at ``FAILED``. Status text goes to ``progress_stream`` and
    streamed artifact bytes to ``sink``, so the two never mix.
    """

    def __init__(
        self,
        client: VideoClient,
        history: HistoryStore,
        *,
        settings: Settings | None = None,
        transcoder: Transcoder | None = None,
        progress_stream: TextIO | None = None,
        sink: BinaryIO | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self.client = client
        self.history = history
        self.settings = settings or Settings()
        self.transcoder = transcoder
        self.progress_stream = progress_stream or sys.stderr
        self.sink = sink
        self.deadline = deadline
        self.state = JobState.RESOLVING
        self.failed_at: JobState | None = None
        self.job_id: str | None = None

    def run(self, request: JobRequest) -> JobResult:
        self.state = JobState.RESOLVING
        self.failed_at = None
        deadline = self.deadline or Deadline(self.settings.timeout_s)
        started = time.monotonic()
        try:
            model = self._validate(request)
            source_id, source_model = self._resolve(request)
            model = source_model or model
            media = self._prepare_media(request)
            self.job_id = self._submit(request, model, source_id, media, deadline)
            self.state = JobState.SUBMITTED
            self._info(f"Created job: {self.job_id}")

            self.state = JobState.POLLING
            try:
                self._poll(self.job_id, deadline)
            except JobError:
                self._record_failure(request, model)
                raise

            self.state = JobState.DOWNLOADING
            destination, written = self._download(self.job_id, request.output, deadline)
        except KeyboardInterrupt:
            self._fail()
            raise CancellationError("cancelled", "interrupted before completion") from None
        except SoraError:
            self._fail()
            raise

        elapsed = time.monotonic() - started
        self._record(request, model, destination)
        self.state = JobState.RECORDED
        return JobResult(
            job_id=self.job_id,
            output=destination,
            bytes_written=written,
            elapsed_s=elapsed,
            model=model,
            remixed_from=request.remix_from,
        )

    def _fail(self) -> None:
        self.failed_at = self.state
        self.state = JobState.FAILED

    def _validate(self, request: JobRequest) -> str:
        if not request.prompt.strip():
            raise ValidationError("prompt cannot be empty")
        return validate_request(request)

    def _resolve(self, request: JobRequest) -> tuple[str | None, str | None]:
        """Return the remix source job id and the model it was generated with, if recorded."""
        if not request.remix_from:
            return None, None
        resolved, entry = self.history.resolve_entry(request.remix_from)
        self._info(f"Remixing from video: {resolved}")
        return resolved, entry.model if entry is not None and entry.model else None

    def _prepare_media(self, request: JobRequest) -> MediaAsset | None:
        if request.input_file is None or request.remix_from:
            return None
        width, height = parse_size(request.size or DEFAULT_SIZE)
        asset = conform(request.input_file, width, height, transcoder=self.transcoder)
        logger.debug("Prepared %s (%s, %d bytes)", asset.filename, asset.content_type, len(asset.data))
        return asset

    def _submit(
        self,
        request: JobRequest,
        model: str,
        source_id: str | None,
        media: MediaAsset | None,
        deadline: Deadline,
    ) -> str:
        if source_id is not None:
            return self.client.submit_remix(source_id, request.prompt, deadline=deadline)
        return self.client.submit_create(
            model,
            request.prompt,
            media,
            request.size or DEFAULT_SIZE,
            request.seconds or DEFAULT_SECONDS,
            deadline=deadline,
        )

    def _poll(self, job_id: str, deadline: Deadline) -> None:
        ticker = ProgressTicker("Generating video", stream=self.progress_stream)
        ticker.start_ticking()
        finished = False
        try:
            while True:
                deadline.wait(self.settings.poll_interval_s)
                try:
                    report = self.client.fetch_status(job_id, deadline=deadline)
                except TransportError as exc:
                    logger.warning("poll error: %s", exc)
                    continue
                if report.error:
                    raise JobError(job_id, report.error)
                if report.progress is not None and report.progress > 0:
                    ticker.update(report.progress)
                outcome = classify_status(report.status)
                if outcome is JobStatus.SUCCEEDED:
                    ticker.update(100)
                    finished = True
                    return
                if outcome is JobStatus.FAILED:
                    raise JobError(job_id, f"status {report.status}")
                logger.debug("job %s status=%s progress=%s", job_id, report.status, report.progress)
        finally:
            ticker.stop(done=finished)

    def _download(self, job_id: str, output: str | None, deadline: Deadline) -> tuple[Path | None, int]:
        url = self.client.content_url(job_id)
        with self.client.download(url, deadline=deadline) as stream:
            meter = DownloadMeter(stream.length, stream=self.progress_stream)
            if output == STREAM_SINK:
                self._stream_to_sink(stream, meter)
                meter.finish()
                return None, meter.written
            destination = Path(output) if output else Path(f"{job_id}.mp4")
            try:
                _write_atomic(stream, destination, meter)
            except OSError as exc:
                raise SoraError(f"writing {destination}: {exc}") from exc
            meter.finish()
            return destination, meter.written

    def _stream_to_sink(self, stream: ContentStream, meter: DownloadMeter) -> None:
        sink = self.sink or sys.stdout.buffer
        try:
            for chunk in stream.iter_chunks():
                sink.write(chunk)
                meter.advance(len(chunk))
            sink.flush()
        except OSError as exc:
            raise SoraError(f"writing to stdout: {exc}") from exc

    def _record(self, request: JobRequest, model: str, destination: Path | None) -> None:
        entry = HistoryEntry(
            id=self.job_id or "",
            prompt=request.prompt,
            created_at=now_utc_iso(),
            model=model,
            output_file=str(destination) if destination is not None else "",
            image_input=str(request.input_file) if request.input_file else None,
            remixed_from=request.remix_from or None,
        )
        self._append_history(entry)

    def _record_failure(self, request: JobRequest, model: str) -> None:
        if not self.settings.record_failures or not self.job_id:
            return
        entry = HistoryEntry(
            id=self.job_id,
            prompt=request.prompt,
            created_at=now_utc_iso(),
            model=model,
            image_input=str(request.input_file) if request.input_file else None,
            remixed_from=request.remix_from or None,
            status="failed",
        )
        self._append_history(entry)

    def _append_history(self, entry: HistoryEntry) -> None:
        try:
            self.history.append(entry)
        except HistoryWriteError as exc:
            logger.warning("failed to save to history: %s", exc)
            self._info(f"Warning: failed to save to history: {exc}")

    def _info(self, message: str) -> None:
        self.progress_stream.write(f"{message}\n")
        self.progress_stream.flush()


def _write_atomic(stream: ContentStream, destination: Path, meter: DownloadMeter) -> None:
    if destination.parent != Path(""):
        ensure_dir(destination.parent)
    part = destination.with_name(f"{destination.name}.part")
    try:
        with part.open("wb") as handle:
            for chunk in stream.iter_chunks():
                handle.write(chunk)
                meter.advance(len(chunk))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(part, destination)
    except BaseException:
        try:
            part.unlink()
        except FileNotFoundError:
            pass
        raise
