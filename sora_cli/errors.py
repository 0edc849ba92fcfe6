"""Error types raised across the Sora CLI."""

from __future__ import annotations

from pathlib import Path


class SoraError(RuntimeError):
    exit_code = 1


class ValidationError(SoraError):
    exit_code = 2


class ResolutionError(SoraError):
    pass


class EmptyHistory(ResolutionError):
    def __init__(self, reference: str) -> None:
        super().__init__(f"no videos in history to resolve {reference}")
        self.reference = reference


class IndexOutOfRange(ResolutionError):
    def __init__(self, index: int, count: int) -> None:
        super().__init__(f"index out of range: {index} (have {count} videos)")
        self.index = index
        self.count = count


class TransportError(SoraError):
    pass


class ApiError(SoraError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"API error ({status}): {body}")
        self.status = status
        self.body = body


class ProtocolError(SoraError):
    pass


class MissingJobId(ProtocolError):
    def __init__(self) -> None:
        super().__init__("missing job id in response")


class JobError(SoraError):
    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(f"job {job_id} failed: {message}")
        self.job_id = job_id
        self.message = message


class CancellationError(SoraError):
    exit_code = 130

    def __init__(self, reason: str, message: str | None = None) -> None:
        if message is None:
            if reason == "deadline":
                message = "not completed before deadline"
            else:
                message = "cancelled before completion"
        super().__init__(message)
        self.reason = reason

    @property
    def timed_out(self) -> bool:
        return self.reason == "deadline"


class MediaError(SoraError):
    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = Path(path)


class MediaNotFound(MediaError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "file does not exist")


class UnsupportedFormat(MediaError):
    pass


class DecodeError(MediaError):
    pass


class DimensionProbeError(MediaError):
    pass


class TranscodeUnavailable(MediaError):
    pass


class TranscodeError(MediaError):
    pass


class HistoryError(SoraError):
    pass


class HistoryWriteError(HistoryError):
    pass
