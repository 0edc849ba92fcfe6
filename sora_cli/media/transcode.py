"""External video transcoding capability."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol

from ..errors import TranscodeError


FFMPEG_INSTALL_HINT = (
    "ffmpeg is required but was not found in PATH.\n"
    "Please install ffmpeg:\n"
    "  Ubuntu/Debian: sudo apt-get install ffmpeg\n"
    "  macOS: brew install ffmpeg\n"
    "  Or download from: https://ffmpeg.org/download.html"
)


class Transcoder(Protocol):
    name: str

    def available(self) -> bool:
        ...

    def scale(self, source: Path, width: int, height: int) -> bytes:
        ...


class UnavailableTranscoder:
    name = "none"

    def available(self) -> bool:
        return False

    def scale(self, source: Path, width: int, height: int) -> bytes:
        raise TranscodeError(source, FFMPEG_INSTALL_HINT)


class FFmpegTranscoder:
    """Rescale video with the ``ffmpeg`` binary found on PATH.

    Output is H.264 at CRF 23 with audio dropped, written to a private temp
    file that is removed whether or not ffmpeg succeeds.
    """

    name = "ffmpeg"

    def __init__(self, executable: str = "ffmpeg", crf: int = 23, preset: str = "fast") -> None:
        self.executable = executable
        self.crf = crf
        self.preset = preset

    def resolve(self) -> str | None:
        return shutil.which(self.executable)

    def available(self) -> bool:
        return self.resolve() is not None

    def command(self, source: Path, out_path: Path, width: int, height: int) -> list[str]:
        return [
            self.resolve() or self.executable,
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            str(source),
            "-vf",
            f"scale={int(width)}:{int(height)}",
            "-c:v",
            "libx264",
            "-crf",
            str(int(self.crf)),
            "-preset",
            self.preset,
            "-an",
            "-y",
            str(out_path),
        ]

    def scale(self, source: Path, width: int, height: int) -> bytes:
        fd, tmp_name = tempfile.mkstemp(prefix="sora-resized-", suffix=".mp4")
        os.close(fd)
        out_path = Path(tmp_name)
        try:
            cmd = self.command(source, out_path, width, height)
            try:
                proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False)
            except OSError as exc:
                raise TranscodeError(source, f"ffmpeg could not be started: {exc}") from exc
            if proc.returncode != 0:
                output = proc.stderr.decode("utf-8", errors="replace").strip()
                raise TranscodeError(source, f"ffmpeg failed (exit={proc.returncode}):\n{output}")
            return out_path.read_bytes()
        finally:
            try:
                out_path.unlink()
            except FileNotFoundError:
                pass
