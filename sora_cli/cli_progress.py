"""CLI progress helpers. Everything here writes to the side channel (stderr)."""

from __future__ import annotations

import os
import shutil
import sys
import threading
import time
from typing import TextIO

from .utils import format_duration, human_bytes

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RESET = "\x1b[0m"


def progress_line(
    label: str,
    start: float | None = None,
    percent: int | None = None,
    done: bool = False,
) -> tuple[str, float]:
    now = time.monotonic()
    origin = now if start is None else start
    elapsed = max(0, int(now - origin))
    minutes = elapsed // 60
    seconds = elapsed % 60
    suffix = "done" if done else "ctrl-c to cancel"
    pct = f" {percent}%" if percent is not None else ""
    return f"• {label}{pct} ({minutes}m {seconds:02d}s • {suffix})", origin


class ProgressTicker:
    def __init__(
        self,
        label: str,
        start: float | None = None,
        stream: TextIO | None = None,
        interval_s: float = 1.0,
    ) -> None:
        self.label = label
        self.start = start
        self.stream = stream or sys.stderr
        self.interval_s = max(0.01, interval_s)
        self.percent: int | None = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._enabled = bool(getattr(self.stream, "isatty", lambda: False)())
        self._started = False

    def start_ticking(self) -> None:
        line, origin = progress_line(self.label, self.start, self.percent)
        self.start = origin
        if not self._enabled:
            self._write_line(f"{_BOLD}{line}{_RESET}", newline=True)
            return
        self._write_line(f"{_BOLD}{line}{_RESET}", newline=False)
        self._started = True
        self._thread.start()

    def update(self, percent: int | None = None, label: str | None = None) -> None:
        changed = False
        if label is not None and label != self.label:
            self.label = label
            changed = True
        if percent is not None and percent != self.percent:
            self.percent = percent
            changed = True
        if not changed or self._stop.is_set():
            return
        line, _ = progress_line(self.label, self.start, self.percent)
        self._write_line(f"{_BOLD}{line}{_RESET}", newline=not self._enabled)

    def stop(self, done: bool = True) -> None:
        self._stop.set()
        if self._started:
            self._thread.join()
        if done:
            self._write_done_line()
        elif self._enabled:
            line, _ = progress_line(self.label, self.start, self.percent)
            self._write_line(f"{_BOLD}{line}{_RESET}", newline=True)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            line, _ = progress_line(self.label, self.start, self.percent)
            self._write_line(f"{_BOLD}{line}{_RESET}", newline=False)

    def _write_line(self, line: str, newline: bool) -> None:
        with self._lock:
            if not self._enabled:
                self.stream.write(f"{line}\n")
                self.stream.flush()
                return
            self.stream.write("\r")
            self.stream.write(line)
            self.stream.write("\033[K")
            if newline:
                self.stream.write("\n")
            self.stream.flush()

    def _write_done_line(self) -> None:
        elapsed = max(0, int(time.monotonic() - (self.start or time.monotonic())))
        duration = format_duration(elapsed)
        width = _resolve_terminal_width(self.stream, 100)
        line = _separator_line(f"Generated in {duration}", width)
        styled = f"{_GREY}{line}{_RESET}"
        with self._lock:
            if self._enabled:
                self.stream.write("\r")
                self.stream.write(styled)
                self.stream.write("\033[K\n")
            else:
                self.stream.write(f"{styled}\n")
            self.stream.flush()


class DownloadMeter:
    """Byte counter for a single transfer; the display runs on the same thread."""

    def __init__(self, total: int | None, stream: TextIO | None = None) -> None:
        self.total = total if total and total > 0 else None
        self.written = 0
        self.stream = stream or sys.stderr
        self._enabled = bool(getattr(self.stream, "isatty", lambda: False)())

    def advance(self, count: int) -> None:
        self.written += count
        if not self._enabled:
            return
        if self.total:
            pct = self.written / self.total * 100
            text = f"Downloading: {human_bytes(self.written)} / {human_bytes(self.total)} ({pct:.1f}%)"
        else:
            text = f"Downloading: {human_bytes(self.written)}"
        self.stream.write(f"\r{text}\033[K")
        self.stream.flush()

    def finish(self) -> None:
        prefix = "\r" if self._enabled else ""
        suffix = "\033[K" if self._enabled else ""
        self.stream.write(f"{prefix}Downloaded {human_bytes(self.written)}{suffix}\n")
        self.stream.flush()


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    right = remaining - left
    return f"{'─' * left}{content}{'─' * right}"


def _resolve_terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError):
            pass
    try:
        return shutil.get_terminal_size(fallback=(fallback, 20)).columns
    except OSError:
        return fallback
