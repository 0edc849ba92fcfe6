from __future__ import annotations

import time

from sora_cli.cli_progress import DownloadMeter, ProgressTicker


class FakeStream:
    def __init__(self, is_tty: bool) -> None:
        self._isatty = is_tty
        self.buffer: list[str] = []

    def isatty(self) -> bool:  # pragma: no cover - signature mimic
        return self._isatty

    def write(self, data: str) -> None:
        self.buffer.append(data)

    def flush(self) -> None:  # pragma: no cover - no-op for tests
        return None

    @property
    def text(self) -> str:
        return "".join(self.buffer)


def test_ticker_non_tty_prints_one_line_per_change() -> None:
    stream = FakeStream(is_tty=False)
    ticker = ProgressTicker("Generating video", stream=stream, interval_s=0.01)
    ticker.start_ticking()
    ticker.update(45)
    ticker.update(45)
    ticker.stop(done=True)
    lines = [line for line in stream.text.splitlines() if line.strip()]
    assert len(lines) == 3
    assert "Generating video" in lines[0]
    assert "45%" in lines[1]
    assert "Generated in" in lines[2]
    assert "\r" not in stream.text


def test_ticker_tty_updates_in_place() -> None:
    stream = FakeStream(is_tty=True)
    ticker = ProgressTicker("Generating video", stream=stream, interval_s=0.01)
    ticker.start_ticking()
    ticker.update(80)
    time.sleep(0.03)
    ticker.stop(done=True)
    output = stream.text
    assert "\r" in output
    assert "\x1b[K" in output
    assert "80%" in output
    assert output.count("Generated in") == 1


def test_ticker_stopped_without_completion_omits_summary() -> None:
    stream = FakeStream(is_tty=False)
    ticker = ProgressTicker("Generating video", stream=stream)
    ticker.start_ticking()
    ticker.stop(done=False)
    assert "Generated in" not in stream.text


def test_download_meter_counts_bytes() -> None:
    stream = FakeStream(is_tty=True)
    meter = DownloadMeter(2048, stream=stream)
    meter.advance(1024)
    meter.advance(1024)
    meter.finish()
    assert meter.written == 2048
    assert "(50.0%)" in stream.text
    assert "Downloaded 2.0 KiB" in stream.text


def test_download_meter_quiet_without_tty() -> None:
    stream = FakeStream(is_tty=False)
    meter = DownloadMeter(None, stream=stream)
    meter.advance(10)
    meter.finish()
    assert stream.text == "Downloaded 10.0 B\n"
