from __future__ import annotations

from pathlib import Path

import pytest

from sora_cli import cli
from sora_cli.history import HistoryEntry, HistoryStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    history_path = tmp_path / "state" / "history.json"
    monkeypatch.setenv("SORA_HISTORY_PATH", str(history_path))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY_BACKUP", raising=False)
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    return history_path


def _fail_urlopen(req, timeout=0):
    raise AssertionError("no network call expected")


def _exit_code(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return int(excinfo.value.code)


def test_list_empty_history(capsys) -> None:
    assert _exit_code(["--list"]) == 0
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "No videos in history" in captured.err


def test_list_prints_entries_to_stderr(isolated_env: Path, capsys) -> None:
    HistoryStore(isolated_env).append(
        HistoryEntry(id="video_1", prompt="a fox", created_at="2026-01-01T00:00:00Z", model="sora-2")
    )
    assert _exit_code(["--list"]) == 0
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "[0] video_1" in captured.err


def test_remix_conflict_exits_before_network(monkeypatch, capsys) -> None:
    monkeypatch.setattr("sora_cli.providers.openai.urlopen", _fail_urlopen)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    assert _exit_code(["-p", "again", "--remix", "@last", "--seconds", "4", "--pro"]) == 2
    err = capsys.readouterr().err
    assert "--pro" in err
    assert "--seconds" in err


def test_portrait_and_landscape_conflict(capsys) -> None:
    assert _exit_code(["-p", "a fox", "--portrait", "--landscape"]) == 2
    assert "--portrait and --landscape" in capsys.readouterr().err


def test_missing_api_key(capsys) -> None:
    assert _exit_code(["-p", "a fox"]) == 1
    assert "OPENAI_API_KEY is not set" in capsys.readouterr().err


def test_remix_of_empty_history_fails_without_network(monkeypatch, capsys) -> None:
    monkeypatch.setattr("sora_cli.providers.openai.urlopen", _fail_urlopen)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    assert _exit_code(["-p", "again", "--remix", "@last"]) == 1
    assert "no videos in history" in capsys.readouterr().err


def test_build_request_maps_flags() -> None:
    args = cli._build_parser().parse_args(["-p", "a fox", "--pro", "--portrait", "--seconds", "12"])
    request = cli._build_request(args, "a fox")
    assert request.model == "sora-2-pro"
    assert request.size == "720x1280"
    assert request.seconds == "12"
    assert request.remix_from is None

    plain = cli._build_request(cli._build_parser().parse_args(["-p", "a fox"]), "a fox")
    assert (plain.model, plain.size, plain.seconds) == (None, None, None)
