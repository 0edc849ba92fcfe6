"""Runtime settings resolved from the environment."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .utils import getenv_flag, getenv_float, getenv_str


DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_HISTORY_PATH = Path.home() / ".sora-cli" / "history.json"
DEFAULT_MODEL = "sora-2"
PRO_MODEL = "sora-2-pro"
DEFAULT_SIZE = "1280x720"
PORTRAIT_SIZE = "720x1280"
DEFAULT_SECONDS = "8"
ALLOWED_SECONDS = ("4", "8", "12")
MIN_POLL_INTERVAL_S = 0.5


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    api_base: str = DEFAULT_API_BASE
    organization: str | None = None
    project: str | None = None
    poll_interval_s: float = 3.0
    timeout_s: float = 900.0
    request_timeout_s: float = 60.0
    history_path: Path = DEFAULT_HISTORY_PATH
    record_failures: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        history = getenv_str("SORA_HISTORY_PATH")
        return cls(
            api_key=getenv_str("OPENAI_API_KEY") or getenv_str("OPENAI_API_KEY_BACKUP"),
            api_base=getenv_str("OPENAI_BASE_URL") or DEFAULT_API_BASE,
            organization=getenv_str("OPENAI_ORG_ID"),
            project=getenv_str("OPENAI_PROJECT_ID"),
            poll_interval_s=max(MIN_POLL_INTERVAL_S, getenv_float("SORA_POLL_INTERVAL", 3.0)),
            timeout_s=max(1.0, getenv_float("SORA_TIMEOUT", 900.0)),
            request_timeout_s=max(1.0, getenv_float("SORA_REQUEST_TIMEOUT", 60.0)),
            history_path=Path(history).expanduser() if history else DEFAULT_HISTORY_PATH,
            record_failures=getenv_flag("SORA_RECORD_FAILURES", False),
        )

    def with_overrides(self, **overrides: Any) -> "Settings":
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)
