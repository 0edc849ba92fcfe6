"""Local history of generated videos, most recent first."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .config import DEFAULT_HISTORY_PATH
from .errors import EmptyHistory, HistoryError, HistoryWriteError, IndexOutOfRange, ResolutionError
from .utils import write_json_atomic


logger = logging.getLogger("sora_cli.history")

MAX_ENTRIES = 100
LAST_TOKEN = "@last"


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    prompt: str
    created_at: str
    model: str
    output_file: str = ""
    image_input: str | None = None
    remixed_from: str | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "prompt": self.prompt,
            "created_at": self.created_at,
        }
        if self.output_file:
            payload["output_file"] = self.output_file
        payload["model"] = self.model
        if self.image_input:
            payload["image_input"] = self.image_input
        if self.remixed_from:
            payload["remixed_from"] = self.remixed_from
        if self.status:
            payload["status"] = self.status
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(payload.get("id") or ""),
            prompt=str(payload.get("prompt") or ""),
            created_at=str(payload.get("created_at") or ""),
            model=str(payload.get("model") or ""),
            output_file=str(payload.get("output_file") or ""),
            image_input=payload.get("image_input") or None,
            remixed_from=payload.get("remixed_from") or None,
            status=payload.get("status") or None,
        )


class HistoryStore:
    """JSON-file backed history capped at ``max_entries``.

    Every append rewrites the whole document. Two processes appending at the
    same time can lose one of the writes.
    """

    def __init__(self, path: Path = DEFAULT_HISTORY_PATH, max_entries: int = MAX_ENTRIES) -> None:
        self.path = path
        self.max_entries = max(1, int(max_entries))

    def load(self) -> list[HistoryEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise HistoryError(f"reading history {self.path}: {exc}") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise HistoryError(f"parsing history {self.path}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise HistoryError(f"parsing history {self.path}: expected an object")
        videos = payload.get("videos") or []
        if not isinstance(videos, list):
            raise HistoryError(f"parsing history {self.path}: 'videos' is not a list")
        return [HistoryEntry.from_dict(item) for item in videos if isinstance(item, Mapping)]

    def append(self, entry: HistoryEntry) -> list[HistoryEntry]:
        try:
            entries = self.load()
        except HistoryError as exc:
            raise HistoryWriteError(str(exc)) from exc
        entries = [entry, *entries][: self.max_entries]
        try:
            write_json_atomic(self.path, {"videos": [item.to_dict() for item in entries]})
        except OSError as exc:
            raise HistoryWriteError(f"writing history {self.path}: {exc}") from exc
        logger.debug("Recorded %s in %s (%d entries)", entry.id, self.path, len(entries))
        return entries

    def resolve(self, reference: str) -> str:
        return self.resolve_entry(reference)[0]

    def resolve_entry(self, reference: str) -> tuple[str, HistoryEntry | None]:
        """Map a remix reference to a job id and the history entry it matched.

        ``@N`` picks the Nth most recent entry, ``@last`` the newest one, a
        recorded output filename (exact or base name) its job, and anything
        else is returned unchanged as a literal job id.
        """
        ref = reference.strip()
        if not ref:
            raise ResolutionError("empty remix reference")

        if ref.startswith("@"):
            entries = self.load()
            token = ref[1:]
            if ref == LAST_TOKEN:
                if not entries:
                    raise EmptyHistory(ref)
                return entries[0].id, entries[0]
            try:
                index = int(token)
            except ValueError:
                raise ResolutionError(f"invalid index: {ref}") from None
            if not entries:
                raise EmptyHistory(ref)
            if index < 0 or index >= len(entries):
                raise IndexOutOfRange(index, len(entries))
            return entries[index].id, entries[index]

        entries = self.load()
        match = _match_output_file(entries, ref)
        if match is not None:
            logger.debug("Resolved %s to %s by output file", ref, match.id)
            return match.id, match
        for entry in entries:
            if entry.id == ref:
                return ref, entry
        return ref, None


def _match_output_file(entries: list[HistoryEntry], ref: str) -> HistoryEntry | None:
    for entry in entries:
        if entry.output_file and entry.output_file == ref:
            return entry
    name = Path(ref).name
    for entry in entries:
        if entry.output_file and Path(entry.output_file).name == name:
            return entry
    return None


def format_listing(entries: list[HistoryEntry]) -> str:
    if not entries:
        return "No videos in history\n"
    lines = ["Video Generation History:", ""]
    for idx, entry in enumerate(entries):
        lines.append(f"[{idx}] {entry.id}")
        lines.append(f"    Created: {entry.created_at}")
        lines.append(f"    Model:   {entry.model}")
        lines.append(f"    Prompt:  {entry.prompt}")
        if entry.output_file:
            lines.append(f"    Output:  {entry.output_file}")
        if entry.image_input:
            lines.append(f"    Image:   {entry.image_input}")
        if entry.remixed_from:
            lines.append(f"    Remix:   {entry.remixed_from}")
        if entry.status:
            lines.append(f"    Status:  {entry.status}")
        lines.append("")
    return "\n".join(lines) + "\n"
