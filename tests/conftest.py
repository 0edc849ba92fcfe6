from __future__ import annotations

import struct
from pathlib import Path
from typing import Callable

import pytest


def _box(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I4s", 8 + len(payload), kind) + payload


def _tkhd(width: int, height: int, version: int = 0) -> bytes:
    times = bytes(20) if version == 0 else bytes(32)
    body = (
        bytes([version])
        + b"\x00\x00\x07"
        + times
        + bytes(16)
        + bytes(36)
        + struct.pack(">II", width << 16, height << 16)
    )
    return _box(b"tkhd", body)


def build_mp4(width: int, height: int, *, version: int = 0) -> bytes:
    audio = _box(b"trak", _tkhd(0, 0, version))
    video = _box(b"trak", _tkhd(width, height, version) + _box(b"mdia", bytes(16)))
    moov = _box(b"moov", _box(b"mvhd", bytes(100)) + audio + video)
    ftyp = _box(b"ftyp", b"isom\x00\x00\x02\x00isomiso2mp41")
    mdat = _box(b"mdat", b"\x00" * 256)
    return ftyp + mdat + moov


@pytest.fixture
def write_mp4(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, width: int, height: int, *, version: int = 0) -> Path:
        path = tmp_path / name
        path.write_bytes(build_mp4(width, height, version=version))
        return path

    return _write
