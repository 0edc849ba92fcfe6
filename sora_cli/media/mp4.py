"""Read track geometry from ISO base media (MP4/MOV) containers.

Only box headers are walked: ``moov`` -> ``trak`` -> ``tkhd``. Sample data is
skipped with seeks, so probing a large file touches a few hundred bytes.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import BinaryIO, Iterator

from ..errors import DimensionProbeError


_CONTAINER_PATH = (b"moov", b"trak", b"tkhd")
# tkhd payload offset (after version/flags) of the 16.16 width field.
_TKHD_WIDTH_OFFSET = {0: 72, 1: 84}


def probe_dimensions(path: Path) -> tuple[int, int]:
    """Return ``(width, height)`` of the first visual track in ``path``."""
    try:
        with path.open("rb") as handle:
            size = handle.seek(0, 2)
            handle.seek(0)
            for payload in _find_boxes(handle, 0, size, _CONTAINER_PATH):
                dims = _tkhd_dimensions(payload)
                if dims is not None:
                    return dims
    except OSError as exc:
        raise DimensionProbeError(path, f"reading container: {exc}") from exc
    except struct.error as exc:
        raise DimensionProbeError(path, f"malformed container: {exc}") from exc
    raise DimensionProbeError(path, "video dimensions not found in MP4 container")


def _iter_boxes(handle: BinaryIO, start: int, end: int) -> Iterator[tuple[bytes, int, int]]:
    offset = start
    while offset + 8 <= end:
        handle.seek(offset)
        header = handle.read(8)
        if len(header) < 8:
            return
        size, box_type = struct.unpack(">I4s", header)
        header_len = 8
        if size == 1:
            (size,) = struct.unpack(">Q", handle.read(8))
            header_len = 16
        elif size == 0:
            size = end - offset
        if size < header_len or offset + size > end:
            raise struct.error(f"box {box_type!r} at {offset} has invalid size {size}")
        yield box_type, offset + header_len, offset + size
        offset += size


def _find_boxes(handle: BinaryIO, start: int, end: int, path: tuple[bytes, ...]) -> Iterator[bytes]:
    head, rest = path[0], path[1:]
    for box_type, body_start, body_end in _iter_boxes(handle, start, end):
        if box_type != head:
            continue
        if rest:
            yield from _find_boxes(handle, body_start, body_end, rest)
            continue
        handle.seek(body_start)
        yield handle.read(body_end - body_start)


def _tkhd_dimensions(payload: bytes) -> tuple[int, int] | None:
    if len(payload) < 4:
        return None
    offset = _TKHD_WIDTH_OFFSET.get(payload[0])
    if offset is None:
        return None
    start = 4 + offset
    if len(payload) < start + 8:
        return None
    width_fixed, height_fixed = struct.unpack(">II", payload[start : start + 8])
    width, height = width_fixed >> 16, height_fixed >> 16
    if width <= 0 or height <= 0:
        return None
    return width, height
