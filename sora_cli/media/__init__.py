"""Input media conforming."""

from __future__ import annotations

from .conform import MediaAsset, classify, conform, parse_size
from .transcode import FFmpegTranscoder, Transcoder, UnavailableTranscoder

__all__ = [
    "FFmpegTranscoder",
    "MediaAsset",
    "Transcoder",
    "UnavailableTranscoder",
    "classify",
    "conform",
    "parse_size",
]
