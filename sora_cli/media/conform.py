"""Conform input images and videos to the upload geometry the API requires."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import (
    DecodeError,
    DimensionProbeError,
    MediaError,
    MediaNotFound,
    TranscodeUnavailable,
    UnsupportedFormat,
)
from .mp4 import probe_dimensions
from .transcode import FFMPEG_INSTALL_HINT, FFmpegTranscoder, Transcoder


logger = logging.getLogger("sora_cli.media")

IMAGE_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}
VIDEO_TYPES: dict[str, str] = {
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
}
# Containers whose track geometry can be read without ffmpeg.
_PROBEABLE_VIDEO = {".mp4", ".m4v", ".mov"}

# Pillow format name -> (extension, content type) for formats uploaded as-is.
_ENCODABLE = {
    "JPEG": (".jpg", "image/jpeg"),
    "PNG": (".png", "image/png"),
    "WEBP": (".webp", "image/webp"),
}
_WEBP_QUALITY = 90


@dataclass(frozen=True)
class MediaAsset:
    data: bytes
    filename: str
    content_type: str
    width: int
    height: int
    kind: str

    @property
    def is_image(self) -> bool:
        return self.kind == "image"


def classify(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in IMAGE_TYPES:
        return "image"
    if suffix in VIDEO_TYPES:
        return "video"
    return "unknown"


def parse_size(size: str) -> tuple[int, int]:
    parts = str(size or "").strip().lower().split("x")
    if len(parts) != 2:
        raise ValueError(f"invalid size {size!r}; expected WIDTHxHEIGHT")
    width, height = int(parts[0]), int(parts[1])
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid size {size!r}; dimensions must be positive")
    return width, height


def conform(
    path: Path | str,
    target_width: int,
    target_height: int,
    transcoder: Transcoder | None = None,
) -> MediaAsset:
    source = Path(path).expanduser()
    if not source.is_file():
        raise MediaNotFound(source)
    kind = classify(source)
    if kind == "image":
        return _conform_image(source, target_width, target_height)
    if kind == "video":
        return _conform_video(source, target_width, target_height, transcoder or FFmpegTranscoder())
    raise UnsupportedFormat(
        source,
        f"unsupported file type {source.suffix or '(none)'}; "
        f"expected one of {', '.join(sorted(IMAGE_TYPES) + sorted(VIDEO_TYPES))}",
    )


def _conform_image(source: Path, target_width: int, target_height: int) -> MediaAsset:
    raw = _read_bytes(source)
    try:
        with Image.open(io.BytesIO(raw)) as opened:
            opened.load()
            fmt = opened.format
            image = opened.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(source, f"decoding image: {exc}") from exc

    width, height = image.size
    if width <= 0 or height <= 0:
        raise DecodeError(source, f"image has no pixels ({width}x{height})")

    if (width, height) == (target_width, target_height) and fmt in _ENCODABLE:
        ext, content_type = _ENCODABLE[fmt]
        # Keep the name unless its extension disagrees with the decoded format.
        if IMAGE_TYPES.get(source.suffix.lower()) == content_type:
            filename = source.name
        else:
            filename = f"{source.stem}{ext}"
        return MediaAsset(
            data=raw,
            filename=filename,
            content_type=content_type,
            width=width,
            height=height,
            kind="image",
        )

    if (width, height) != (target_width, target_height):
        logger.debug("Filling %s from %dx%d to %dx%d", source, width, height, target_width, target_height)
        image = ImageOps.fit(
            image,
            (target_width, target_height),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

    out_format = fmt if fmt in _ENCODABLE else "JPEG"
    data = _encode_image(source, image, out_format)
    ext, content_type = _ENCODABLE[out_format]
    return MediaAsset(
        data=data,
        filename=f"{source.stem}{ext}",
        content_type=content_type,
        width=target_width,
        height=target_height,
        kind="image",
    )


def _encode_image(source: Path, image: Image.Image, out_format: str) -> bytes:
    buf = io.BytesIO()
    try:
        if out_format == "WEBP":
            image.save(buf, format="WEBP", quality=_WEBP_QUALITY, lossless=False)
        elif out_format == "PNG":
            image.save(buf, format="PNG")
        else:
            _flatten_for_jpeg(image).save(buf, format="JPEG")
    except (OSError, ValueError) as exc:
        raise MediaError(source, f"encoding image as {out_format}: {exc}") from exc
    return buf.getvalue()


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "L"}:
        return image
    if image.mode == "P":
        image = image.convert("RGBA")
    if image.mode in {"RGBA", "LA"}:
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        return background.convert("RGB")
    return image.convert("RGB")


def _conform_video(
    source: Path,
    target_width: int,
    target_height: int,
    transcoder: Transcoder,
) -> MediaAsset:
    if source.suffix.lower() not in _PROBEABLE_VIDEO:
        raise DimensionProbeError(
            source,
            f"only MP4/MOV geometry can be probed; convert {source.suffix} to .mp4 first",
        )
    width, height = probe_dimensions(source)
    if (width, height) == (target_width, target_height):
        return MediaAsset(
            data=_read_bytes(source),
            filename=source.name,
            content_type=VIDEO_TYPES[source.suffix.lower()],
            width=width,
            height=height,
            kind="video",
        )

    if not transcoder.available():
        raise TranscodeUnavailable(
            source,
            f"video is {width}x{height} but needs to be {target_width}x{target_height}.\n"
            f"{FFMPEG_INSTALL_HINT}",
        )

    logger.info(
        "Resizing video %s from %dx%d to %dx%d using %s",
        source,
        width,
        height,
        target_width,
        target_height,
        transcoder.name,
    )
    data = transcoder.scale(source, target_width, target_height)
    return MediaAsset(
        data=data,
        filename=f"{source.stem}.mp4",
        content_type="video/mp4",
        width=target_width,
        height=target_height,
        kind="video",
    )


def _read_bytes(source: Path) -> bytes:
    try:
        return source.read_bytes()
    except OSError as exc:
        raise MediaError(source, f"reading file: {exc}") from exc
