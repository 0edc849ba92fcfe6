"""Remote video job clients."""

from __future__ import annotations

from .base import ContentStream, JobStatusReport, VideoClient
from .openai import OpenAIVideoClient

__all__ = ["ContentStream", "JobStatusReport", "OpenAIVideoClient", "VideoClient"]
