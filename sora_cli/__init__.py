"""Submit, track, and download Sora video generation jobs."""

__version__ = "0.1.0"
