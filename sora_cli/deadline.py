"""Overall deadline and cancellation signal shared by one job run."""

from __future__ import annotations

import threading
import time
from typing import Callable

from .errors import CancellationError


class Deadline:
    """A wall-clock budget plus an external cancel flag.

    Network calls clamp their socket timeout to ``remaining()`` and the
    polling loop sleeps through ``wait()``, so either firing unwinds the run
    within one tick. Cancellation takes precedence over expiry.
    """

    def __init__(
        self,
        timeout_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = clock() + max(0.0, timeout_s)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self) -> None:
        if self._cancelled.is_set():
            raise CancellationError("cancelled")
        if self.expired():
            raise CancellationError("deadline")

    def clamp(self, timeout_s: float) -> float:
        self.check()
        return max(0.001, min(timeout_s, self.remaining()))

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, returning early when cancelled or expired."""
        self.check()
        self._cancelled.wait(min(max(0.0, seconds), self.remaining()))
        self.check()
