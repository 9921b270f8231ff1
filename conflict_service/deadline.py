"""
Caller-supplied deadline for one conflict check.
"""

import time
from typing import Optional

from .errors import CheckTimeoutError


class Deadline:
    """Monotonic deadline; `None` seconds means no deadline."""

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds if seconds and seconds > 0 else None
        self._expires_at = time.monotonic() + self.seconds if self.seconds else None

    @property
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, stage: str) -> None:
        """Raise CheckTimeoutError once the deadline has passed."""
        if self.expired():
            raise CheckTimeoutError(f"Conflict check exceeded {self.seconds}s deadline during {stage}")

    def statement_timeout_ms(self, ceiling_ms: int) -> int:
        """Per-statement timeout: the time left, capped at `ceiling_ms`, never below 1ms."""
        remaining = self.remaining
        if remaining is None:
            return ceiling_ms
        return max(1, min(ceiling_ms, int(remaining * 1000)))
