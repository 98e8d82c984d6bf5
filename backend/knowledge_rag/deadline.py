"""Monotonic deadline threaded through query-time retrieval."""

import time
from typing import Optional


class Deadline:
    """A point in time after which retrieval stops and returns what it has."""

    def __init__(self, timeout_seconds: Optional[float]):
        self.timeout_seconds = timeout_seconds
        self._expires_at = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, 0.0 once expired, None for an unbounded deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def __repr__(self) -> str:
        return f"Deadline(timeout_seconds={self.timeout_seconds}, remaining={self.remaining()})"
