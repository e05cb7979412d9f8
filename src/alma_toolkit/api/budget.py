"""
Remaining API call budget shared by every request a client makes.
"""

import threading


class RateBudget:
    """Tracks the remaining number of calls Alma reports for the API key.

    The value is unknown until the first response arrives. Reports never raise
    the stored value; responses that complete out of order can carry an older,
    higher figure.
    """

    def __init__(self):
        self._remaining: int | None = None
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int | None:
        """Last known remaining call count, or None before any response."""
        with self._lock:
            return self._remaining

    def update(self, value: int) -> None:
        """Record the remaining call count reported with a response."""
        with self._lock:
            if self._remaining is None or value < self._remaining:
                self._remaining = value

    def exhausted(self, threshold: int) -> bool:
        """True once the known budget has dropped below threshold."""
        with self._lock:
            return self._remaining is not None and self._remaining < threshold

    def __repr__(self) -> str:
        return f"RateBudget(remaining={self.remaining})"
