from __future__ import annotations

import time
from typing import Callable, Dict, Optional


class CooldownTracker:
    """
    Last accepted submission per submitter.

    Only accepted submissions are recorded; blocked attempts never extend the
    window. A submission at exactly last + window is allowed.
    """

    def __init__(self, window_seconds: float, clock: Optional[Callable[[], float]] = None):
        if window_seconds < 0:
            raise ValueError("cooldown window must be >= 0")
        self.window_seconds = window_seconds
        self._clock = clock or time.time
        self._last: Dict[int, float] = {}

    def __len__(self) -> int:
        return len(self._last)

    def __contains__(self, submitter_id: int) -> bool:
        return submitter_id in self._last

    def remaining(self, submitter_id: int) -> float:
        last = self._last.get(submitter_id)
        if last is None:
            return 0.0
        elapsed = self._clock() - last
        if elapsed < self.window_seconds:
            return self.window_seconds - elapsed
        return 0.0

    def is_blocked(self, submitter_id: int) -> bool:
        return self.remaining(submitter_id) > 0

    def remaining_minutes(self, submitter_id: int) -> int:
        # Integer division under-reports by up to 59s; kept as-is for display.
        return int(self.remaining(submitter_id) // 60)

    def record_submission(self, submitter_id: int) -> None:
        self._last[submitter_id] = self._clock()

    def release(self, submitter_id: int) -> None:
        self._last.pop(submitter_id, None)

    def purge_stale(self, threshold_seconds: float) -> int:
        """Drop entries older than ``threshold_seconds``; returns how many were removed."""
        now = self._clock()
        stale = [uid for uid, last in self._last.items() if now - last > threshold_seconds]
        for uid in stale:
            del self._last[uid]
        return len(stale)
