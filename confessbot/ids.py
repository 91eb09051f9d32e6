"""Time-derived confession identifiers (``CONF-<base36>``)."""

from __future__ import annotations

import time
from typing import Callable, Optional, Tuple

_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("base36 value must be non-negative")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


def anonymous_id_for(internal_id: int) -> str:
    return f"CONF-{to_base36(internal_id)}"


class IdGenerator:
    """
    Hands out (internal_id, anonymous_id) pairs.

    internal_id is the current epoch millisecond, bumped past the previous
    value when the clock stalls or steps backwards, so ids stay strictly
    increasing within the process.
    """

    def __init__(self, clock_ms: Optional[Callable[[], int]] = None, last_id: int = 0):
        self._clock_ms = clock_ms or now_ms
        self._last = last_id

    def seed(self, last_id: int) -> None:
        if last_id > self._last:
            self._last = last_id

    @property
    def last_id(self) -> int:
        return self._last

    def next(self) -> Tuple[int, str]:
        candidate = self._clock_ms()
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate, anonymous_id_for(candidate)
