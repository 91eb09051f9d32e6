"""
Process-wide error side channel.

Failures that are deliberately not surfaced to the submitter (storage writes,
admin log posts, startup load problems) are logged and kept here so admins can
inspect them with /confession errors.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, List, Optional

log = logging.getLogger(__name__)

PERSISTENCE_FAILURE = "persistence"
LOG_POST_FAILURE = "log_post"
STARTUP_LOAD_FAILURE = "startup_load"


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: str
    message: str
    at: datetime


class Diagnostics:
    def __init__(self, maxlen: int = 50):
        self._events: Deque[DiagnosticEvent] = deque(maxlen=maxlen)

    def report(self, kind: str, message: str, *, exc: Optional[BaseException] = None) -> DiagnosticEvent:
        event = DiagnosticEvent(kind=kind, message=message, at=datetime.now(timezone.utc))
        self._events.append(event)
        if exc is not None:
            log.error("[%s] %s: %s", kind, message, exc)
        else:
            log.warning("[%s] %s", kind, message)
        return event

    def recent(self, limit: int = 10) -> List[DiagnosticEvent]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self._events)
        return sum(1 for e in self._events if e.kind == kind)

    def clear(self) -> None:
        self._events.clear()


diagnostics = Diagnostics()
