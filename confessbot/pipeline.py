"""
Submission pipeline.

RECEIVED -> cooldown gate -> ACCEPTED -> persisted -> public post -> admin log
-> acknowledged. The record is always stored before anything is posted, so a
failed or interrupted post never loses it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Protocol

from .cooldown import CooldownTracker
from .diagnostics import LOG_POST_FAILURE, Diagnostics, diagnostics as default_diagnostics
from .errors import ValidationError
from .ids import IdGenerator
from .store import ConfessionRecord, ConfessionStore

log = logging.getLogger(__name__)

DEFAULT_MIN_LENGTH = 10
DEFAULT_MAX_LENGTH = 2000


def validate_body(body: str, *, min_length: int = DEFAULT_MIN_LENGTH, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    text = (body or "").strip()
    n = len(text)
    if n < min_length:
        raise ValidationError(
            f"Confession is too short (min {min_length} characters).",
            length=n, min_length=min_length, max_length=max_length,
        )
    if n > max_length:
        raise ValidationError(
            f"Confession is too long (max {max_length} characters).",
            length=n, min_length=min_length, max_length=max_length,
        )
    return text


class Publisher(Protocol):
    async def post_public(self, record: ConfessionRecord) -> Any: ...

    async def post_log(self, record: ConfessionRecord, public_ref: Any) -> None: ...


class SubmissionState(enum.Enum):
    BLOCKED = "blocked"
    FAILED_PERSIST = "failed_persist"
    FAILED_PUBLIC = "failed_public"
    LOGGED_FAILED = "logged_failed"
    ACKNOWLEDGED = "acknowledged"


@dataclass
class SubmissionResult:
    state: SubmissionState
    record: Optional[ConfessionRecord] = None
    public_ref: Any = None
    remaining_wait: float = 0.0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        # A failed admin log is invisible to the submitter: the confession is live.
        return self.state in (SubmissionState.ACKNOWLEDGED, SubmissionState.LOGGED_FAILED)

    @property
    def anonymous_id(self) -> Optional[str]:
        return self.record.anonymous_id if self.record else None


@dataclass
class ConfessionStats:
    total: int
    today: int
    unique_submitters: int
    first: Optional[ConfessionRecord]
    latest: Optional[ConfessionRecord]


class SubmissionPipeline:
    def __init__(
        self,
        store: ConfessionStore,
        cooldowns: CooldownTracker,
        ids: IdGenerator,
        *,
        diagnostics: Optional[Diagnostics] = None,
        fail_closed: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.cooldowns = cooldowns
        self.ids = ids
        self.diagnostics = diagnostics or default_diagnostics
        self.fail_closed = fail_closed
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _new_record(self, submitter_id: int, display_name: str, body: str) -> ConfessionRecord:
        internal_id, anonymous_id = self.ids.next()
        now = self._clock().astimezone(timezone.utc)
        return ConfessionRecord(
            internal_id=internal_id,
            submitter_id=submitter_id,
            submitter_display_name=display_name,
            body=body,
            anonymous_id=anonymous_id,
            created_at=now.replace(microsecond=now.microsecond // 1000 * 1000),
        )

    async def submit(
        self,
        submitter_id: int,
        display_name: str,
        body: str,
        publisher: Publisher,
    ) -> SubmissionResult:
        # Everything up to the first await runs without interleaving, so the
        # gate check and the cooldown record are atomic per submitter.
        if self.cooldowns.is_blocked(submitter_id):
            return SubmissionResult(
                state=SubmissionState.BLOCKED,
                remaining_wait=self.cooldowns.remaining(submitter_id),
            )

        self.cooldowns.record_submission(submitter_id)
        record = self._new_record(submitter_id, display_name, body)

        self.store.append(record)
        if self.fail_closed and not self.store.last_write_ok:
            self.cooldowns.release(submitter_id)
            log.warning("Confession %s not posted: storage write failed", record.anonymous_id)
            return SubmissionResult(state=SubmissionState.FAILED_PERSIST, record=record)

        try:
            public_ref = await publisher.post_public(record)
        except Exception as e:
            # Stays stored for moderation; the submitter may retry right away.
            self.cooldowns.release(submitter_id)
            log.error("Failed to post confession %s publicly: %s", record.anonymous_id, e)
            return SubmissionResult(state=SubmissionState.FAILED_PUBLIC, record=record, error=e)

        try:
            await publisher.post_log(record, public_ref)
        except Exception as e:
            self.diagnostics.report(
                LOG_POST_FAILURE,
                f"Admin log post failed for {record.anonymous_id}",
                exc=e,
            )
            return SubmissionResult(
                state=SubmissionState.LOGGED_FAILED, record=record, public_ref=public_ref, error=e,
            )

        log.info("Posted confession %s", record.anonymous_id)
        return SubmissionResult(state=SubmissionState.ACKNOWLEDGED, record=record, public_ref=public_ref)

    # --- read side for the presentation layer ---
    def query_stats(self, now: Optional[datetime] = None) -> ConfessionStats:
        now = now or datetime.now(timezone.utc)
        midnight = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        return ConfessionStats(
            total=self.store.count(),
            today=self.store.count_on_or_after(midnight),
            unique_submitters=self.store.unique_submitters(),
            first=self.store.first(),
            latest=self.store.latest(),
        )

    def export_all(self) -> List[ConfessionRecord]:
        return self.store.export_all()

    def lookup(self, anonymous_id: str) -> Optional[ConfessionRecord]:
        return self.store.find_by_anonymous_id(anonymous_id)
