"""
Confession storage.

Records live in memory in insertion order and are mirrored to a single JSON
file that is rewritten on every append. The file uses the same keys as the
original bot's confessions.json so existing data loads unchanged:

  [{"id": 1700000000000, "userId": "123", "username": "name#0",
    "confession": "...", "timestamp": "2024-01-01T00:00:00.000Z",
    "anonymousId": "CONF-LOYW3V28"}]
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .diagnostics import (
    PERSISTENCE_FAILURE,
    STARTUP_LOAD_FAILURE,
    Diagnostics,
    diagnostics as default_diagnostics,
)

log = logging.getLogger(__name__)


def format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: str) -> datetime:
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class ConfessionRecord:
    internal_id: int
    submitter_id: int
    submitter_display_name: str
    body: str
    anonymous_id: str
    created_at: datetime
    engagement_stats: Optional[Dict[str, int]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.internal_id,
            "userId": str(self.submitter_id),
            "username": self.submitter_display_name,
            "confession": self.body,
            "timestamp": format_timestamp(self.created_at),
            "anonymousId": self.anonymous_id,
        }
        if self.engagement_stats is not None:
            data["stats"] = dict(self.engagement_stats)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfessionRecord":
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        stats = data.get("stats")
        return cls(
            internal_id=int(data["id"]),
            submitter_id=int(data["userId"]),
            submitter_display_name=str(data.get("username", "")),
            body=str(data["confession"]),
            anonymous_id=str(data["anonymousId"]),
            created_at=parse_timestamp(str(data["timestamp"])),
            engagement_stats=dict(stats) if isinstance(stats, dict) else None,
        )


class ConfessionStore:
    def __init__(self, path: str, diagnostics: Optional[Diagnostics] = None):
        self.path = path
        self.diagnostics = diagnostics or default_diagnostics
        self._records: List[ConfessionRecord] = []
        self.last_write_ok = True

    # --- durable storage ---
    def load(self) -> int:
        """
        Read the whole file into memory. A missing, unreadable or corrupt file
        leaves an empty collection which is written straight back.
        """
        if not os.path.exists(self.path):
            self._records = []
            self._save()
            log.info("Created new confession storage at %s", self.path)
            return 0

        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
            if not isinstance(raw, list):
                raise ValueError(f"expected a JSON array, got {type(raw).__name__}")
            records = [ConfessionRecord.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._preserve_corrupt_file()
            self.diagnostics.report(
                STARTUP_LOAD_FAILURE,
                f"Could not load {self.path}; starting with an empty collection",
                exc=e,
            )
            self._records = []
            self._save()
            return 0

        self._records = records
        log.info("Loaded %d confessions from %s", len(records), self.path)
        return len(records)

    def _preserve_corrupt_file(self) -> None:
        backup = f"{self.path}.corrupt-{int(time.time())}"
        try:
            shutil.copyfile(self.path, backup)
            log.warning("Copied unreadable storage file to %s", backup)
        except OSError as e:
            log.warning("Could not back up unreadable storage file %s: %s", self.path, e)

    def _save(self) -> bool:
        tmp_path = f"{self.path}.tmp"
        payload = [r.to_dict() for r in self._records]
        try:
            folder = os.path.dirname(self.path)
            if folder:
                os.makedirs(folder, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            self.last_write_ok = False
            self.diagnostics.report(
                PERSISTENCE_FAILURE,
                f"Failed to write {len(payload)} confessions to {self.path}",
                exc=e,
            )
            return False
        self.last_write_ok = True
        return True

    # --- writes ---
    def append(self, record: ConfessionRecord) -> ConfessionRecord:
        """
        Add a fully-formed record and rewrite the file. Never raises on a
        failed write: the record stays in memory and ``last_write_ok`` is False.
        """
        self._records.append(record)
        self._save()
        return record

    # --- reads ---
    def find_by_anonymous_id(self, anonymous_id: str) -> Optional[ConfessionRecord]:
        wanted = anonymous_id.strip().upper()
        for record in self._records:
            if record.anonymous_id.upper() == wanted:
                return record
        return None

    def count(self) -> int:
        return len(self._records)

    def count_for_submitter(self, submitter_id: int) -> int:
        return sum(1 for r in self._records if r.submitter_id == submitter_id)

    def count_on_or_after(self, boundary: datetime) -> int:
        if boundary.tzinfo is None:
            boundary = boundary.replace(tzinfo=timezone.utc)
        return sum(1 for r in self._records if r.created_at >= boundary)

    def unique_submitters(self) -> int:
        return len({r.submitter_id for r in self._records})

    def first(self) -> Optional[ConfessionRecord]:
        return self._records[0] if self._records else None

    def latest(self) -> Optional[ConfessionRecord]:
        return self._records[-1] if self._records else None

    def last_internal_id(self) -> int:
        return max((r.internal_id for r in self._records), default=0)

    def export_all(self) -> List[ConfessionRecord]:
        return list(self._records)
