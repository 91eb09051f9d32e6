import json
import os
from datetime import datetime, timedelta, timezone

from confessbot.diagnostics import PERSISTENCE_FAILURE, STARTUP_LOAD_FAILURE
from confessbot.store import ConfessionRecord, ConfessionStore, format_timestamp, parse_timestamp


def make_record(n: int, submitter_id: int = 111, *, at: datetime = None) -> ConfessionRecord:
    at = at or datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc) + timedelta(minutes=n)
    return ConfessionRecord(
        internal_id=1_714_564_800_000 + n,
        submitter_id=submitter_id,
        submitter_display_name=f"user{submitter_id}",
        body=f"confession number {n}",
        anonymous_id=f"CONF-TEST{n}",
        created_at=at,
    )


def read_file(path):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def test_load_creates_missing_file(storage_path, diag):
    store = ConfessionStore(storage_path, diagnostics=diag)
    assert store.load() == 0
    assert read_file(storage_path) == []


def test_append_persists_whole_collection(store, storage_path):
    store.append(make_record(1))
    store.append(make_record(2))
    data = read_file(storage_path)
    assert [d["anonymousId"] for d in data] == ["CONF-TEST1", "CONF-TEST2"]
    assert data[0]["userId"] == "111"
    assert data[0]["timestamp"].endswith("Z")
    assert store.last_write_ok
    assert not os.path.exists(storage_path + ".tmp")


def test_round_trip_is_lossless(store, storage_path, diag):
    records = [make_record(i, submitter_id=1000 + i % 3) for i in range(5)]
    records[2].engagement_stats = {"views": 4, "reactions": 1}
    records[3].body = 'line one\nline "two", ünïcödé 🙂'
    for r in records:
        store.append(r)

    reloaded = ConfessionStore(storage_path, diagnostics=diag)
    assert reloaded.load() == 5
    assert reloaded.export_all() == records


def test_loads_file_written_by_original_bot(storage_path, diag):
    with open(storage_path, "w", encoding="utf-8") as fh:
        json.dump([{
            "id": 1700000000000,
            "userId": "123456789012345678",
            "username": "someone#0001",
            "confession": "I never read the docs.",
            "timestamp": "2023-11-14T22:13:20.000Z",
            "anonymousId": "CONF-LOYW3V28",
        }], fh)

    store = ConfessionStore(storage_path, diagnostics=diag)
    assert store.load() == 1
    rec = store.find_by_anonymous_id("CONF-LOYW3V28")
    assert rec.submitter_id == 123456789012345678
    assert rec.created_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert rec.engagement_stats is None


def test_corrupt_file_resets_to_empty_and_is_backed_up(storage_path, diag):
    with open(storage_path, "w", encoding="utf-8") as fh:
        fh.write("{not json")

    store = ConfessionStore(storage_path, diagnostics=diag)
    assert store.load() == 0
    assert store.count() == 0
    assert read_file(storage_path) == []
    assert diag.count(STARTUP_LOAD_FAILURE) == 1

    backups = [n for n in os.listdir(os.path.dirname(storage_path)) if ".corrupt-" in n]
    assert len(backups) == 1


def test_non_list_json_is_treated_as_corrupt(storage_path, diag):
    with open(storage_path, "w", encoding="utf-8") as fh:
        json.dump({"confessions": []}, fh)
    store = ConfessionStore(storage_path, diagnostics=diag)
    assert store.load() == 0
    assert read_file(storage_path) == []


def test_non_object_entries_are_treated_as_corrupt(storage_path, diag):
    with open(storage_path, "w", encoding="utf-8") as fh:
        json.dump([None, "junk"], fh)
    store = ConfessionStore(storage_path, diagnostics=diag)

    assert store.load() == 0
    assert read_file(storage_path) == []
    assert diag.count(STARTUP_LOAD_FAILURE) == 1
    backups = [n for n in os.listdir(os.path.dirname(storage_path)) if ".corrupt-" in n]
    assert len(backups) == 1


def test_failed_write_keeps_record_in_memory(tmp_path, diag):
    # Parent "directory" is a regular file, so every write fails.
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    store = ConfessionStore(str(blocker / "confessions.json"), diagnostics=diag)

    rec = store.append(make_record(1))

    assert rec is not None
    assert store.last_write_ok is False
    assert store.find_by_anonymous_id("CONF-TEST1") is rec
    assert diag.count(PERSISTENCE_FAILURE) == 1


def test_find_returns_first_match_case_insensitive(store):
    a = make_record(1)
    b = make_record(2)
    b.anonymous_id = a.anonymous_id
    store.append(a)
    store.append(b)
    assert store.find_by_anonymous_id("conf-test1") is a
    assert store.find_by_anonymous_id("CONF-NOPE") is None


def test_aggregate_counts(store):
    day = datetime(2024, 5, 2, tzinfo=timezone.utc)
    store.append(make_record(1, 1, at=day - timedelta(hours=1)))
    store.append(make_record(2, 1, at=day))
    store.append(make_record(3, 2, at=day + timedelta(hours=5)))

    assert store.count() == 3
    assert store.count() == len(store.export_all())
    assert store.count_for_submitter(1) == 2
    assert store.count_for_submitter(99) == 0
    assert store.count_on_or_after(day) == 2
    assert store.count_on_or_after(day.replace(tzinfo=None)) == 2
    assert store.unique_submitters() == 2
    assert store.first().anonymous_id == "CONF-TEST1"
    assert store.latest().anonymous_id == "CONF-TEST3"
    assert store.last_internal_id() == 1_714_564_800_003


def test_export_all_is_a_copy(store):
    store.append(make_record(1))
    exported = store.export_all()
    exported.clear()
    assert store.count() == 1


def test_timestamp_helpers():
    dt = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert format_timestamp(dt) == "2024-01-02T03:04:05.678Z"
    assert parse_timestamp("2024-01-02T03:04:05.678Z") == dt
    assert parse_timestamp("2024-01-02T03:04:05.678") == dt
