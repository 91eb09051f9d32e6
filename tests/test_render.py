import csv
import io
from datetime import datetime, timezone

from confessbot.diagnostics import Diagnostics
from confessbot.pipeline import ConfessionStats
from confessbot.render import (
    CSV_HEADER,
    build_confession_embed,
    build_log_embed,
    defang_everyone_here,
    format_cooldown_message,
    format_diagnostics,
    format_stats,
    render_csv,
)
from confessbot.store import ConfessionRecord


def record(body="I ate the last cookie.", **kw):
    data = dict(
        internal_id=1700000000000,
        submitter_id=123456789012345678,
        submitter_display_name="someone",
        body=body,
        anonymous_id="CONF-LOYW3V28",
        created_at=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
    )
    data.update(kw)
    return ConfessionRecord(**data)


def test_public_embed_hides_identity():
    emb = build_confession_embed(record(body="hi @everyone and @here"))
    rendered = str(emb.to_dict())
    assert "someone" not in rendered
    assert "123456789012345678" not in rendered
    assert "CONF-" not in rendered
    assert "@everyone" not in emb.description
    assert emb.footer.text == "Anonymous Confession"


def test_log_embed_carries_identity():
    emb = build_log_embed(record(), total=7)
    fields = {f.name: f.value for f in emb.fields}
    assert fields["Confession ID"] == "CONF-LOYW3V28"
    assert "123456789012345678" in fields["User"]
    assert fields["Timestamp"] == "<t:1700000000:F>"
    assert emb.footer.text == "Total Confessions: 7"


def test_log_embed_keeps_whole_long_body():
    body = "".join(chr(ord("a") + i % 26) for i in range(4000))
    emb = build_log_embed(record(body=body), total=1)
    parts = [f for f in emb.fields if f.name.startswith("Confession") and f.name != "Confession ID"]
    assert [f.name for f in parts] == ["Confession"] + ["Confession (cont.)"] * 3
    assert all(len(f.value) <= 1024 for f in parts)
    assert "".join(f.value for f in parts) == body
    assert len(emb) <= 6000


def test_log_embed_short_body_single_field():
    emb = build_log_embed(record(), total=1)
    fields = [f for f in emb.fields if f.name.startswith("Confession (")]
    assert fields == []
    assert {f.name: f.value for f in emb.fields}["Confession"] == "I ate the last cookie."


def test_defang():
    assert defang_everyone_here("@everyone @here") == "@\u200beveryone @\u200bhere"


def test_csv_export():
    rows = [record(), record(body='line one\nsaid "hi", twice', anonymous_id="CONF-2")]
    parsed = list(csv.reader(io.StringIO(render_csv(rows))))
    assert parsed[0] == CSV_HEADER
    assert parsed[1] == [
        "CONF-LOYW3V28", "123456789012345678", "someone",
        "2023-11-14T22:13:20.000Z", "I ate the last cookie.",
    ]
    assert parsed[2][4] == 'line one said "hi", twice'
    assert len(parsed) == 3


def test_csv_export_empty_has_header_only():
    assert render_csv([]) == ",".join(CSV_HEADER) + "\n"


def test_cooldown_message():
    assert "3 minutes" in format_cooldown_message(3)
    assert "1 minute**" in format_cooldown_message(1)
    assert "less than a minute" in format_cooldown_message(0)


def test_stats_text():
    text = format_stats(ConfessionStats(total=3, today=1, unique_submitters=2, first=record(), latest=record()))
    assert "**Total:** 3" in text
    assert "**Today:** 1" in text
    assert "**Unique submitters:** 2" in text
    assert "<t:1700000000:F>" in text


def test_stats_text_empty():
    text = format_stats(ConfessionStats(total=0, today=0, unique_submitters=0, first=None, latest=None))
    assert "First" not in text


def test_diagnostics_text():
    diag = Diagnostics()
    assert format_diagnostics(diag.recent()) == "No errors recorded."
    diag.report("persistence", "disk full")
    assert "**persistence**: disk full" in format_diagnostics(diag.recent())
