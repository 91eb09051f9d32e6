from __future__ import annotations

import csv
import io
from typing import Iterable, List, Optional

import discord

from .diagnostics import DiagnosticEvent
from .pipeline import ConfessionStats
from .store import ConfessionRecord, format_timestamp

PUBLIC_COLOR = 0xE91E63
LOG_COLOR = 0x2B2D31
PROMPT_COLOR = 0x5865F2

CSV_HEADER = ["Confession ID", "User ID", "Username", "Timestamp", "Confession"]
CSV_FILENAME = "confessions_log.csv"
FIELD_LIMIT = 1024

RULES = "• Be respectful\n• No personal information\n• No harassment\n• No spam"


# -----------------------------
# Utilities
# -----------------------------
def defang_everyone_here(text: str) -> str:
    # Extra safety beyond AllowedMentions.none()
    return (
        text.replace("@everyone", "@\u200beveryone")
            .replace("@here", "@\u200bhere")
    )

def jump_link(guild_id: int, channel_id: int, message_id: int) -> str:
    return f"https://discord.com/channels/{guild_id}/{channel_id}/{message_id}"

def clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else (text[: limit - 1] + "…")

def chunk_text(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]


# -----------------------------
# Embeds
# -----------------------------
def build_prompt_embed() -> discord.Embed:
    emb = discord.Embed(
        title="Anonymous Confession",
        description=(
            "Click the button below to make an anonymous confession.\n\n"
            "**Your identity will be completely hidden from everyone.**"
        ),
        color=PROMPT_COLOR,
    )
    emb.add_field(name="📋 Rules", value=RULES, inline=False)
    emb.set_footer(text="Click the button to begin")
    return emb

def build_confession_embed(record: ConfessionRecord) -> discord.Embed:
    # Public post: body only. No ids, no metadata.
    body = defang_everyone_here(record.body)
    emb = discord.Embed(description=clip(f"\"{body}\"", 4096), color=PUBLIC_COLOR)
    emb.set_footer(text="Anonymous Confession")
    return emb

def build_log_embed(
    record: ConfessionRecord,
    *,
    total: int,
    public_message: Optional[discord.Message] = None,
) -> discord.Embed:
    emb = discord.Embed(
        title="📋 New Confession Log",
        color=LOG_COLOR,
        timestamp=record.created_at,
    )
    emb.add_field(name="Confession ID", value=record.anonymous_id, inline=False)
    emb.add_field(
        name="User",
        value=f"{record.submitter_display_name}\nID: `{record.submitter_id}`",
        inline=False,
    )
    # Field values cap at 1024 characters; the admin copy keeps the whole body.
    for i, chunk in enumerate(chunk_text(record.body, FIELD_LIMIT)):
        emb.add_field(name="Confession" if i == 0 else "Confession (cont.)", value=chunk, inline=False)
    emb.add_field(name="Timestamp", value=f"<t:{int(record.created_at.timestamp())}:F>", inline=False)
    if public_message is not None and public_message.guild is not None:
        emb.add_field(
            name="Posted",
            value=jump_link(public_message.guild.id, public_message.channel.id, public_message.id),
            inline=False,
        )
    emb.set_footer(text=f"Total Confessions: {total}")
    return emb


def build_lookup_embed(record: ConfessionRecord) -> discord.Embed:
    emb = discord.Embed(title=record.anonymous_id, description=clip(record.body, 4096), color=LOG_COLOR)
    emb.add_field(name="User", value=f"{record.submitter_display_name} (`{record.submitter_id}`)", inline=False)
    emb.add_field(name="Submitted", value=f"<t:{int(record.created_at.timestamp())}:F>", inline=False)
    return emb


# -----------------------------
# Text
# -----------------------------
def format_stats(stats: ConfessionStats) -> str:
    lines = [
        f"**Total:** {stats.total}",
        f"**Today:** {stats.today}",
        f"**Unique submitters:** {stats.unique_submitters}",
    ]
    if stats.first is not None:
        lines.append(f"**First:** <t:{int(stats.first.created_at.timestamp())}:F>")
    if stats.latest is not None:
        lines.append(f"**Latest:** <t:{int(stats.latest.created_at.timestamp())}:R>")
    return "\n".join(lines)

def format_cooldown_message(remaining_minutes: int) -> str:
    if remaining_minutes <= 0:
        return "Slow down, you can confess again in **less than a minute**."
    unit = "minute" if remaining_minutes == 1 else "minutes"
    return f"Slow down, you can confess again in **{remaining_minutes} {unit}**."

def format_diagnostics(events: Iterable[DiagnosticEvent]) -> str:
    lines: List[str] = []
    for e in events:
        lines.append(f"`{e.at:%Y-%m-%d %H:%M:%S}` **{e.kind}**: {clip(e.message, 200)}")
    return "\n".join(lines) if lines else "No errors recorded."


# -----------------------------
# CSV export
# -----------------------------
def render_csv(records: Iterable[ConfessionRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in records:
        writer.writerow([
            r.anonymous_id,
            str(r.submitter_id),
            r.submitter_display_name,
            format_timestamp(r.created_at),
            r.body.replace("\r\n", " ").replace("\n", " "),
        ])
    return buf.getvalue()

def csv_file(records: Iterable[ConfessionRecord]) -> discord.File:
    data = render_csv(records).encode("utf-8")
    return discord.File(io.BytesIO(data), filename=CSV_FILENAME)
