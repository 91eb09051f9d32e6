"""
Confessions Bot (anonymous public posts, identity-linked admin log)
- discord.py (latest) slash commands + modals + buttons
- Every confession is stored in a JSON file before anything is posted
- Public channel gets the text only; the log channel gets who wrote it
- Per-user cooldown between accepted confessions

Run:
  python -m confessbot

Env: see confessbot/config.py
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import tasks

from .config import Settings
from .cooldown import CooldownTracker
from .diagnostics import Diagnostics, diagnostics as default_diagnostics
from .errors import PublishError, ValidationError
from .health import HealthServer
from .ids import IdGenerator
from .pipeline import SubmissionPipeline, SubmissionState, validate_body
from .render import (
    build_confession_embed,
    build_log_embed,
    build_lookup_embed,
    build_prompt_embed,
    csv_file,
    format_cooldown_message,
    format_diagnostics,
    format_stats,
)
from .store import ConfessionRecord, ConfessionStore

log = logging.getLogger(__name__)

START_CONFESSION_ID = "start_confession"
PURGE_INTERVAL_MINUTES = 10

# HTTPException only covers API replies; connection drops and timeouts surface raw.
TRANSPORT_ERRORS = (discord.DiscordException, aiohttp.ClientError, OSError, asyncio.TimeoutError)


# -----------------------------
# Channel transport
# -----------------------------
class ChannelPublisher:
    """Posts a stored confession to the public channel and the admin log."""

    def __init__(self, bot: "ConfessionsBot"):
        self.bot = bot

    async def _resolve(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except TRANSPORT_ERRORS as e:
                raise PublishError(f"channel {channel_id} unavailable: {e}") from e
        if not isinstance(channel, discord.abc.Messageable):
            raise PublishError(f"channel {channel_id} is not a text channel")
        return channel

    async def post_public(self, record: ConfessionRecord) -> discord.Message:
        channel = await self._resolve(self.bot.settings.confession_channel_id)
        try:
            return await channel.send(
                embed=build_confession_embed(record),
                allowed_mentions=discord.AllowedMentions.none(),
            )
        except TRANSPORT_ERRORS as e:
            raise PublishError(f"public post failed: {e}") from e

    async def post_log(self, record: ConfessionRecord, public_ref: Optional[discord.Message]) -> None:
        channel = await self._resolve(self.bot.settings.log_channel_id)
        emb = build_log_embed(record, total=self.bot.store.count(), public_message=public_ref)
        try:
            await channel.send(embed=emb, allowed_mentions=discord.AllowedMentions.none())
        except TRANSPORT_ERRORS as e:
            raise PublishError(f"log post failed: {e}") from e


# -----------------------------
# Views + Modals
# -----------------------------
def build_start_view() -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="Make Anonymous Confession",
            style=discord.ButtonStyle.primary,
            emoji="📝",
            custom_id=START_CONFESSION_ID,
        )
    )
    return view


class ConfessModal(discord.ui.Modal, title="Anonymous Confession"):
    confession = discord.ui.TextInput(
        label="Your Confession",
        style=discord.TextStyle.long,
        required=True,
        min_length=10,
        max_length=2000,
        placeholder="Type your confession here...",
    )

    def __init__(self, bot: "ConfessionsBot"):
        super().__init__()
        self.bot = bot
        self.confession.min_length = bot.settings.min_length
        self.confession.max_length = bot.settings.max_length

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.handle_submission(interaction, str(self.confession.value))


# -----------------------------
# Bot
# -----------------------------
class ConfessionsBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        store: ConfessionStore,
        *,
        cooldowns: Optional[CooldownTracker] = None,
        ids: Optional[IdGenerator] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.messages = True
        intents.message_content = True  # needed for the !confess text commands
        super().__init__(intents=intents)

        self.tree = app_commands.CommandTree(self)
        self.settings = settings
        self.store = store
        self.diagnostics = diagnostics or default_diagnostics
        self.cooldowns = cooldowns or CooldownTracker(settings.cooldown_seconds)
        self.ids = ids or IdGenerator(last_id=store.last_internal_id())
        self.pipeline = SubmissionPipeline(
            store,
            self.cooldowns,
            self.ids,
            diagnostics=self.diagnostics,
            fail_closed=settings.strict_persistence,
        )
        self.publisher = ChannelPublisher(self)
        self.health: Optional[HealthServer] = None
        if settings.health_port:
            self.health = HealthServer(store, self.cooldowns, settings.health_port)

        self._register_commands()

    async def setup_hook(self) -> None:
        self.purge_cooldowns.start()
        if self.health is not None:
            await self.health.start()
        await self.tree.sync()

    async def on_ready(self) -> None:
        log.info("Logged in as %s; %d confessions on record", self.user, self.store.count())
        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name=f"{self.settings.command_prefix}confess to confess",
            )
        )

    async def close(self) -> None:
        if self.purge_cooldowns.is_running():
            self.purge_cooldowns.cancel()
        if self.health is not None:
            await self.health.stop()
        await super().close()

    @tasks.loop(minutes=PURGE_INTERVAL_MINUTES)
    async def purge_cooldowns(self) -> None:
        removed = self.cooldowns.purge_stale(self.cooldowns.window_seconds)
        if removed:
            log.debug("Purged %d expired cooldown entries", removed)

    # --- submission ---
    async def open_confess_modal(self, interaction: discord.Interaction) -> None:
        if self.cooldowns.is_blocked(interaction.user.id):
            await interaction.response.send_message(
                format_cooldown_message(self.cooldowns.remaining_minutes(interaction.user.id)),
                ephemeral=True,
            )
            return
        await interaction.response.send_modal(ConfessModal(self))

    async def handle_submission(self, interaction: discord.Interaction, raw_body: str) -> None:
        user = interaction.user
        try:
            body = validate_body(
                raw_body,
                min_length=self.settings.min_length,
                max_length=self.settings.max_length,
            )
        except ValidationError as e:
            await self._safe_ephemeral(interaction, f"❌ {e}")
            return

        # Cheap pre-check so blocked users get an answer without a deferred "thinking" state.
        if self.cooldowns.is_blocked(user.id):
            await self._safe_ephemeral(
                interaction, format_cooldown_message(self.cooldowns.remaining_minutes(user.id))
            )
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.pipeline.submit(user.id, str(user), body, self.publisher)

        if result.state is SubmissionState.BLOCKED:
            msg = format_cooldown_message(int(result.remaining_wait // 60))
        elif result.state is SubmissionState.FAILED_PUBLIC:
            msg = "❌ Error: Could not post confession."
        elif result.state is SubmissionState.FAILED_PERSIST:
            msg = "❌ Error: Could not save confession. Please try again shortly."
        else:
            msg = "✅ Your confession has been posted anonymously!"
        await self._safe_ephemeral(interaction, msg)

    # --- admin gate ---
    def is_admin(self, member: discord.abc.User) -> bool:
        if not isinstance(member, discord.Member):
            return False
        perms = member.guild_permissions
        if perms.administrator or perms.manage_guild:
            return True
        role_id = self.settings.admin_role_id
        return bool(role_id) and any(r.id == role_id for r in member.roles)

    async def _admin_gate(self, interaction: discord.Interaction) -> bool:
        if not interaction.guild:
            await interaction.response.send_message("Server-only.", ephemeral=True)
            return False
        if not self.is_admin(interaction.user):
            await interaction.response.send_message("You need the admin role to use this.", ephemeral=True)
            return False
        return True

    def _register_commands(self) -> None:
        @self.tree.command(name="confess", description="Post an anonymous confession.")
        async def confess(interaction: discord.Interaction):
            if not interaction.guild or not interaction.user:
                await interaction.response.send_message("This command can only be used in a server.", ephemeral=True)
                return
            await self.open_confess_modal(interaction)

        # Admin group
        admin_group = app_commands.Group(name="confession", description="Confession bot admin tools")

        @admin_group.command(name="stats", description="Show confession statistics.")
        async def stats(interaction: discord.Interaction):
            if not await self._admin_gate(interaction):
                return
            await interaction.response.send_message(format_stats(self.pipeline.query_stats()), ephemeral=True)

        @admin_group.command(name="export", description="Download every confession with author info as CSV.")
        async def export(interaction: discord.Interaction):
            if not await self._admin_gate(interaction):
                return
            records = self.pipeline.export_all()
            if not records:
                await interaction.response.send_message("📭 No confessions have been made yet.", ephemeral=True)
                return
            await interaction.response.send_message(
                f"📊 **All Confessions Log**\n**Total:** {len(records)}",
                file=csv_file(records),
                ephemeral=True,
            )

        @admin_group.command(name="lookup", description="Show who wrote a confession.")
        @app_commands.describe(confession_id="Confession ID, e.g. CONF-LOYW3V28")
        async def lookup(interaction: discord.Interaction, confession_id: str):
            if not await self._admin_gate(interaction):
                return
            record = self.pipeline.lookup(confession_id)
            if record is None:
                await interaction.response.send_message(f"No confession with ID `{confession_id}`.", ephemeral=True)
                return
            await interaction.response.send_message(embed=build_lookup_embed(record), ephemeral=True)

        @admin_group.command(name="errors", description="Show recent storage/log failures.")
        async def errors(interaction: discord.Interaction):
            if not await self._admin_gate(interaction):
                return
            await interaction.response.send_message(
                format_diagnostics(self.diagnostics.recent(10)), ephemeral=True
            )

        self.tree.add_command(admin_group)

    # --- legacy text commands ---
    async def on_message(self, message: discord.Message) -> None:
        if not message.guild or message.author.bot:
            return

        prefix = self.settings.command_prefix
        command = message.content.strip().lower()

        if command == f"{prefix}confess":
            try:
                await message.reply(embed=build_prompt_embed(), view=build_start_view())
            except discord.HTTPException as e:
                log.warning("Could not post confession prompt in %s: %s", message.channel.id, e)
            return

        if command == f"{prefix}confessionslog":
            await self._send_legacy_export(message)

    async def _send_legacy_export(self, message: discord.Message) -> None:
        if not self.is_admin(message.author):
            await message.reply("❌ You need the admin role to use that command.")
            return

        records = self.pipeline.export_all()
        if not records:
            await message.reply("📭 No confessions have been made yet.")
            return

        try:
            await message.channel.send(
                content=f"📊 **All Confessions Log**\n**Total:** {len(records)}\nDownload the CSV file below:",
                file=csv_file(records),
            )
        except discord.HTTPException as e:
            log.warning("CSV export failed in %s: %s", message.channel.id, e)

    # --- persistent button ---
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type != discord.InteractionType.component:
            return
        if not interaction.data or not isinstance(interaction.data, dict):
            return
        if interaction.data.get("custom_id") != START_CONFESSION_ID:
            return
        if interaction.response.is_done():
            return
        try:
            await self.open_confess_modal(interaction)
        except discord.HTTPException as e:
            log.warning("Could not open confession modal: %s", e)

    async def _safe_ephemeral(self, interaction: discord.Interaction, message: str) -> None:
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as e:
            log.warning("Could not reply to interaction %s: %s", interaction.id, e)


# -----------------------------
# Entrypoint
# -----------------------------
def main() -> None:
    settings = Settings.from_env()
    discord.utils.setup_logging(level=settings.log_level_value)

    store = ConfessionStore(settings.storage_path)
    store.load()

    bot = ConfessionsBot(settings, store)
    bot.run(settings.token, log_handler=None)

if __name__ == "__main__":
    main()
