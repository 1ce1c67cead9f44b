# bot/commands/admin_commands.py
import sqlite3
import discord
from discord import app_commands
import database
from loghelper import logger
from settings import ConfigError
from ..onboarding import sync_existing
from ..tasks.scan import TASK_NAME
from ..tasks.task_registry import get_task


def _is_admin(interaction: discord.Interaction) -> bool:
    perms = getattr(interaction.user, "guild_permissions", None)
    return bool(perms and perms.administrator)


async def _deny(interaction: discord.Interaction):
    await interaction.response.send_message("❌ You don’t have permission to do this.", ephemeral=True)


def register_admin_commands(bot):

    # ────────────────────────────────
    # /force_check COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="force_check", description="Admins only: run a membership scan now.")
    @app_commands.default_permissions(administrator=True)
    async def force_check(interaction: discord.Interaction):
        if not _is_admin(interaction):
            await _deny(interaction)
            return

        if bot.scanner.running:
            await interaction.response.send_message("⏳ A scan is already running; try again shortly.", ephemeral=True)
            return

        await interaction.response.send_message("⏳ Running manual system check...", ephemeral=True)
        try:
            summary = await bot.scanner.run_scan(f"manual by {interaction.user}")
        except ConfigError as e:
            await interaction.followup.send(f"❌ Scan aborted: {e}", ephemeral=True)
            return

        if summary is None:
            await interaction.followup.send("⏳ A scan is already running; try again shortly.", ephemeral=True)
        else:
            await interaction.followup.send(summary.format(), ephemeral=True)

    # ────────────────────────────────
    # /sync_existing COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="sync_existing", description="Admins only: register current unlinked members with a fresh deadline.")
    @app_commands.default_permissions(administrator=True)
    async def sync_existing_cmd(interaction: discord.Interaction):
        if not _is_admin(interaction):
            await _deny(interaction)
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            count = await sync_existing(bot.directory, bot.settings.policy)
        except ConfigError as e:
            logger.critical("❌ Sync aborted, configuration problem: %s", e)
            await interaction.followup.send(f"❌ Sync aborted: {e}", ephemeral=True)
            return
        await interaction.followup.send(f"✅ Synced {count} members.", ephemeral=True)
        await bot.send_admin(f"🔄 Sync complete: {count} unlinked member(s) registered.")

    # ────────────────────────────────
    # /clean_db COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="clean_db", description="Admins only: remove duplicate member records.")
    @app_commands.default_permissions(administrator=True)
    async def clean_db(interaction: discord.Interaction):
        if not _is_admin(interaction):
            await _deny(interaction)
            return
        try:
            removed = database.dedupe_members()
        except sqlite3.Error as e:
            logger.error("⚠️ Duplicate cleanup failed: %s", e)
            await interaction.response.send_message("❌ Error cleaning DB.", ephemeral=True)
            return
        await interaction.response.send_message(f"✅ Duplicate records cleaned ({removed} removed).", ephemeral=True)

    # ────────────────────────────────
    # /wipe_db COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="wipe_db", description="Admins only: delete ALL member records.")
    @app_commands.describe(confirm="Must be True to actually wipe the table")
    @app_commands.default_permissions(administrator=True)
    async def wipe_db(interaction: discord.Interaction, confirm: bool = False):
        if not _is_admin(interaction):
            await _deny(interaction)
            return
        if not confirm:
            await interaction.response.send_message("⚠️ Re-run with `confirm: True` to wipe every record.", ephemeral=True)
            return
        if bot.scanner.running:
            await interaction.response.send_message("⏳ A scan is running; wipe refused.", ephemeral=True)
            return

        removed = database.wipe_members()
        logger.warning("🗑️ %s wiped %d member record(s).", interaction.user, removed)
        await interaction.response.send_message(f"🗑️ Wiped {removed} record(s).", ephemeral=True)
        await bot.send_admin(f"🗑️ {interaction.user.mention} wiped {removed} member record(s).")

    # ────────────────────────────────
    # /scan_status COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="scan_status", description="Admins only: show the last membership scan.")
    @app_commands.default_permissions(administrator=True)
    async def scan_status(interaction: discord.Interaction):
        if not _is_admin(interaction):
            await _deny(interaction)
            return

        task = get_task(TASK_NAME)
        embed = discord.Embed(title="🔁 Membership Scan", color=discord.Color.blurple())
        embed.add_field(name="Records", value=str(database.count_members()), inline=True)
        embed.add_field(name="Running", value="Yes" if bot.scanner.running else "No", inline=True)
        if task:
            embed.add_field(name="Interval", value=task["interval"], inline=True)
            embed.add_field(name="Last Run", value=task["last_execution"] or "-", inline=False)
            embed.add_field(name="Duration", value=task["last_duration"] or "-", inline=True)
            embed.add_field(name="Next Run", value=task["next_execution"] or "-", inline=True)
        summary = bot.scanner.last_summary
        if summary:
            embed.add_field(name="Result", value=summary.format(), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)
