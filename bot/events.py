# bot/events.py
import traceback
import discord
import database
from loghelper import logger
from settings import ConfigError
from .onboarding import handle_member_join


def register_events(bot):

    @bot.event
    async def on_ready():
        """Run startup routines once the bot is connected."""
        logger.info("✅ Logged in as %s", bot.user)
        if bot.startup_done:
            logger.info("🔁 Gateway reconnected; startup already complete.")
            return
        bot.startup_done = True

        # ─────────────────────────────
        # Validate guild + role configuration
        # ─────────────────────────────
        try:
            await bot.directory.validate()
        except ConfigError as e:
            logger.critical("❌ Configuration error: %s", e)
            bot.config_failed = True
            await bot.close()
            return

        # ─────────────────────────────
        # Heal duplicate records left by older deployments
        # ─────────────────────────────
        try:
            removed = database.dedupe_members()
            if removed:
                logger.warning("🧹 Removed %d duplicate record(s) on startup.", removed)
        except Exception as e:
            logger.error("⚠️ Duplicate cleanup failed: %s", e)

        # ─────────────────────────────
        # Sync slash commands to the managed guild
        # ─────────────────────────────
        logger.info("⚙️ Starting slash command sync...")
        try:
            guild = discord.Object(id=bot.settings.guild_id)
            bot.tree.copy_global_to(guild=guild)
            synced = await bot.tree.sync(guild=guild)
            logger.info("✅ Slash commands synced successfully: %d commands.", len(synced))
            for cmd in synced:
                logger.info(f"🔹 Synced: /{cmd.name}")
        except Exception as e:
            tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
            logger.error(f"❌ Slash command sync failed:\n{tb}")

        bot.scanner.start(bot)
        await bot.send_admin(f"✅ **{bot.user.name}** is online and enforcing link deadlines.")

    @bot.event
    async def on_member_join(member: discord.Member):
        """Gate new members and restore returning subscribers."""
        if member.guild.id != bot.settings.guild_id:
            return
        logger.info("👋 Member joined: %s (%s)", member.name, member.id)
        try:
            await handle_member_join(member, bot.directory, bot.settings.policy)
        except (discord.Forbidden, discord.HTTPException) as e:
            logger.error("⚠️ Could not gate %s: %s", member, e)
        except Exception as e:
            logger.error("⚠️ Join handling failed for %s: %s: %s", member, type(e).__name__, e)
