# bot/__init__.py
import discord
from discord import app_commands
from loghelper import logger

from .discord_adapter import DiscordDirectory
from .tasks.pacing import build_pacer
from .tasks.scan import ScanScheduler

# ─────────────────────────────
# Discord Bot Initialization
# ─────────────────────────────
intents = discord.Intents.default()
intents.members = True
intents.guilds = True


class LinkgateBot(discord.Client):
    def __init__(self, settings):
        super().__init__(intents=intents)
        self.settings = settings
        self.tree = app_commands.CommandTree(self)
        self.config_failed = False
        self.startup_done = False
        self.directory = DiscordDirectory(
            self, settings.guild_id, settings.unlinked_role_id, settings.active_role_id
        )
        self.scanner = ScanScheduler(
            self.directory,
            policy=settings.policy,
            pacer=build_pacer(settings),
            interval_minutes=settings.scan_interval_minutes,
            notify=self.send_admin,
        )

    async def send_admin(self, message: str):
        """Send a message to the configured admin channel, or log if unavailable."""
        channel_id = self.settings.admin_channel_id
        if not channel_id:
            logger.info("[ADMIN] %s", message)
            return

        channel = self.get_channel(channel_id)
        if channel:
            try:
                await channel.send(message)
                logger.info("[ADMIN] %s", message)
            except discord.HTTPException as e:
                logger.error("Failed to send admin message: %s", e)
        else:
            logger.warning("[ADMIN] Channel not found. Message: %s", message)

    async def close(self):
        await self.scanner.shutdown()
        await super().close()


def create_bot(settings) -> LinkgateBot:
    """Build the client and wire its events and commands."""
    from .events import register_events
    from .commands.admin_commands import register_admin_commands
    from .commands.user_commands import register_user_commands

    client = LinkgateBot(settings)
    register_events(client)
    register_admin_commands(client)
    register_user_commands(client)
    return client


__all__ = ["LinkgateBot", "create_bot"]
