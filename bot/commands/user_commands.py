# bot/commands/user_commands.py
import asyncio
import discord
from loghelper import logger
from helpers.verification import VerificationError, start_verification


def register_user_commands(bot):

    # ────────────────────────────────
    # /link COMMAND
    # ────────────────────────────────
    @bot.tree.command(name="link", description="Get your subscription verification link.")
    async def link(interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        settings = bot.settings
        loop = asyncio.get_running_loop()
        try:
            url = await loop.run_in_executor(
                None, start_verification, settings.backend_url, interaction.user.id, settings.backend_timeout
            )
        except VerificationError as e:
            logger.warning("⚠️ Verification start failed for %s: %s", interaction.user, e)
            await interaction.followup.send("❌ Connection error.", ephemeral=True)
            return

        if url:
            await interaction.followup.send(f"🔗 **Verify here:** {url}", ephemeral=True)
        else:
            logger.warning("⚠️ Backend returned no link for %s", interaction.user)
            await interaction.followup.send("❌ Backend error: Link missing.", ephemeral=True)
