# bot/discord_adapter.py
import asyncio
import discord
from loghelper import logger
from membership import RoleState
from settings import ConfigError


class DiscordDirectory:
    """
    Typed access to the guild's members, the two managed roles, and DMs.

    Member fetches always go to the API (not the cache) so callers act on
    live role state.
    """

    def __init__(self, client: discord.Client, guild_id: int, unlinked_role_id: int, active_role_id: int):
        self.client = client
        self.guild_id = guild_id
        self.unlinked_role_id = unlinked_role_id
        self.active_role_id = active_role_id
        self._guild = None

    # ───────────────────────────────
    # Guild + configuration checks
    # ───────────────────────────────
    async def resolve_guild(self) -> discord.Guild:
        if self._guild is not None:
            return self._guild
        guild = self.client.get_guild(self.guild_id)
        if guild is None:
            try:
                guild = await self.client.fetch_guild(self.guild_id)
            except (discord.NotFound, discord.Forbidden):
                raise ConfigError(f"Guild {self.guild_id} not found or not accessible")
        self._guild = guild
        return guild

    async def validate(self):
        """Fail fast if either configured role is missing from the guild."""
        guild = await self.resolve_guild()
        missing = [
            name for name, role_id in (("UnlinkedRoleID", self.unlinked_role_id), ("ActiveRoleID", self.active_role_id))
            if guild.get_role(role_id) is None
        ]
        if missing:
            raise ConfigError(f"Role(s) not present in guild {guild.name}: {', '.join(missing)}")
        logger.info("✅ Guild %s and managed roles verified.", guild.name)

    def _role(self, guild: discord.Guild, role_id: int):
        return guild.get_role(role_id) or discord.Object(id=role_id)

    # ───────────────────────────────
    # Reads
    # ───────────────────────────────
    async def fetch_member(self, member_id):
        """Return the live member, or None if they are no longer in the guild."""
        guild = await self.resolve_guild()
        try:
            return await guild.fetch_member(int(member_id))
        except discord.NotFound:
            return None

    async def iter_members(self):
        guild = await self.resolve_guild()
        async for member in guild.fetch_members(limit=None):
            yield member

    def role_state(self, member: discord.Member) -> RoleState:
        role_ids = {r.id for r in member.roles}
        return RoleState(
            has_unlinked=self.unlinked_role_id in role_ids,
            has_active=self.active_role_id in role_ids,
        )

    def is_privileged(self, member: discord.Member) -> bool:
        return bool(member.guild_permissions.administrator)

    # ───────────────────────────────
    # Mutations
    # ───────────────────────────────
    async def promote(self, member: discord.Member, reason: str = "Subscription active"):
        state = self.role_state(member)
        guild = member.guild
        if not state.has_active:
            await member.add_roles(self._role(guild, self.active_role_id), reason=reason)
        if state.has_unlinked:
            await member.remove_roles(self._role(guild, self.unlinked_role_id), reason=reason)
        logger.info("⬆️ Promoted %s (%s)", member, reason)

    async def demote(self, member: discord.Member, reason: str = "Subscription expired"):
        state = self.role_state(member)
        guild = member.guild
        if state.has_active:
            await member.remove_roles(self._role(guild, self.active_role_id), reason=reason)
        if not state.has_unlinked:
            await member.add_roles(self._role(guild, self.unlinked_role_id), reason=reason)
        logger.info("⬇️ Demoted %s (%s)", member, reason)

    async def grant_unlinked(self, member: discord.Member, reason: str = "Link required"):
        if not self.role_state(member).has_unlinked:
            await member.add_roles(self._role(member.guild, self.unlinked_role_id), reason=reason)

    async def kick(self, member: discord.Member, reason: str):
        await member.kick(reason=reason)
        logger.info("👞 Kicked %s (%s)", member, reason)

    async def send_dm(self, member: discord.Member, content: str | None = None, embed: discord.Embed | None = None) -> bool:
        """Best-effort DM; closed DMs are logged, never retried."""
        try:
            await member.send(content=content, embed=embed)
            logger.info("✉️ DM sent to %s", member)
            return True
        except (discord.Forbidden, discord.HTTPException) as err:
            logger.warning("⚠️ Couldn’t DM %s: %s", member, err)
            return False

    # ───────────────────────────────
    # Thread bridge (Flask → bot loop)
    # ───────────────────────────────
    def submit(self, coro):
        """Schedule a coroutine on the bot's loop from another thread."""
        if not self.client.is_ready():
            coro.close()
            logger.warning("⚠️ Discord not ready; deferring to the next scan.")
            return None
        future = asyncio.run_coroutine_threadsafe(coro, self.client.loop)

        def _report(fut):
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error("⚠️ Background Discord task failed: %s: %s", type(exc).__name__, exc)

        future.add_done_callback(_report)
        return future
