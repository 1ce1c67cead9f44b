# bot/onboarding.py
"""Single-member paths: member joins, webhook activation, and bulk registration."""
import discord
import database
from loghelper import logger
from membership import (
    DEFAULT_POLICY, STATUS_UNLINKED, classify, format_window, is_entitled, join_deadline, utcnow
)


def link_required_embed(window_text: str, deadline) -> discord.Embed:
    embed = discord.Embed(
        title="🔒 Link Required",
        description=(
            f"Welcome! You have **{window_text}** to link your subscription "
            f"(until {discord.utils.format_dt(deadline, 'f')}).\n\n"
            "Type `/link` to start."
        ),
        color=discord.Color.orange(),
    )
    return embed


async def handle_member_join(member, directory, policy=DEFAULT_POLICY, now=None):
    """
    Gate a newly joined member.

    Returning subscribers are restored immediately and never re-gated.
    Everyone else gets the unlinked role, a deadline, and a one-time notice.
    Returns the new link deadline, or None if the member was restored/skipped.
    """
    if member.bot:
        return None

    now = now or utcnow()
    record = database.get_member(member.id)

    if record and is_entitled(classify(record, now)):
        logger.info("✅ Restoring active member %s", member)
        await directory.promote(member, reason="Returning subscriber")
        return None

    returning = record is not None
    deadline = join_deadline(now, returning, policy)
    database.upsert_member(member.id, STATUS_UNLINKED, deadline)
    await directory.grant_unlinked(member)

    window = policy.returning_member_window if returning else policy.new_member_window
    window_text = format_window(window)
    logger.info(
        "👋 %s member %s gated; link deadline in %s",
        "Returning" if returning else "New", member, window_text,
    )
    await directory.send_dm(member, embed=link_required_embed(window_text, deadline))
    return deadline


async def activate_member(member_id, directory) -> bool:
    """Low-latency promotion after the backend reports an active subscription."""
    member = await directory.fetch_member(member_id)
    if member is None:
        logger.info("ℹ️ Activated %s is not in the guild; next scan will finish it.", member_id)
        return False
    await directory.promote(member, reason="Subscription activated")
    logger.info("⚡ Webhook: %s upgraded to Active.", member)
    return True


async def sync_existing(directory, policy=DEFAULT_POLICY, now=None) -> int:
    """Register every unlinked-role holder who has no record yet."""
    now = now or utcnow()
    deadline = now + policy.new_member_window
    count = 0
    async for member in directory.iter_members():
        if member.bot:
            continue
        if not directory.role_state(member).has_unlinked:
            continue
        if database.register_unlinked(member.id, deadline):
            count += 1
    logger.info("🔄 Synced %d existing unlinked member(s).", count)
    return count
