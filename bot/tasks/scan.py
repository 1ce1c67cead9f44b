# bot/tasks/scan.py
import asyncio
import sqlite3
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

import discord
from discord.ext import tasks

import database
from loghelper import logger
from membership import ActionKind, DEFAULT_POLICY, format_window, safe_member_ids, decide, utcnow
from settings import ConfigError
from .pacing import FixedDelay
from .task_registry import register_task, mark_start, mark_finish

TASK_NAME = "Membership Scan"


@dataclass
class ScanSummary:
    trigger: str = "scheduled"
    scanned: int = 0
    promoted: int = 0
    demoted: int = 0
    kicked: int = 0
    skipped: int = 0
    errored: int = 0
    stopped: bool = False
    duration: float = 0.0

    @property
    def changed(self) -> int:
        return self.promoted + self.demoted + self.kicked

    def as_dict(self) -> dict:
        return asdict(self)

    def format(self) -> str:
        text = (
            f"**Check Complete:** Promoted: {self.promoted} | Demoted: {self.demoted} | "
            f"Kicked: {self.kicked} | Skipped: {self.skipped} | Errored: {self.errored}"
        )
        if self.stopped:
            text += " (stopped early)"
        return text


def demotion_notice(policy) -> str:
    return (
        "⚠️ **Subscription Expired:** Your access has ended. "
        f"You have {format_window(policy.demotion_window)} to resubscribe before removal."
    )


class ScanScheduler:
    """
    Sweeps every stored record and converges each member's roles.

    One instance per guild. Runs never overlap: a trigger that arrives while
    a scan is in progress is logged and dropped.
    """

    def __init__(self, directory, policy=DEFAULT_POLICY, pacer=None, interval_minutes: float = 10,
                 clock=utcnow, page_size: int = 200, notify=None):
        self.directory = directory
        self.policy = policy
        self.pacer = pacer or FixedDelay(0.5)
        self.interval_minutes = interval_minutes
        self.clock = clock
        self.page_size = page_size
        self.notify = notify  # async callable for the admin channel
        self.last_summary = None
        self.loop = None
        self._lock = asyncio.Lock()
        self._stop_requested = False

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def request_stop(self):
        self._stop_requested = True

    # ─────────────────────────────
    # Scheduled loop
    # ─────────────────────────────
    def start(self, client: discord.Client):
        if self.loop is not None and self.loop.is_running():
            return

        async def _scheduled():
            try:
                summary = await self.run_scan("scheduled")
            except ConfigError:
                return
            except Exception as e:
                logger.exception("⚠️ Scheduled scan failed: %s", e)
                return
            if summary and summary.changed and self.notify:
                await self.notify(summary.format())

        async def _before():
            await client.wait_until_ready()

        self.loop = tasks.loop(minutes=self.interval_minutes)(_scheduled)
        self.loop.before_loop(_before)
        register_task(TASK_NAME, self.loop, f"Every {self.interval_minutes:g} minutes")
        self._stop_requested = False
        self.loop.start()
        logger.info("🕑 Membership scan scheduled every %g minute(s) (%r).", self.interval_minutes, self.pacer)

    def stop(self):
        self.request_stop()
        if self.loop is not None:
            self.loop.stop()

    async def shutdown(self, timeout: float = 10) -> bool:
        """Stop scheduling and wait for an in-flight pass to finish its current member."""
        self.stop()
        if not self.running:
            return True
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout)
        except asyncio.TimeoutError:
            logger.warning("⚠️ Scan still running after %ss; shutting down anyway.", timeout)
            return False
        self._lock.release()
        return True

    # ─────────────────────────────
    # One pass
    # ─────────────────────────────
    async def run_scan(self, trigger: str = "manual"):
        if self._lock.locked():
            logger.info("⏭️ Scan already in progress; %s trigger coalesced.", trigger)
            return None

        async with self._lock:
            self._stop_requested = False
            started = datetime.now(timezone.utc)
            register_task(TASK_NAME, self.loop, f"Every {self.interval_minutes:g} minutes")
            mark_start(TASK_NAME, self.loop, trigger)
            summary = ScanSummary(trigger=trigger)
            logger.info("🔒 Membership scan started (%s).", trigger)

            try:
                await self.directory.resolve_guild()
                safe_ids = safe_member_ids(database.iter_members(self.page_size), self.clock())

                first = True
                for record in database.iter_members(self.page_size):
                    if self._stop_requested:
                        summary.stopped = True
                        logger.info("🛑 Scan stop requested; ending pass early.")
                        break
                    if not first:
                        await self.pacer.wait()
                    first = False
                    summary.scanned += 1
                    await self._reconcile_one(record.member_id, safe_ids, summary)
            except ConfigError as e:
                logger.critical("❌ Scan aborted, configuration problem: %s", e)
                raise
            finally:
                summary.duration = (datetime.now(timezone.utc) - started).total_seconds()
                self.last_summary = summary
                mark_finish(TASK_NAME, started, self.loop, summary.as_dict())

            logger.info("✅ %s", summary.format().replace("**", ""))
            return summary

    async def _reconcile_one(self, member_id: str, safe_ids, summary: ScanSummary):
        try:
            member = await self.directory.fetch_member(member_id)
            if member is None:
                summary.skipped += 1
                return

            # Re-read after the fetch so a webhook that landed mid-scan wins.
            record = database.get_member(member_id)
            if record is None:
                summary.skipped += 1
                return

            now = self.clock()
            action = decide(
                record,
                self.directory.role_state(member),
                now,
                joined_at=member.joined_at,
                privileged=self.directory.is_privileged(member),
                safe_ids=safe_ids,
                policy=self.policy,
            )
            await self.apply(action, member, summary)

        except (discord.Forbidden, discord.HTTPException) as e:
            summary.errored += 1
            logger.warning("⚠️ Discord rejected change for %s: %s", member_id, e)
        except sqlite3.Error as e:
            summary.errored += 1
            logger.error("⚠️ Record store error for %s: %s", member_id, e)
        except (asyncio.TimeoutError, OSError) as e:
            summary.errored += 1
            logger.error("⚠️ I/O failure for %s: %s: %s", member_id, type(e).__name__, e)
        except ConfigError:
            raise
        except Exception as e:
            summary.errored += 1
            logger.error("⚠️ Error reconciling %s: %s: %s", member_id, type(e).__name__, e)

    async def apply(self, action, member, summary: ScanSummary):
        if action.kind is ActionKind.PROMOTE:
            await self.directory.promote(member, reason=action.reason)
            summary.promoted += 1

        elif action.kind is ActionKind.DEMOTE:
            # Deadline first: a member must never lose ActiveRole with a passed deadline.
            database.set_link_deadline(action.member_id, action.link_deadline)
            await self.directory.demote(member, reason=action.reason)
            summary.demoted += 1
            await self.directory.send_dm(member, demotion_notice(self.policy))

        elif action.kind is ActionKind.KICK:
            await self.directory.kick(member, action.reason)
            summary.kicked += 1

        else:
            summary.skipped += 1
