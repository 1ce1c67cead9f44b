import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import discord
import pytest

import database
from membership import RoleState

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
UNLINKED_ROLE = 111
ACTIVE_ROLE = 222


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", os.path.join(tmp_path, "members.db"))
    database.init_db()
    return database


def forbidden(message="Missing Permissions"):
    return discord.Forbidden(SimpleNamespace(status=403, reason="Forbidden"), message)


class FakeMember:
    def __init__(self, member_id, roles=(), joined_at=None, admin=False, bot=False, name=None):
        self.id = int(member_id)
        self.roles = set(roles)
        self.joined_at = joined_at if joined_at is not None else NOW - timedelta(days=3)
        self.admin = admin
        self.bot = bot
        self.name = name or f"member{member_id}"

    def __str__(self):
        return self.name


class FakeDirectory:
    """In-memory stand-in for DiscordDirectory."""

    def __init__(self, members=()):
        self.members = {m.id: m for m in members}
        self.kicked = []
        self.dms = []
        self.failures = {}   # member_id -> exception raised on mutation
        self.on_fetch = {}   # member_id -> callable run before a fetch returns

    def add(self, member):
        self.members[member.id] = member
        return member

    async def resolve_guild(self):
        return SimpleNamespace(id=1, name="test guild")

    async def fetch_member(self, member_id):
        member_id = int(member_id)
        hook = self.on_fetch.get(member_id)
        if hook:
            hook()
        return self.members.get(member_id)

    async def iter_members(self):
        for member in list(self.members.values()):
            yield member

    def role_state(self, member):
        return RoleState(has_unlinked=UNLINKED_ROLE in member.roles, has_active=ACTIVE_ROLE in member.roles)

    def is_privileged(self, member):
        return member.admin

    def _maybe_fail(self, member):
        exc = self.failures.get(member.id)
        if exc is not None:
            raise exc

    async def promote(self, member, reason=""):
        self._maybe_fail(member)
        member.roles.add(ACTIVE_ROLE)
        member.roles.discard(UNLINKED_ROLE)

    async def demote(self, member, reason=""):
        self._maybe_fail(member)
        member.roles.discard(ACTIVE_ROLE)
        member.roles.add(UNLINKED_ROLE)

    async def grant_unlinked(self, member, reason=""):
        self._maybe_fail(member)
        member.roles.add(UNLINKED_ROLE)

    async def kick(self, member, reason):
        self._maybe_fail(member)
        self.kicked.append(member.id)
        self.members.pop(member.id, None)

    async def send_dm(self, member, content=None, embed=None):
        self.dms.append((member.id, content, embed))
        return True


@pytest.fixture
def directory():
    return FakeDirectory()
