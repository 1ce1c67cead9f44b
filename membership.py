# membership.py
"""
Membership classification and the reconciliation decision.

Everything in here is pure: no Discord, no database. Every event path
(join, webhook, scheduled scan) gathers its inputs and calls `decide()`.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, NamedTuple, Optional

# ─────────────────────────────
# Subscription statuses (stored)
# ─────────────────────────────
STATUS_UNLINKED = "unlinked"
STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemberRecord:
    member_id: str
    subscription_status: str = STATUS_UNLINKED
    subscription_end: Optional[datetime] = None
    link_deadline: Optional[datetime] = None


class RoleState(NamedTuple):
    has_unlinked: bool
    has_active: bool


class MembershipClass(Enum):
    ACTIVE = "active"
    GRACE = "grace"
    UNLINKED = "unlinked"
    EXPIRED = "expired"


class ActionKind(Enum):
    PROMOTE = "promote"
    DEMOTE = "demote"
    KICK = "kick"
    NOOP = "noop"


@dataclass(frozen=True)
class ReconciliationAction:
    kind: ActionKind
    member_id: str
    reason: str
    link_deadline: Optional[datetime] = None  # only set on DEMOTE

    @property
    def is_noop(self) -> bool:
        return self.kind is ActionKind.NOOP


@dataclass(frozen=True)
class Policy:
    """Durations that drive deadlines and the join safety gate."""
    new_member_window: timedelta = field(default=timedelta(hours=24))
    returning_member_window: timedelta = field(default=timedelta(hours=1))
    demotion_window: timedelta = field(default=timedelta(hours=24))
    join_grace: timedelta = field(default=timedelta(seconds=120))


DEFAULT_POLICY = Policy()


# ─────────────────────────────
# Classification
# ─────────────────────────────
def classify(record: MemberRecord, now: datetime) -> MembershipClass:
    status = record.subscription_status
    if status == STATUS_ACTIVE:
        return MembershipClass.ACTIVE

    if status == STATUS_CANCELLED and record.subscription_end and record.subscription_end > now:
        return MembershipClass.GRACE

    if record.link_deadline and record.link_deadline < now:
        # unlinked, or cancelled with a lapsed/missing end date
        if status in (STATUS_UNLINKED, STATUS_CANCELLED):
            return MembershipClass.EXPIRED

    return MembershipClass.UNLINKED


def is_entitled(cls: MembershipClass) -> bool:
    return cls in (MembershipClass.ACTIVE, MembershipClass.GRACE)


def is_protected(
    now: datetime,
    joined_at: Optional[datetime] = None,
    privileged: bool = False,
    policy: Policy = DEFAULT_POLICY,
) -> bool:
    if privileged:
        return True
    if joined_at is None:
        return False
    return now - joined_at < policy.join_grace


def join_deadline(now: datetime, returning: bool, policy: Policy = DEFAULT_POLICY) -> datetime:
    """Returning members already went through onboarding once, so they get the short window."""
    window = policy.returning_member_window if returning else policy.new_member_window
    return now + window


def safe_member_ids(records: Iterable[MemberRecord], now: datetime) -> frozenset:
    """IDs of every entitled record; these are never demoted or kicked in the same pass."""
    return frozenset(r.member_id for r in records if is_entitled(classify(r, now)))


def format_window(window: timedelta) -> str:
    hours = int(window.total_seconds() // 3600)
    if hours >= 1 and window.total_seconds() % 3600 == 0:
        return "1 hour" if hours == 1 else f"{hours} hours"
    minutes = max(1, int(window.total_seconds() // 60))
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


# ─────────────────────────────
# Decision
# ─────────────────────────────
def decide(
    record: MemberRecord,
    roles: RoleState,
    now: datetime,
    joined_at: Optional[datetime] = None,
    privileged: bool = False,
    safe_ids: Iterable[str] = (),
    policy: Policy = DEFAULT_POLICY,
) -> ReconciliationAction:
    """
    Compute the single action that moves a member's roles toward their record.

    Precedence is fixed: protection gate, promote, demote, kick, no-op.
    Promotion is checked before anything destructive, so a member who just
    paid but is nominally past their deadline is promoted, never kicked.
    """
    member_id = record.member_id

    if is_protected(now, joined_at, privileged, policy):
        reason = "privileged member" if privileged else "joined within grace window"
        return ReconciliationAction(ActionKind.NOOP, member_id, f"protected: {reason}")

    cls = classify(record, now)

    if is_entitled(cls):
        if roles.has_unlinked or not roles.has_active:
            return ReconciliationAction(ActionKind.PROMOTE, member_id, f"subscription {cls.value}")
        return ReconciliationAction(ActionKind.NOOP, member_id, "already active")

    if member_id in safe_ids:
        return ReconciliationAction(ActionKind.NOOP, member_id, "in safe set for this pass")

    if roles.has_active:
        return ReconciliationAction(
            ActionKind.DEMOTE,
            member_id,
            "subscription expired" if cls is MembershipClass.EXPIRED else "no active subscription",
            link_deadline=now + policy.demotion_window,
        )

    if cls is MembershipClass.EXPIRED:
        return ReconciliationAction(ActionKind.KICK, member_id, "Link deadline expired.")

    return ReconciliationAction(ActionKind.NOOP, member_id, "awaiting link")
