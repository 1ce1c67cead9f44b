import os
import sqlite3
from datetime import datetime, timezone

from membership import MemberRecord, STATUS_UNLINKED
from loghelper import logger

# ─────────────────────────────
# Database Path (Persistent)
# ─────────────────────────────
DB_PATH = os.path.join("data", "members.db")
DB_TIMEOUT = 5.0

# ─────────────────────────────
# Schema Version Tracking
# ─────────────────────────────
SCHEMA_VERSION = 2  # bump this when database structure changes


def parse_iso(dt: str | None):
    if not dt:
        return None
    try:
        parsed = datetime.fromisoformat(dt)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(dt: datetime | None):
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _connect():
    return sqlite3.connect(DB_PATH, timeout=DB_TIMEOUT)


def _to_record(row) -> MemberRecord:
    discord_id, status, subscription_end, link_deadline = row
    return MemberRecord(
        member_id=str(discord_id),
        subscription_status=status or STATUS_UNLINKED,
        subscription_end=parse_iso(subscription_end),
        link_deadline=parse_iso(link_deadline),
    )


def ensure_version_table(conn):
    """Ensure schema_version table exists and holds the current version."""
    c = conn.cursor()
    c.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER)")
    c.execute("SELECT version FROM schema_version")
    row = c.fetchone()
    if not row:
        c.execute("INSERT INTO schema_version VALUES (?)", (SCHEMA_VERSION,))
    elif row[0] < SCHEMA_VERSION:
        c.execute("UPDATE schema_version SET version=?", (SCHEMA_VERSION,))
    conn.commit()


# ─────────────────────────────
# Initialization
# ─────────────────────────────
def init_db(path: str | None = None, timeout: float | None = None):
    """Create or upgrade the members table, then heal duplicates and lock in uniqueness."""
    global DB_PATH, DB_TIMEOUT
    if path:
        DB_PATH = path
    if timeout:
        DB_TIMEOUT = float(timeout)

    folder = os.path.dirname(DB_PATH)
    if folder:
        os.makedirs(folder, exist_ok=True)

    conn = _connect()
    conn.execute("PRAGMA journal_mode=WAL")
    ensure_version_table(conn)
    c = conn.cursor()
    c.execute("""
        CREATE TABLE IF NOT EXISTS members (
            discord_id TEXT NOT NULL,
            subscription_status TEXT NOT NULL DEFAULT 'unlinked',
            subscription_end TEXT,
            link_deadline TEXT,
            created_at TEXT,
            updated_at TEXT
        )
    """)

    # Older tables may predate these columns
    new_columns = [
        ("subscription_end", "TEXT"),
        ("link_deadline", "TEXT"),
        ("created_at", "TEXT"),
        ("updated_at", "TEXT"),
    ]
    c.execute("PRAGMA table_info(members)")
    existing = {row[1] for row in c.fetchall()}
    for col_name, col_def in new_columns:
        if col_name not in existing:
            c.execute(f"ALTER TABLE members ADD COLUMN {col_name} {col_def}")
    conn.commit()
    conn.close()

    removed = dedupe_members()
    if removed:
        logger.warning("🧹 Removed %d duplicate member record(s).", removed)

    conn = _connect()
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_members_discord_id ON members(discord_id)")
    conn.commit()
    conn.close()
    logger.info("✅ Record store ready at %s", DB_PATH)


def dedupe_members() -> int:
    """Keep the newest row per discord_id and delete the rest."""
    conn = _connect()
    c = conn.cursor()
    c.execute("""
        DELETE FROM members
        WHERE rowid NOT IN (SELECT MAX(rowid) FROM members GROUP BY discord_id)
    """)
    removed = c.rowcount
    conn.commit()
    conn.close()
    return removed


# ─────────────────────────────
# Writes
# ─────────────────────────────
def upsert_member(discord_id, status, link_deadline):
    """Insert or overwrite a member's status and link deadline."""
    now = _now_iso()
    conn = _connect()
    c = conn.cursor()
    c.execute("""
        INSERT INTO members (discord_id, subscription_status, link_deadline, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(discord_id) DO UPDATE SET
            subscription_status=excluded.subscription_status,
            link_deadline=excluded.link_deadline,
            updated_at=excluded.updated_at
    """, (str(discord_id), status, _iso(link_deadline), now, now))
    conn.commit()
    conn.close()


def record_subscription(discord_id, status, subscription_end=None):
    """Store a status pushed by the payment backend; the link deadline is left alone."""
    now = _now_iso()
    conn = _connect()
    c = conn.cursor()
    c.execute("""
        INSERT INTO members (discord_id, subscription_status, subscription_end, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(discord_id) DO UPDATE SET
            subscription_status=excluded.subscription_status,
            subscription_end=excluded.subscription_end,
            updated_at=excluded.updated_at
    """, (str(discord_id), status, _iso(subscription_end), now, now))
    conn.commit()
    conn.close()


def register_unlinked(discord_id, link_deadline) -> bool:
    """Insert an unlinked record only if none exists. Returns True when a row was added."""
    now = _now_iso()
    conn = _connect()
    c = conn.cursor()
    c.execute("""
        INSERT INTO members (discord_id, subscription_status, link_deadline, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(discord_id) DO NOTHING
    """, (str(discord_id), STATUS_UNLINKED, _iso(link_deadline), now, now))
    added = c.rowcount == 1
    conn.commit()
    conn.close()
    return added


def set_link_deadline(discord_id, link_deadline):
    conn = _connect()
    c = conn.cursor()
    c.execute(
        "UPDATE members SET link_deadline=?, updated_at=? WHERE discord_id=?",
        (_iso(link_deadline), _now_iso(), str(discord_id)),
    )
    conn.commit()
    conn.close()


def update_status(discord_id, status):
    conn = _connect()
    c = conn.cursor()
    c.execute(
        "UPDATE members SET subscription_status=?, updated_at=? WHERE discord_id=?",
        (status, _now_iso(), str(discord_id)),
    )
    updated = c.rowcount
    conn.commit()
    conn.close()
    return updated > 0


def wipe_members() -> int:
    """Administrative reset: delete every member record."""
    conn = _connect()
    c = conn.cursor()
    c.execute("DELETE FROM members")
    removed = c.rowcount
    conn.commit()
    conn.close()
    return removed


# ─────────────────────────────
# Query Functions
# ─────────────────────────────
def get_member(discord_id) -> MemberRecord | None:
    conn = _connect()
    c = conn.cursor()
    c.execute(
        "SELECT discord_id, subscription_status, subscription_end, link_deadline "
        "FROM members WHERE discord_id=?",
        (str(discord_id),),
    )
    row = c.fetchone()
    conn.close()
    return _to_record(row) if row else None


def iter_members(page_size: int = 200):
    """Yield every record in discord_id order, one page per connection."""
    last_id = ""
    while True:
        conn = _connect()
        c = conn.cursor()
        c.execute(
            "SELECT discord_id, subscription_status, subscription_end, link_deadline "
            "FROM members WHERE discord_id > ? ORDER BY discord_id LIMIT ?",
            (last_id, page_size),
        )
        rows = c.fetchall()
        conn.close()

        for row in rows:
            yield _to_record(row)

        if len(rows) < page_size:
            return
        last_id = str(rows[-1][0])


def count_members() -> int:
    conn = _connect()
    c = conn.cursor()
    c.execute("SELECT COUNT(*) FROM members")
    (count,) = c.fetchone()
    conn.close()
    return count
