# settings.py
import os
import configparser
from dataclasses import dataclass
from datetime import timedelta

from membership import Policy

CONFIG_PATH = os.path.join("config", "config.ini")
MAX_IO_TIMEOUT = 5.0


class ConfigError(Exception):
    """Structural misconfiguration; cannot be retried per member."""


@dataclass(frozen=True)
class Settings:
    token: str
    guild_id: int
    unlinked_role_id: int
    active_role_id: int
    admin_channel_id: int = 0
    backend_url: str = ""
    backend_timeout: float = MAX_IO_TIMEOUT
    listen_port: int = 3000
    db_path: str = os.path.join("data", "members.db")
    db_timeout: float = MAX_IO_TIMEOUT
    scan_interval_minutes: float = 10.0
    pacing: str = "fixed"
    pacing_delay: float = 0.5
    bucket_rate: float = 2.0
    bucket_burst: int = 1
    policy: Policy = Policy()
    log_dir: str = "logs"
    log_retention_days: int = 7


def _snowflake(raw, name: str, required: bool = True) -> int:
    raw = (str(raw) if raw is not None else "").strip()
    if not raw:
        if required:
            raise ConfigError(f"{name} is not configured")
        return 0
    if not raw.isdigit():
        raise ConfigError(f"{name} must be a numeric Discord ID, got {raw!r}")
    return int(raw)


def _timeout(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds")
    if value <= 0:
        raise ConfigError(f"{name} must be positive")
    return min(value, MAX_IO_TIMEOUT)


def load_settings(path: str = CONFIG_PATH, environ=None) -> Settings:
    """Read config.ini, apply environment overrides, and validate."""
    env = os.environ if environ is None else environ
    cfg = configparser.ConfigParser()
    cfg.read(path, encoding="utf-8")

    def get(section, key, fallback=""):
        return cfg.get(section, key, fallback=fallback).strip()

    token = env.get("DISCORD_TOKEN") or get("Discord", "BotToken")
    if not token:
        raise ConfigError("Discord bot token is missing (DISCORD_TOKEN or [Discord] BotToken)")

    pacing = get("Scan", "Pacing", "fixed").lower()
    if pacing not in ("fixed", "bucket"):
        raise ConfigError(f"[Scan] Pacing must be 'fixed' or 'bucket', got {pacing!r}")

    try:
        policy = Policy(
            new_member_window=timedelta(hours=cfg.getfloat("Policy", "NewMemberHours", fallback=24)),
            returning_member_window=timedelta(hours=cfg.getfloat("Policy", "ReturningMemberHours", fallback=1)),
            demotion_window=timedelta(hours=cfg.getfloat("Policy", "DemotionHours", fallback=24)),
            join_grace=timedelta(seconds=cfg.getfloat("Policy", "JoinGraceSeconds", fallback=120)),
        )
        listen_port = int(env.get("PORT") or get("Web", "ListenPort", "3000"))
        interval = cfg.getfloat("Scan", "IntervalMinutes", fallback=10)
        delay = cfg.getfloat("Scan", "DelaySeconds", fallback=0.5)
        bucket_rate = cfg.getfloat("Scan", "BucketRate", fallback=2.0)
        bucket_burst = cfg.getint("Scan", "BucketBurst", fallback=1)
        retention = cfg.getint("Logging", "RetentionDays", fallback=7)
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}")

    if interval <= 0:
        raise ConfigError("[Scan] IntervalMinutes must be positive")

    return Settings(
        token=token,
        guild_id=_snowflake(env.get("DISCORD_GUILD_ID") or get("Discord", "GuildID"), "GuildID"),
        unlinked_role_id=_snowflake(get("Discord", "UnlinkedRoleID"), "UnlinkedRoleID"),
        active_role_id=_snowflake(get("Discord", "ActiveRoleID"), "ActiveRoleID"),
        admin_channel_id=_snowflake(get("Discord", "AdminChannelID"), "AdminChannelID", required=False),
        backend_url=(env.get("PUBLIC_BACKEND_URL") or get("Backend", "PublicURL")).rstrip("/"),
        backend_timeout=_timeout(get("Backend", "TimeoutSeconds", "5"), "[Backend] TimeoutSeconds"),
        listen_port=listen_port,
        db_path=env.get("DATABASE_PATH") or get("Database", "Path", os.path.join("data", "members.db")),
        db_timeout=_timeout(get("Database", "TimeoutSeconds", "5"), "[Database] TimeoutSeconds"),
        scan_interval_minutes=interval,
        pacing=pacing,
        pacing_delay=max(0.0, delay),
        bucket_rate=bucket_rate,
        bucket_burst=max(1, bucket_burst),
        policy=policy,
        log_dir=get("Logging", "Directory", "logs"),
        log_retention_days=retention,
    )
