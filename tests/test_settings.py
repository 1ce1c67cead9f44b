from datetime import timedelta

import pytest

from settings import ConfigError, load_settings

BASE = """
[Discord]
BotToken = abc
GuildID = 1000
UnlinkedRoleID = 111
ActiveRoleID = 222
"""


def write(tmp_path, text):
    path = tmp_path / "config.ini"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults(tmp_path):
    s = load_settings(write(tmp_path, BASE), environ={})
    assert s.token == "abc"
    assert (s.guild_id, s.unlinked_role_id, s.active_role_id) == (1000, 111, 222)
    assert s.admin_channel_id == 0
    assert s.scan_interval_minutes == 10
    assert s.pacing == "fixed"
    assert s.policy.new_member_window == timedelta(hours=24)
    assert s.policy.returning_member_window == timedelta(hours=1)
    assert s.policy.join_grace == timedelta(seconds=120)
    assert s.db_timeout == 5


def test_environment_overrides(tmp_path):
    env = {
        "DISCORD_TOKEN": "from-env",
        "DISCORD_GUILD_ID": "2000",
        "PUBLIC_BACKEND_URL": "https://backend.example/",
        "PORT": "8080",
        "DATABASE_PATH": "/tmp/x.db",
    }
    s = load_settings(write(tmp_path, BASE), environ=env)
    assert s.token == "from-env"
    assert s.guild_id == 2000
    assert s.backend_url == "https://backend.example"
    assert s.listen_port == 8080
    assert s.db_path == "/tmp/x.db"


def test_timeouts_are_capped(tmp_path):
    text = BASE + "\n[Database]\nTimeoutSeconds = 30\n[Backend]\nTimeoutSeconds = 2\n"
    s = load_settings(write(tmp_path, text), environ={})
    assert s.db_timeout == 5
    assert s.backend_timeout == 2


def test_policy_section(tmp_path):
    text = BASE + "\n[Policy]\nDemotionHours = 12\nJoinGraceSeconds = 60\n"
    s = load_settings(write(tmp_path, text), environ={})
    assert s.policy.demotion_window == timedelta(hours=12)
    assert s.policy.join_grace == timedelta(seconds=60)


@pytest.mark.parametrize("text", [
    BASE.replace("BotToken = abc", "BotToken ="),
    BASE.replace("GuildID = 1000", "GuildID ="),
    BASE.replace("ActiveRoleID = 222", "ActiveRoleID = active"),
    BASE + "\n[Scan]\nPacing = random\n",
    BASE + "\n[Scan]\nIntervalMinutes = soon\n",
    BASE + "\n[Scan]\nIntervalMinutes = 0\n",
])
def test_structural_problems_raise_config_error(tmp_path, text):
    with pytest.raises(ConfigError):
        load_settings(write(tmp_path, text), environ={})


def test_missing_file_without_env_is_a_config_error(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "nope.ini"), environ={})
