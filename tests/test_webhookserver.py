import asyncio
from datetime import datetime, timezone

import pytest

from bot.onboarding import activate_member
from membership import STATUS_ACTIVE, STATUS_CANCELLED
from tests.conftest import ACTIVE_ROLE, UNLINKED_ROLE, FakeMember
from webhookserver import create_app, parse_period_end, parse_update


@pytest.fixture
def activations():
    return []


@pytest.fixture
def client(db, activations):
    app = create_app(activate=activations.append, discord_ready=lambda: True)
    app.testing = True
    return app.test_client()


def test_health(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.get_data(as_text=True) == "Bot is Online"


def test_activation_updates_record_and_hands_off(client, db, activations):
    res = client.post("/update-role", json={"member_id": "123", "status": "active"})
    assert res.status_code == 200
    assert res.get_json() == {"message": "Updated"}
    assert db.get_member("123").subscription_status == STATUS_ACTIVE
    assert activations == ["123"]


@pytest.mark.parametrize("key", ["discord_id", "discordId"])
def test_legacy_id_aliases(client, db, key):
    res = client.post("/update-role", json={key: 555, "status": "active"})
    assert res.status_code == 200
    assert db.get_member("555").subscription_status == STATUS_ACTIVE


@pytest.mark.parametrize("payload", [
    {"status": "inactive"},
    {"status": "active"},
    {"member_id": "123"},
    {"member_id": "abc", "status": "active"},
    {"member_id": "123", "status": ""},
    None,
])
def test_invalid_payloads_are_rejected_without_side_effects(client, db, activations, payload):
    if payload is None:
        res = client.post("/update-role", data="not json", content_type="text/plain")
    else:
        res = client.post("/update-role", json=payload)
    assert res.status_code == 400
    assert db.count_members() == 0
    assert activations == []


def test_unknown_status_is_acknowledged_but_ignored(client, db, activations):
    res = client.post("/update-role", json={"member_id": "123", "status": "inactive"})
    assert res.status_code == 200
    assert res.get_json() == {"message": "Ignored"}
    assert db.get_member("123") is None
    assert activations == []


def test_cancellation_records_grace_end(client, db, activations):
    res = client.post(
        "/update-role",
        json={"member_id": "321", "status": "cancelled", "current_period_end": 1767225600},
    )
    assert res.status_code == 200
    record = db.get_member("321")
    assert record.subscription_status == STATUS_CANCELLED
    assert record.subscription_end == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert activations == []


def test_handoff_failure_still_acknowledges(db):
    def boom(member_id):
        raise RuntimeError("loop closed")

    client = create_app(activate=boom).test_client()
    res = client.post("/update-role", json={"member_id": "9", "status": "active"})
    assert res.status_code == 200
    assert db.get_member("9").subscription_status == STATUS_ACTIVE


def test_webhook_promotes_member_end_to_end(db, directory):
    member = directory.add(FakeMember(123, roles={UNLINKED_ROLE}))
    app = create_app(activate=lambda mid: asyncio.run(activate_member(mid, directory)))

    res = app.test_client().post("/update-role", json={"member_id": "123", "status": "active"})

    assert res.status_code == 200
    assert member.roles == {ACTIVE_ROLE}


def test_status_api(client, db):
    db.record_subscription(1, STATUS_ACTIVE)
    body = client.get("/api/status").get_json()
    assert body["ok"] is True
    assert body["discord_online"] is True
    assert body["records"] == 1
    assert body["memory_mb"] > 0


@pytest.mark.parametrize("value, expected", [
    (None, None),
    (1767225600, datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("1767225600", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("2026-01-01T00:00:00Z", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ("garbage", None),
    (1767225600000, None),
    ("1767225600000", None),
    (10**30, None),
])
def test_parse_period_end(value, expected):
    assert parse_period_end(value) == expected


def test_parse_update_normalises_status_case():
    assert parse_update({"member_id": " 42 ", "status": "ACTIVE"}) == ("42", "active", None)


def test_millisecond_period_end_is_dropped_not_fatal(client, db, activations):
    res = client.post(
        "/update-role",
        json={"member_id": "5", "status": "active", "current_period_end": 1767225600000},
    )
    assert res.status_code == 200
    record = db.get_member("5")
    assert record.subscription_status == STATUS_ACTIVE
    assert record.subscription_end is None
    assert activations == ["5"]
