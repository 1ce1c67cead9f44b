# webhookserver.py
import sqlite3
import time
from datetime import datetime, timezone

import psutil
from flask import Flask, jsonify, request

import database
from loghelper import logger
from membership import STATUS_ACTIVE, STATUS_CANCELLED, STATUS_UNLINKED
from bot.tasks.scan import TASK_NAME
from bot.tasks.task_registry import get_task

APP_START = time.time()
RECORDED_STATUSES = (STATUS_CANCELLED, STATUS_UNLINKED)


def parse_period_end(value):
    """Accept epoch seconds (Stripe style) or an ISO-8601 string."""
    if value in (None, ""):
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            value = int(text)
        else:
            return database.parse_iso(text.replace("Z", "+00:00"))
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.warning("⚠️ Ignoring out-of-range period end: %r", value)
        return None


def parse_update(data):
    """Return (member_id, status, period_end), or None if the payload is unusable."""
    if not isinstance(data, dict):
        return None
    member_id = data.get("member_id") or data.get("discord_id") or data.get("discordId")
    status = data.get("status")
    if member_id is None or isinstance(member_id, bool) or not isinstance(status, str) or not status.strip():
        return None
    member_id = str(member_id).strip()
    if not member_id.isdigit():
        return None
    return member_id, status.strip().lower(), parse_period_end(data.get("current_period_end"))


def create_app(activate=None, discord_ready=None):
    """
    Build the Flask app.

    `activate(member_id)` hands the promotion to the bot; `discord_ready()`
    reports gateway state for /api/status. Both are optional so the web side
    can run without Discord.
    """
    app = Flask(__name__)

    # ────────────────────────────────
    # Health
    # ────────────────────────────────
    @app.get("/")
    def health():
        return "Bot is Online", 200, {"Content-Type": "text/plain; charset=utf-8"}

    # ────────────────────────────────
    # Subscription webhook
    # ────────────────────────────────
    @app.post("/update-role")
    def update_role():
        update = parse_update(request.get_json(silent=True))
        if update is None:
            return jsonify({"message": "Invalid request"}), 400

        member_id, status, period_end = update
        try:
            if status == STATUS_ACTIVE:
                database.record_subscription(member_id, STATUS_ACTIVE, period_end)
            elif status in RECORDED_STATUSES:
                database.record_subscription(member_id, status, period_end)
                logger.info("📝 Webhook: %s marked %s.", member_id, status)
                return jsonify({"message": "Updated"}), 200
            else:
                logger.info("ℹ️ Webhook: ignoring status %r for %s", status, member_id)
                return jsonify({"message": "Ignored"}), 200
        except sqlite3.Error as e:
            logger.error("Webhook Error: %s", e)
            return jsonify({"error": "Sync failed"}), 500

        logger.info("💳 Webhook: %s is active.", member_id)
        if activate is not None:
            try:
                activate(member_id)
            except Exception as e:
                # The record is already active; the next scan finishes the promotion
                logger.error("⚠️ Could not hand promotion to Discord for %s: %s", member_id, e)
        return jsonify({"message": "Updated"}), 200

    # ────────────────────────────────
    # Status API
    # ────────────────────────────────
    @app.get("/api/status")
    def api_status():
        """Return runtime status for monitoring."""
        uptime_sec = int(time.time() - APP_START)
        hours, remainder = divmod(uptime_sec, 3600)
        minutes, seconds = divmod(remainder, 60)

        rss = psutil.Process().memory_info().rss
        task = get_task(TASK_NAME)
        try:
            records = database.count_members()
        except sqlite3.Error as e:
            logger.error("⚠️ Status query failed: %s", e)
            records = None

        return jsonify({
            "ok": True,
            "uptime": f"{hours:02d}:{minutes:02d}:{seconds:02d}",
            "memory_mb": round(rss / (1024 ** 2), 1),
            "discord_online": bool(discord_ready()) if discord_ready else False,
            "records": records,
            "last_scan": task["last_summary"] if task else None,
            "last_scan_at": task["last_execution"] if task else None,
        })

    return app
