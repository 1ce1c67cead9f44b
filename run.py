# run.py: unified launcher for Linkgate
import sys
import threading

import discord

from loghelper import logger, setup_logger
from settings import ConfigError, load_settings
import database
from webhookserver import create_app


def main():
    # ───────────────────────────────
    # Load configuration
    # ───────────────────────────────
    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logger()
        logger.critical("❌ Configuration error: %s", e)
        return 1

    setup_logger(settings.log_dir, settings.log_retention_days)
    database.init_db(settings.db_path, settings.db_timeout)

    from bot import create_bot
    from bot.onboarding import activate_member

    client = create_bot(settings)
    directory = client.directory

    # ───────────────────────────────
    # Start Flask webhook + health server
    # ───────────────────────────────
    app = create_app(
        activate=lambda member_id: directory.submit(activate_member(member_id, directory)),
        discord_ready=client.is_ready,
    )

    def start_flask():
        try:
            logger.info("🌐 Starting webhook server on http://0.0.0.0:%d", settings.listen_port)
            app.run(host="0.0.0.0", port=settings.listen_port, debug=False, use_reloader=False)
        except OSError as e:
            logger.error(f"⚠️ Webhook server failed to start: {e}")

    threading.Thread(target=start_flask, daemon=True, name="FlaskThread").start()

    # ───────────────────────────────
    # Discord bot (blocks until closed)
    # ───────────────────────────────
    logger.info("🤖 Launching Linkgate Discord bot...")
    try:
        client.run(settings.token, log_handler=None)
    except discord.LoginFailure as e:
        logger.critical("❌ Discord login failed: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("🛑 Shutting down Linkgate...")

    if client.config_failed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
