"""
scorgs.bot.__main__ — Entry point for ``python -m scorgs.bot``
==============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Create the ScorgsBot and hand it config + engine.
5. Start the bot (blocking; runs the asyncio event loop).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from scorgs.bot.core import ScorgsBot
from scorgs.clients.discord_api import bot_token_from_env
from scorgs.config import load_config
from scorgs.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("scorgs")


def main() -> None:
    """Bootstrap and run the SC Orgs bot."""
    load_dotenv()

    try:
        token = bot_token_from_env()
    except RuntimeError:
        token = ""
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_BOT_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config(os.getenv("SCORGS_CONFIG", "config.yaml"))
    logger.info("Config loaded — Platform: %s", cfg.platform_name)

    engine = create_db_engine()
    init_db(engine)

    bot = ScorgsBot(cfg=cfg, engine=engine)

    logger.info("Starting SC Orgs bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
