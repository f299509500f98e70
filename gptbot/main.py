"""Bot process entry point."""

from __future__ import annotations

import argparse
import logging
import sys

from gptbot.settings import DEFAULT_CONFIG_FILE, SettingsError, load_settings
from gptbot.telegram_bot import TelegramBot
from gptbot.users import StoreConnectError

logger = logging.getLogger("gptbot")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Telegram completion bot")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to the YAML config file (default: {DEFAULT_CONFIG_FILE})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    try:
        settings = load_settings(args.config)
    except SettingsError as exc:
        logger.error("Error reading config: %s", exc)
        return 1
    logging.getLogger().setLevel(settings.log_level)
    # httpx logs every getUpdates poll at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    bot = TelegramBot(settings)
    try:
        bot.run()
    except StoreConnectError as exc:
        logger.error("Error creating database pool: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
