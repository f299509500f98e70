"""Outbound Telegram messaging: replies, edits, callback acks and keyboards."""

from __future__ import annotations

import logging

from telegram import (
    Bot,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)
from telegram.error import TelegramError

from gptbot.routing import Command, KeyboardKind

logger = logging.getLogger(__name__)

MAX_TELEGRAM_MESSAGE_LEN = 3900

MENU_ROWS = (
    (Command.LANGUAGE, Command.IMAGE, Command.NEW_CONVERSATION),
    (Command.HELP, Command.SWITCH_ROLES, Command.RESTART_SESSION),
    (Command.STATISTICS,),
)


def _truncate(text: str) -> str:
    if len(text) <= MAX_TELEGRAM_MESSAGE_LEN:
        return text
    return text[: MAX_TELEGRAM_MESSAGE_LEN - 3] + "..."


def main_menu_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [[KeyboardButton(command.value) for command in row] for row in MENU_ROWS],
        resize_keyboard=True,
        one_time_keyboard=False,
    )


def language_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("English", callback_data="lang_en"),
                InlineKeyboardButton("中文", callback_data="lang_cn"),
            ]
        ]
    )


def build_keyboard(kind: KeyboardKind | None) -> ReplyKeyboardMarkup | InlineKeyboardMarkup | None:
    if kind is KeyboardKind.MAIN_MENU:
        return main_menu_keyboard()
    if kind is KeyboardKind.LANGUAGE:
        return language_keyboard()
    return None


class Messenger:
    """Fire-and-forget wrapper around the Bot API. Delivery failures are only logged."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, chat_id: int, text: str, keyboard: KeyboardKind | None = None) -> None:
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=_truncate(text),
                reply_markup=build_keyboard(keyboard),
            )
        except TelegramError:
            logger.exception("Failed to send message to chat %s", chat_id)

    async def edit_text(self, chat_id: int, message_id: int, text: str) -> None:
        try:
            await self._bot.edit_message_text(text=_truncate(text), chat_id=chat_id, message_id=message_id)
        except TelegramError:
            logger.exception("Failed to edit message %s in chat %s", message_id, chat_id)

    async def answer_callback(self, query_id: str) -> None:
        try:
            await self._bot.answer_callback_query(callback_query_id=query_id)
        except TelegramError:
            logger.exception("Failed to answer callback query %s", query_id)
