from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, MagicMock

from telegram.ext import CallbackQueryHandler, MessageHandler

from gptbot.routing import CallbackQuery, ChatRouter, PlainMessage
from gptbot.settings import DatabaseSettings, Settings
from gptbot.telegram_bot import TelegramBot, callback_event, message_event


def _settings(openai_api_key: str = "") -> Settings:
    return Settings(
        bot_token="123456:TEST-TOKEN",
        openai_api_key=openai_api_key,
        openai_model="gpt-3.5-turbo",
        openai_base_url="https://api.openai.com/v1",
        time_span=60,
        rate_limit=3,
        rate_limit_enabled=False,
        max_token=2000,
        context_count=5,
        notification_channel="",
        image_rate_limit=2,
        log_level="INFO",
        database=DatabaseSettings(
            host="localhost",
            port=5432,
            user="root",
            password="",
            database="test",
            pool_min_size=1,
            pool_max_size=10,
        ),
    )


class EventConversionTests(unittest.TestCase):
    def test_message_event_defaults_name_and_text(self) -> None:
        update = MagicMock()
        update.effective_chat.id = 10
        update.effective_user.id = 20
        update.effective_user.first_name = None
        update.effective_message.text = None
        self.assertEqual(
            message_event(update),
            PlainMessage(chat_id=10, user_id=20, display_name="User", text=""),
        )

    def test_message_event_requires_sender(self) -> None:
        update = MagicMock()
        update.effective_user = None
        self.assertIsNone(message_event(update))

    def test_callback_event(self) -> None:
        update = MagicMock()
        query = update.callback_query
        query.id = "q-9"
        query.data = "lang_cn"
        query.from_user.id = 7
        query.from_user.first_name = "Alice"
        query.message.chat.id = 70
        query.message.message_id = 5
        self.assertEqual(
            callback_event(update),
            CallbackQuery(query_id="q-9", chat_id=70, user_id=7, display_name="Alice", message_id=5, data="lang_cn"),
        )

    def test_callback_event_without_message(self) -> None:
        update = MagicMock()
        update.callback_query.message = None
        self.assertIsNone(callback_event(update))


class TelegramBotTests(unittest.IsolatedAsyncioTestCase):
    def _store(self) -> MagicMock:
        store = MagicMock()
        store.open = AsyncMock()
        store.initialize = AsyncMock()
        store.close = AsyncMock()
        return store

    def test_build_registers_message_and_callback_handlers(self) -> None:
        app = TelegramBot(_settings(), store=self._store()).build()
        handlers = app.handlers[0]
        self.assertEqual(len(handlers), 2)
        self.assertIsInstance(handlers[0], MessageHandler)
        self.assertIsInstance(handlers[1], CallbackQueryHandler)
        self.assertEqual(len(app.error_handlers), 1)

    async def test_post_init_opens_store_and_builds_router(self) -> None:
        store = self._store()
        bot = TelegramBot(_settings(openai_api_key="sk-test"), store=store)
        app = MagicMock()
        app.bot = AsyncMock()
        self.assertIsNone(bot.router)
        await bot._post_init(app)
        store.open.assert_awaited_once()
        store.initialize.assert_awaited_once()
        self.assertIsInstance(bot.router, ChatRouter)
        await bot._post_shutdown(app)
        store.close.assert_awaited_once()

    async def test_updates_before_startup_are_dropped(self) -> None:
        bot = TelegramBot(_settings(), store=self._store())
        update = MagicMock()
        await bot._handle_message(update, MagicMock())
        await bot._handle_callback(update, MagicMock())
        self.assertIsNone(bot.router)


if __name__ == "__main__":
    unittest.main()
