"""Telegram front end using python-telegram-bot with concurrent update handling."""

from __future__ import annotations

import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from gptbot.llm import CompletionClient
from gptbot.messaging import Messenger
from gptbot.routing import CallbackQuery, ChatRouter, PlainMessage, build_rate_limiter
from gptbot.settings import Settings
from gptbot.users import UserDirectory, UserStore

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"


def message_event(update: Update) -> PlainMessage | None:
    """Build a PlainMessage from an update; None when sender or chat is missing."""
    message = update.effective_message
    chat = update.effective_chat
    user = update.effective_user
    if message is None or chat is None or user is None:
        return None
    return PlainMessage(
        chat_id=chat.id,
        user_id=user.id,
        display_name=user.first_name or DEFAULT_DISPLAY_NAME,
        text=message.text or "",
    )


def callback_event(update: Update) -> CallbackQuery | None:
    query = update.callback_query
    if query is None or query.message is None:
        return None
    return CallbackQuery(
        query_id=query.id,
        chat_id=query.message.chat.id,
        user_id=query.from_user.id,
        display_name=query.from_user.first_name or DEFAULT_DISPLAY_NAME,
        message_id=query.message.message_id,
        data=query.data or "",
    )


class TelegramBot:
    def __init__(self, settings: Settings, store: UserStore | None = None) -> None:
        self._settings = settings
        self._store = store or UserStore(settings.database)
        self._router: ChatRouter | None = None
        self._app: Application | None = None

    @property
    def router(self) -> ChatRouter | None:
        return self._router

    def build(self) -> Application:
        self._app = (
            Application.builder()
            .token(self._settings.bot_token)
            .concurrent_updates(True)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )
        self._setup_handlers()
        return self._app

    def run(self) -> None:
        """Block on long polling. StoreConnectError from startup propagates to the caller."""
        app = self._app or self.build()
        logger.info("Telegram bot started.")
        app.run_polling(drop_pending_updates=False, allowed_updates=Update.ALL_TYPES)

    async def _post_init(self, app: Application) -> None:
        await self._store.open()
        await self._store.initialize()
        completion = CompletionClient.from_settings(self._settings)
        if completion is None:
            logger.warning("No OPENAI_API_KEY provided. OpenAI features disabled.")
        else:
            logger.info("OpenAI completion enabled (model=%s).", self._settings.openai_model)
        self._router = ChatRouter(
            users=UserDirectory(self._store.pool),
            messenger=Messenger(app.bot),
            completion=completion,
            rate_limiter=build_rate_limiter(self._settings),
        )
        try:
            await app.bot.set_my_commands([("start", "Start the bot"), ("help", "Show help")])
        except TelegramError:
            logger.exception("Could not register bot commands")

    async def _post_shutdown(self, app: Application) -> None:
        await self._store.close()

    def _setup_handlers(self) -> None:
        assert self._app is not None
        self._app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, self._handle_message))
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))
        self._app.add_error_handler(self._handle_error)

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = message_event(update)
        if event is None or self._router is None:
            return
        await self._router.handle_message(event)

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        event = callback_event(update)
        if event is None or self._router is None:
            return
        await self._router.handle_callback(event)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Error while handling update %s", update, exc_info=context.error)
