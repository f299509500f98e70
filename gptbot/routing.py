"""Event classification, rate limiting and dispatch for inbound chat events."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from gptbot.users import Language

if TYPE_CHECKING:
    from gptbot.llm import CompletionClient
    from gptbot.messaging import Messenger
    from gptbot.settings import Settings
    from gptbot.users import UserDirectory

logger = logging.getLogger(__name__)

LANGUAGE_CALLBACK_PREFIX = "lang_"

RATE_LIMITED_REPLY = "You are being rate-limited, please wait."
COMPLETION_ERROR_REPLY = "Error generating AI response. Please try again."
COMPLETION_DISABLED_REPLY = "No AI features configured. Received: {text}"
HELP_REPLY = (
    "Available commands:\n"
    "/start - Start the bot\n"
    "/help - Show help\n"
    "Use the menu buttons for more options."
)
GREETING_REPLY = "Hello, {name}! Use the menu below:"
LANGUAGE_PROMPT = "Please choose your language:"
IMAGE_DISABLED_REPLY = "No OpenAI API key configured, cannot generate images."
IMAGE_PLACEHOLDER_REPLY = "Image prompt placeholder. Implement with OpenAI Image Generation if desired."

LANGUAGE_CONFIRMATIONS = {
    Language.EN: "Language set to English 🇬🇧",
    Language.CN: "语言已切换为中文 🇨🇳",
}


class Command(str, Enum):
    START_COMMAND = "/start"
    HELP_COMMAND = "/help"
    LANGUAGE = "🔤Language"
    IMAGE = "🖼Image"
    NEW_CONVERSATION = "🚀Start"
    HELP = "🆘Help"
    SWITCH_ROLES = "🙋Switch Roles"
    RESTART_SESSION = "🔃Restart Session"
    STATISTICS = "📈Statistics"


class KeyboardKind(str, Enum):
    MAIN_MENU = "main_menu"
    LANGUAGE = "language"


STATIC_REPLIES = {
    Command.HELP_COMMAND: HELP_REPLY,
    Command.NEW_CONVERSATION: "Starting new conversation...",
    Command.HELP: "Use /help for detailed instructions. Ask me anything!",
    Command.SWITCH_ROLES: "Role switching feature is not fully implemented yet.",
    Command.RESTART_SESSION: "Session restarted. All conversation context cleared.",
    Command.STATISTICS: "Statistics are not implemented yet. (Placeholder)",
}


@dataclass(frozen=True)
class PlainMessage:
    chat_id: int
    user_id: int
    display_name: str
    text: str


@dataclass(frozen=True)
class CallbackQuery:
    query_id: str
    chat_id: int
    user_id: int
    display_name: str
    message_id: int
    data: str


@dataclass(frozen=True)
class LanguageSelection:
    language: Language


def classify(text: str) -> Command | None:
    """Map a message text to a menu command, or None for free-form prompts."""
    token = text
    if token.startswith("/") and "@" in token:
        # /start@SomeBot in group chats
        token = token.split("@", 1)[0]
    try:
        return Command(token)
    except ValueError:
        return None


def decode_callback(data: str) -> LanguageSelection | None:
    """Decode callback data into a typed action. Returns None when unrecognized."""
    if not data.startswith(LANGUAGE_CALLBACK_PREFIX):
        return None
    code = data[len(LANGUAGE_CALLBACK_PREFIX):]
    if not code:
        return None
    try:
        language = Language(code)
    except ValueError:
        return None
    if language is Language.UNSET:
        return None
    return LanguageSelection(language)


class RateLimiter:
    """Per-user predicate evaluated once per event before dispatch."""

    def is_limited(self, user_id: int) -> bool:
        raise NotImplementedError


class UnlimitedRateLimiter(RateLimiter):
    def is_limited(self, user_id: int) -> bool:
        return False


class FixedWindowRateLimiter(RateLimiter):
    """Allows max_messages per user in each window_seconds window, counted from the first event."""

    def __init__(
        self,
        window_seconds: int,
        max_messages: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_threshold: int = 1024,
    ) -> None:
        self._window = window_seconds
        self._max = max_messages
        self._clock = clock
        self._sweep_threshold = sweep_threshold
        self._windows: dict[int, tuple[float, int]] = {}

    def _sweep(self, now: float) -> None:
        expired = [uid for uid, (started, _) in self._windows.items() if now - started >= self._window]
        for uid in expired:
            del self._windows[uid]

    def is_limited(self, user_id: int) -> bool:
        now = self._clock()
        if user_id not in self._windows and len(self._windows) >= self._sweep_threshold:
            self._sweep(now)
        started, count = self._windows.get(user_id, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        if count >= self._max:
            self._windows[user_id] = (started, count)
            return True
        self._windows[user_id] = (started, count + 1)
        return False


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_enabled:
        return FixedWindowRateLimiter(settings.time_span, settings.rate_limit)
    return UnlimitedRateLimiter()


class ChatRouter:
    """Routes transport-neutral events to menu handlers or the completion client."""

    def __init__(
        self,
        users: UserDirectory,
        messenger: Messenger,
        completion: CompletionClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._users = users
        self._messenger = messenger
        self._completion = completion
        self._rate_limiter = rate_limiter or UnlimitedRateLimiter()
        self._handlers: dict[Command, Callable[[PlainMessage], Awaitable[None]]] = {
            Command.START_COMMAND: self._cmd_start,
            Command.LANGUAGE: self._cmd_language,
            Command.IMAGE: self._cmd_image,
        }
        for command, reply in STATIC_REPLIES.items():
            self._handlers[command] = functools.partial(self._static_reply, reply)

    @property
    def handlers(self) -> dict[Command, Callable[[PlainMessage], Awaitable[None]]]:
        """Copy of the command dispatch table, for inspection."""
        return dict(self._handlers)

    async def handle_message(self, event: PlainMessage) -> None:
        await self._users.ensure_user(event.user_id, event.display_name)
        if self._rate_limiter.is_limited(event.user_id):
            logger.info("Rate limited user %s", event.user_id)
            await self._messenger.send(event.chat_id, RATE_LIMITED_REPLY)
            return
        command = classify(event.text)
        if command is None:
            await self._handle_prompt(event)
            return
        await self._handlers[command](event)

    async def handle_callback(self, event: CallbackQuery) -> None:
        await self._users.ensure_user(event.user_id, event.display_name)
        limited = self._rate_limiter.is_limited(event.user_id)
        await self._messenger.answer_callback(event.query_id)
        if limited:
            logger.info("Rate limited callback from user %s", event.user_id)
            return
        selection = decode_callback(event.data)
        if selection is None:
            logger.warning("Ignoring unrecognized callback data %r from user %s", event.data, event.user_id)
            return
        await self._users.set_language(event.user_id, event.display_name, selection.language)
        await self._messenger.edit_text(
            event.chat_id,
            event.message_id,
            LANGUAGE_CONFIRMATIONS[selection.language],
        )

    async def _cmd_start(self, event: PlainMessage) -> None:
        await self._messenger.send(
            event.chat_id,
            GREETING_REPLY.format(name=event.display_name),
            KeyboardKind.MAIN_MENU,
        )

    async def _cmd_language(self, event: PlainMessage) -> None:
        await self._messenger.send(event.chat_id, LANGUAGE_PROMPT, KeyboardKind.LANGUAGE)

    async def _cmd_image(self, event: PlainMessage) -> None:
        if self._completion is None:
            await self._messenger.send(event.chat_id, IMAGE_DISABLED_REPLY)
            return
        await self._messenger.send(event.chat_id, IMAGE_PLACEHOLDER_REPLY)

    async def _static_reply(self, reply: str, event: PlainMessage) -> None:
        await self._messenger.send(event.chat_id, reply)

    async def _handle_prompt(self, event: PlainMessage) -> None:
        if self._completion is None:
            await self._messenger.send(event.chat_id, COMPLETION_DISABLED_REPLY.format(text=event.text))
            return
        result = await self._completion.complete(event.text)
        if not result.ok:
            await self._messenger.send(event.chat_id, COMPLETION_ERROR_REPLY)
            return
        await self._messenger.send(event.chat_id, result.text)
