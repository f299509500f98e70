"""Minimal OpenAI-compatible client for single-shot chat completions."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from urllib import error, request

from gptbot.settings import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant."
MAX_TOKENS_CAP = 1500
TEMPERATURE = 0.7
NO_RESPONSE = "(No response)"
REQUEST_TIMEOUT_SECONDS = 60


def complete(
    messages: list[dict[str, str]],
    api_key: str,
    *,
    base_url: str | None = None,
    model: str = DEFAULT_MODEL,
    max_tokens: int = 512,
    temperature: float = TEMPERATURE,
) -> str:
    """
    Call an OpenAI-compatible chat completions endpoint.
    Returns the first choice's content, or "" when it carries none.
    Raises RuntimeError on HTTP errors and URLError/OSError on transport errors.
    """
    url = (base_url or DEFAULT_BASE_URL).rstrip("/") + "/chat/completions"
    body = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    encoded = json.dumps(body).encode("utf-8")
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    req = request.Request(url, data=encoded, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=REQUEST_TIMEOUT_SECONDS) as response:  # noqa: S310
            data = json.loads(response.read().decode("utf-8"))
    except error.HTTPError as exc:
        body_read = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"LLM API HTTP {exc.code}: {body_read}") from exc

    choices = data.get("choices") or []
    message = (choices[0].get("message") or {}) if choices else {}
    content = message.get("content") or ""
    return content.strip()


@dataclass(frozen=True)
class CompletionResult:
    ok: bool
    text: str = ""
    error: str | None = None


class CompletionClient:
    """Wraps one completion request per prompt with a fixed system preamble."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        max_tokens: int = 2000,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._max_tokens = min(max_tokens, MAX_TOKENS_CAP)

    @classmethod
    def from_settings(cls, settings: Settings) -> CompletionClient | None:
        if not settings.completion_enabled:
            return None
        return cls(
            settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.max_token,
        )

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    def build_messages(self, prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def complete(self, prompt: str) -> CompletionResult:
        try:
            text = await asyncio.to_thread(
                complete,
                self.build_messages(prompt),
                self._api_key,
                base_url=self._base_url,
                model=self._model,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            logger.exception("Chat completion failed")
            return CompletionResult(ok=False, error=str(exc))
        return CompletionResult(ok=True, text=text or NO_RESPONSE)
