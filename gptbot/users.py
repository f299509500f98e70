"""User directory backed by a pooled PostgreSQL connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import asyncpg

from gptbot.settings import DatabaseSettings

logger = logging.getLogger(__name__)


class Language(str, Enum):
    UNSET = ""
    EN = "en"
    CN = "cn"


@dataclass(frozen=True)
class User:
    user_id: int
    nick_name: str
    lang: Language


class StoreConnectError(RuntimeError):
    """Raised when the connection pool cannot be created."""


class UserStore:
    """Owns the asyncpg pool and the users table lifecycle."""

    def __init__(self, params: DatabaseSettings) -> None:
        self._params = params
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreConnectError("User store is not open")
        return self._pool

    async def open(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool
        try:
            self._pool = await asyncpg.create_pool(
                host=self._params.host,
                port=self._params.port,
                user=self._params.user,
                password=self._params.password or None,
                database=self._params.database,
                min_size=self._params.pool_min_size,
                max_size=self._params.pool_max_size,
            )
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise StoreConnectError(
                f"Could not connect to {self._params.host}:{self._params.port}/{self._params.database}: {exc}"
            ) from exc
        logger.info("Database connection pool created.")
        return self._pool

    async def initialize(self) -> None:
        try:
            await self.pool.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id BIGINT PRIMARY KEY,
                    nick_name TEXT NOT NULL DEFAULT '',
                    lang TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise StoreConnectError(f"Could not create users table: {exc}") from exc

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection pool closed.")


class UserDirectory:
    """Best-effort user profile writes; failures are logged, never raised."""

    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def ensure_user(self, user_id: int, display_name: str) -> None:
        try:
            await self._pool.execute(
                """
                INSERT INTO users (user_id, nick_name)
                VALUES ($1, $2)
                ON CONFLICT (user_id) DO NOTHING
                """,
                user_id,
                display_name,
            )
        except Exception:
            logger.exception("Database error while ensuring user record %s", user_id)

    async def set_language(self, user_id: int, display_name: str, language: Language) -> None:
        try:
            await self._pool.execute(
                """
                INSERT INTO users (user_id, nick_name, lang)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id) DO UPDATE SET
                    nick_name = EXCLUDED.nick_name,
                    lang = EXCLUDED.lang,
                    updated_at = NOW()
                """,
                user_id,
                display_name,
                language.value,
            )
        except Exception:
            logger.exception("Error updating language for user %s", user_id)

    async def get_user(self, user_id: int) -> User | None:
        """Read one profile row. Not used on the message path; kept for inspection and tests."""
        try:
            row = await self._pool.fetchrow(
                "SELECT user_id, nick_name, lang FROM users WHERE user_id = $1",
                user_id,
            )
        except Exception:
            logger.exception("Error reading user %s", user_id)
            return None
        if row is None:
            return None
        try:
            lang = Language(row["lang"] or "")
        except ValueError:
            lang = Language.UNSET
        return User(user_id=int(row["user_id"]), nick_name=str(row["nick_name"]), lang=lang)
