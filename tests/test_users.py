from __future__ import annotations

import asyncio
import unittest
from typing import Any
from unittest.mock import AsyncMock, patch

from gptbot.settings import DatabaseSettings
from gptbot.users import Language, StoreConnectError, UserDirectory, UserStore


class FakePool:
    """In-memory stand-in for asyncpg.Pool covering the statements UserDirectory issues."""

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.statements: list[str] = []
        self.error: Exception | None = None

    async def execute(self, query: str, *args: Any) -> str:
        self.statements.append(" ".join(query.split()))
        if self.error is not None:
            raise self.error
        await asyncio.sleep(0)
        user_id, nick_name = args[0], args[1]
        if "DO NOTHING" in query:
            self.rows.setdefault(user_id, {"user_id": user_id, "nick_name": nick_name, "lang": ""})
        elif "DO UPDATE" in query:
            row = self.rows.setdefault(user_id, {"user_id": user_id, "nick_name": nick_name, "lang": ""})
            row.update(nick_name=nick_name, lang=args[2])
        return "INSERT 0 1"

    async def fetchrow(self, query: str, *args: Any) -> dict[str, Any] | None:
        if self.error is not None:
            raise self.error
        row = self.rows.get(args[0])
        return None if row is None else dict(row)


DB = DatabaseSettings(
    host="localhost",
    port=5432,
    user="root",
    password="",
    database="test",
    pool_min_size=1,
    pool_max_size=10,
)


class UserDirectoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_ensure_user_is_insert_if_absent(self) -> None:
        pool = FakePool()
        users = UserDirectory(pool)
        await users.ensure_user(42, "Alice")
        await users.ensure_user(42, "Bob")
        user = await users.get_user(42)
        assert user is not None
        self.assertEqual(user.nick_name, "Alice")
        self.assertEqual(user.lang, Language.UNSET)
        self.assertTrue(all("ON CONFLICT (user_id) DO NOTHING" in s for s in pool.statements))

    async def test_set_language_upserts_name_and_language(self) -> None:
        pool = FakePool()
        users = UserDirectory(pool)
        await users.ensure_user(7, "Alice")
        await users.set_language(7, "Alicia", Language.CN)
        user = await users.get_user(7)
        assert user is not None
        self.assertEqual(user.nick_name, "Alicia")
        self.assertEqual(user.lang, Language.CN)

    async def test_set_language_creates_missing_user(self) -> None:
        users = UserDirectory(FakePool())
        await users.set_language(8, "Carol", Language.EN)
        user = await users.get_user(8)
        assert user is not None
        self.assertEqual(user.lang, Language.EN)

    async def test_store_failures_are_logged_and_swallowed(self) -> None:
        pool = FakePool()
        pool.error = ConnectionRefusedError("db down")
        users = UserDirectory(pool)
        with self.assertLogs("gptbot.users", level="ERROR") as logs:
            await users.ensure_user(1, "Dan")
            await users.set_language(1, "Dan", Language.EN)
            self.assertIsNone(await users.get_user(1))
        self.assertEqual(len(logs.records), 3)

    async def test_unknown_stored_language_reads_as_unset(self) -> None:
        pool = FakePool()
        pool.rows[3] = {"user_id": 3, "nick_name": "Eve", "lang": "fr"}
        user = await UserDirectory(pool).get_user(3)
        assert user is not None
        self.assertEqual(user.lang, Language.UNSET)


class UserStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_pool_access_before_open_raises(self) -> None:
        with self.assertRaises(StoreConnectError):
            UserStore(DB).pool

    async def test_open_failure_raises_store_connect_error(self) -> None:
        with patch("gptbot.users.asyncpg.create_pool", AsyncMock(side_effect=OSError("refused"))):
            with self.assertRaises(StoreConnectError):
                await UserStore(DB).open()

    async def test_connect_timeout_raises_store_connect_error(self) -> None:
        with patch("gptbot.users.asyncpg.create_pool", AsyncMock(side_effect=asyncio.TimeoutError())):
            with self.assertRaises(StoreConnectError):
                await UserStore(DB).open()

    async def test_open_initialize_close(self) -> None:
        pool = AsyncMock()
        with patch("gptbot.users.asyncpg.create_pool", AsyncMock(return_value=pool)) as create_pool:
            store = UserStore(DB)
            await store.open()
            await store.open()
            await store.initialize()
            await store.close()
        create_pool.assert_awaited_once()
        self.assertEqual(create_pool.call_args.kwargs["database"], "test")
        self.assertIsNone(create_pool.call_args.kwargs["password"])
        self.assertIn("CREATE TABLE IF NOT EXISTS users", pool.execute.call_args[0][0])
        pool.close.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
