"""SessionStateStore — aiosqlite persistence for per-device chat state."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite

from juristmind.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS session_state (
    device_key TEXT NOT NULL,
    name TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (device_key, name)
)
"""

_CHAT_ID = "chat_id"


class SessionStateStore:
    """Remembers the last conversation id for a local user agent.

    Loaded once when the chat client opens; saved whenever the stream's
    terminal frame confirms a conversation id.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def load_chat_id(self, device_key: str) -> str | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT value FROM session_state WHERE device_key = ? AND name = ?",
                (device_key, _CHAT_ID),
            )
            row = await cursor.fetchone()
            return row[0] if row else None
        finally:
            await db.close()

    async def save_chat_id(self, device_key: str, chat_id: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO session_state (device_key, name, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (device_key, name)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (device_key, _CHAT_ID, chat_id, datetime.now(UTC).isoformat()),
            )
            await db.commit()
            logger.debug("Saved chat_id for device %s: %s", device_key, chat_id)
        finally:
            await db.close()

    async def clear_chat_id(self, device_key: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "DELETE FROM session_state WHERE device_key = ? AND name = ?",
                (device_key, _CHAT_ID),
            )
            await db.commit()
        finally:
            await db.close()
