"""ReminderStore — aiosqlite access to diary events awaiting a reminder."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from juristmind.config import settings
from juristmind.reminders.models import ReminderEvent, to_db_time

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime, timedelta
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS diary_events (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    scheduled_at TEXT NOT NULL,
    entry_time TEXT NOT NULL DEFAULT '',
    user_id TEXT NOT NULL,
    reminder_sent INTEGER NOT NULL DEFAULT 0,
    claimed_at TEXT
)
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_diary_events_due
    ON diary_events (reminder_sent, scheduled_at)
"""

_COLUMNS = "id, title, scheduled_at, entry_time, user_id, reminder_sent, claimed_at"


class ReminderStore:
    """Reads due diary events and records which ones were reminded.

    ``reminder_sent`` only ever moves from 0 to 1 here. Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.execute(_CREATE_INDEX)
            await db.commit()
            self._initialised = True
        return db

    # -- Events ----------------------------------------------------------------

    async def add_event(self, event: ReminderEvent) -> ReminderEvent:
        """Insert a diary event. Returns the same event object."""
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO diary_events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                event.to_row(),
            )
            await db.commit()
            logger.debug("Added diary event: %s (%s)", event.title, event.id)
            return event
        finally:
            await db.close()

    async def get_event(self, event_id: str) -> ReminderEvent | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM diary_events WHERE id = ?", (event_id,)
            )
            row = await cursor.fetchone()
            return ReminderEvent.from_row(row) if row else None
        finally:
            await db.close()

    async def list_due(self, now: datetime, horizon: datetime) -> list[ReminderEvent]:
        """Unsent events starting within ``[now, horizon]`` (inclusive)."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM diary_events
                WHERE reminder_sent = 0
                  AND scheduled_at >= ?
                  AND scheduled_at <= ?
                ORDER BY scheduled_at
                """,
                (to_db_time(now), to_db_time(horizon)),
            )
            rows = await cursor.fetchall()
            return [ReminderEvent.from_row(row) for row in rows]
        finally:
            await db.close()

    # -- Claim / mark ----------------------------------------------------------

    async def claim(self, event_id: str, now: datetime, stale_after: timedelta) -> bool:
        """Take ownership of an unsent event for this run.

        Succeeds when the event is unsent and either unclaimed or claimed
        longer than *stale_after* ago (a crashed run). Returns True if this
        caller now owns the event.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                UPDATE diary_events SET claimed_at = ?
                WHERE id = ?
                  AND reminder_sent = 0
                  AND (claimed_at IS NULL OR claimed_at < ?)
                """,
                (to_db_time(now), event_id, to_db_time(now - stale_after)),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def release(self, event_id: str) -> None:
        """Drop this run's claim so a later run can retry the event."""
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE diary_events SET claimed_at = NULL WHERE id = ? AND reminder_sent = 0",
                (event_id,),
            )
            await db.commit()
        finally:
            await db.close()

    async def mark_sent(self, event_ids: Sequence[str]) -> int:
        """Set ``reminder_sent = 1`` for *event_ids* in one statement."""
        if not event_ids:
            return 0
        placeholders = ", ".join("?" for _ in event_ids)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"UPDATE diary_events SET reminder_sent = 1 WHERE id IN ({placeholders})",
                tuple(event_ids),
            )
            await db.commit()
            logger.info("Marked %d event(s) as reminded", cursor.rowcount)
            return cursor.rowcount
        finally:
            await db.close()
