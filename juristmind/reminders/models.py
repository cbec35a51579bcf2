"""ReminderEvent data model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


def to_db_time(value: datetime) -> str:
    """Normalise an aware datetime to the UTC string stored in SQLite.

    Fixed width so that string comparison in SQL matches time order.
    """
    if value.tzinfo is None:
        msg = f"Naive datetime not allowed: {value!r}"
        raise ValueError(msg)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def from_db_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ReminderEvent:
    """A diary event that may need a "starting soon" email.

    Attributes:
        id: Event identifier.
        title: Event title shown in the email.
        scheduled_at: When the event starts (timezone-aware).
        owner_user_id: User who owns the diary entry.
        reminder_sent: Flips to True once, after a successful send.
        entry_time: Time text as entered in the diary, used for display.
        claimed_at: Set while a scan run owns the event.
    """

    id: str
    title: str
    scheduled_at: datetime
    owner_user_id: str
    reminder_sent: bool = False
    entry_time: str = ""
    claimed_at: datetime | None = None

    @property
    def display_time(self) -> str:
        """Combined date and time, e.g. ``"Mon Oct 19 2026 at 14:30"``."""
        day = self.scheduled_at.strftime("%a %b %d %Y")
        time_text = self.entry_time or self.scheduled_at.strftime("%H:%M")
        return f"{day} at {time_text}"

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``diary_events`` column order."""
        return (
            self.id,
            self.title,
            to_db_time(self.scheduled_at),
            self.entry_time,
            self.owner_user_id,
            int(self.reminder_sent),
            to_db_time(self.claimed_at) if self.claimed_at else None,
        )

    @classmethod
    def from_row(cls, row: tuple) -> ReminderEvent:
        return cls(
            id=row[0],
            title=row[1],
            scheduled_at=from_db_time(row[2]),
            entry_time=row[3] or "",
            owner_user_id=row[4],
            reminder_sent=bool(row[5]),
            claimed_at=from_db_time(row[6]) if row[6] else None,
        )


@dataclass
class ScanResult:
    """Outcome of one scanner run."""

    notified: int = 0
    skipped: int = 0
    failed: int = 0

    def to_payload(self) -> dict:
        return {"success": True, "notified": self.notified}
