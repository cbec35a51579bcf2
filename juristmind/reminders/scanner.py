"""ReminderScanner — emails owners of diary events that start soon."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from juristmind.config import settings
from juristmind.errors import LookupFailure, RunFailure, SendFailure
from juristmind.reminders.email import build_reminder_email
from juristmind.reminders.models import ScanResult

if TYPE_CHECKING:
    from juristmind.reminders.models import ReminderEvent
    from juristmind.reminders.store import ReminderStore
    from juristmind.reminders.users import UserDirectory

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> str:
        """Send an email. Raises SendFailure when the provider rejects it."""
        ...


class ReminderScanner:
    """One stateless pass over due diary events.

    Each run looks ``horizon_minutes`` ahead, claims every unsent event in
    the window, emails its owner, and finally marks the events that were
    emailed successfully. Events that fail lookup or sending are released
    and picked up again by the next run while still inside the window.

    Args:
        store: ReminderStore holding the diary events.
        users: Resolves owner ids to email addresses.
        mailer: Email provider client.
        horizon_minutes: Look-ahead window (default from settings).
        claim_ttl_minutes: Age after which another run's claim is ignored.
    """

    def __init__(
        self,
        store: ReminderStore,
        users: UserDirectory,
        mailer: Mailer,
        *,
        horizon_minutes: int | None = None,
        claim_ttl_minutes: int | None = None,
        diary_url: str | None = None,
    ) -> None:
        self._store = store
        self._users = users
        self._mailer = mailer
        self._horizon = timedelta(minutes=horizon_minutes or settings.reminder_horizon_minutes)
        self._claim_ttl = timedelta(minutes=claim_ttl_minutes or settings.reminder_claim_ttl_minutes)
        self._diary_url = diary_url or settings.diary_url

    async def run(self, now: datetime | None = None) -> ScanResult:
        """Scan once and return how many reminders were sent.

        Raises:
            RunFailure: an unexpected error aborted the run. Marks committed
                before the failure stay in place.
        """
        try:
            return await self._scan(now or datetime.now(UTC))
        except Exception as exc:
            logger.exception("Reminder scan failed")
            raise RunFailure(str(exc)) from exc

    async def _scan(self, now: datetime) -> ScanResult:
        horizon = now + self._horizon
        events = await self._store.list_due(now, horizon)
        logger.info(
            "Found %d event(s) to notify between %s and %s",
            len(events),
            now.isoformat(timespec="seconds"),
            horizon.isoformat(timespec="seconds"),
        )

        result = ScanResult()
        sent_ids: list[str] = []
        for event in events:
            if not await self._store.claim(event.id, now, self._claim_ttl):
                logger.info("Event %s already claimed by another run", event.id)
                result.skipped += 1
                continue

            try:
                await self._notify(event)
            except LookupFailure as exc:
                logger.error("Skipping event %s: %s", event.id, exc)
                await self._store.release(event.id)
                result.skipped += 1
                continue
            except SendFailure as exc:
                logger.error("Failed to send reminder for event %s: %s", event.id, exc)
                await self._store.release(event.id)
                result.failed += 1
                continue
            except Exception:
                await self._store.release(event.id)
                raise
            sent_ids.append(event.id)

        await self._store.mark_sent(sent_ids)
        result.notified = len(sent_ids)
        logger.info(
            "Reminder scan done: notified=%d skipped=%d failed=%d",
            result.notified,
            result.skipped,
            result.failed,
        )
        return result

    async def _notify(self, event: ReminderEvent) -> None:
        email = await self._users.get_email(event.owner_user_id)
        subject, body = build_reminder_email(event, diary_url=self._diary_url)
        await self._mailer.send(email, subject, body)
        logger.info("Reminder sent for event '%s' (%s)", event.title, event.id)
