"""ReminderScheduler — runs the scanner on a fixed APScheduler interval."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from juristmind.config import settings
from juristmind.errors import RunFailure

if TYPE_CHECKING:
    from datetime import datetime

    from juristmind.reminders.models import ScanResult
    from juristmind.reminders.scanner import ReminderScanner

logger = logging.getLogger(__name__)

JOB_ID = "diary-reminders"


class ReminderScheduler:
    """Manages the APScheduler lifecycle for the reminder job.

    ``max_instances=1`` keeps this process from overlapping its own runs;
    the store's claim step covers runs from other processes.

    Args:
        scanner: ReminderScanner to invoke.
        interval_minutes: Minutes between runs (default from settings).
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        scanner: ReminderScanner,
        interval_minutes: int | None = None,
        timezone: str | None = None,
    ) -> None:
        self._scanner = scanner
        self._interval = interval_minutes or settings.reminder_interval_minutes
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False
        self.last_result: ScanResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Register the interval job and start the scheduler."""
        self._scheduler.add_job(
            self.run_now,
            trigger=IntervalTrigger(minutes=self._interval, timezone=self._timezone),
            id=JOB_ID,
            name="Diary reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Reminder scheduler started (every %d min, tz=%s)",
            self._interval,
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Reminder scheduler stopped")

    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    # -- Job -------------------------------------------------------------------

    async def run_now(self) -> ScanResult | None:
        """Run one scan. Failures are logged so the schedule keeps going."""
        try:
            self.last_result = await self._scanner.run()
        except RunFailure:
            logger.error("Scheduled reminder scan failed; will retry next interval")
            return None
        return self.last_result
