"""Diary reminder system: finds events starting soon and emails their owners."""

from juristmind.reminders.email import ResendMailer, build_reminder_email
from juristmind.reminders.engine import ReminderScheduler
from juristmind.reminders.models import ReminderEvent, ScanResult
from juristmind.reminders.scanner import ReminderScanner
from juristmind.reminders.store import ReminderStore
from juristmind.reminders.users import SupabaseUserDirectory, UserDirectory

__all__ = [
    "ReminderEvent",
    "ReminderScanner",
    "ReminderScheduler",
    "ReminderStore",
    "ResendMailer",
    "ScanResult",
    "SupabaseUserDirectory",
    "UserDirectory",
    "build_reminder_email",
]
