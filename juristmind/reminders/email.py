"""Resend email API client using aiohttp, plus the reminder email template."""

from __future__ import annotations

import html
import logging
from typing import TYPE_CHECKING

import aiohttp

from juristmind.config import settings
from juristmind.errors import SendFailure

if TYPE_CHECKING:
    from juristmind.reminders.models import ReminderEvent

logger = logging.getLogger(__name__)

_REMINDER_HTML = """\
<div style="font-family: sans-serif; padding: 20px;">
  <h2>Upcoming Event Reminder</h2>
  <p>Hello,</p>
  <p>This is a reminder for your scheduled event:</p>
  <div style="background: #f4f4f5; padding: 15px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin: 0 0 10px;">{title}</h3>
    <p style="margin: 0;"><strong>Time:</strong> {time}</p>
  </div>
  <p>Login to <a href="{diary_url}">Jurist Mind</a> to view details.</p>
</div>
"""


def build_reminder_email(event: ReminderEvent, *, diary_url: str | None = None) -> tuple[str, str]:
    """Return ``(subject, html_body)`` for an event reminder."""
    subject = f"\N{BELL} Reminder: {event.title} is starting soon"
    body = _REMINDER_HTML.format(
        title=html.escape(event.title),
        time=html.escape(event.display_time),
        diary_url=html.escape(diary_url or settings.diary_url, quote=True),
    )
    return subject, body


class ResendMailer:
    """Sends transactional email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str | None = None,
        from_address: str | None = None,
        api_url: str | None = None,
    ) -> None:
        self._api_key = api_key or settings.resend_api_key
        self._from = from_address or settings.reminder_from_address
        self._api_url = api_url or settings.resend_api_url
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Return (and lazily create) the shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(self, to: str, subject: str, html_body: str) -> str:
        """Send one email. Returns the provider's message id.

        Raises:
            SendFailure: not configured, network error, or non-2xx response.
        """
        if not self._api_key:
            msg = "Email not configured: RESEND_API_KEY missing"
            raise SendFailure(msg)

        payload = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }

        session = self._get_session()
        try:
            async with session.post(self._api_url, json=payload) as resp:
                if 200 <= resp.status < 300:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    message_id = str(data.get("id", "")) if isinstance(data, dict) else ""
                    logger.info("Email sent to %s (id=%s)", to, message_id)
                    return message_id
                text = await resp.text()
                msg = f"Email send failed: status={resp.status} body={text[:200]}"
                raise SendFailure(msg)
        except (aiohttp.ClientError, TimeoutError) as exc:
            msg = f"Email send failed (network error): {exc}"
            raise SendFailure(msg) from exc
