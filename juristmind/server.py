"""Lightweight async HTTP server for invoking the reminder scan.

An external cron (or the hosting platform's scheduler) calls
``POST /reminders/run`` with ``Authorization: Bearer <CRON_SECRET>``.
Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from aiohttp import web

from juristmind.config import settings
from juristmind.errors import RunFailure

if TYPE_CHECKING:
    from juristmind.reminders.scanner import ReminderScanner

logger = logging.getLogger(__name__)

SCANNER_KEY = web.AppKey("scanner", object)


def _authorized(request: web.Request) -> bool:
    header = request.headers.get("Authorization", "")
    token = header[7:] if header[:7].lower() == "bearer " else ""
    return bool(settings.cron_secret) and token == settings.cron_secret


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _run_reminders(request: web.Request) -> web.Response:
    """POST /reminders/run — run one scan and report the summary."""
    if not _authorized(request):
        logger.warning("Reminder run rejected: invalid bearer token")
        return web.json_response({"error": "unauthorized"}, status=401)

    scanner: ReminderScanner = request.app[SCANNER_KEY]
    started = time.monotonic()
    try:
        result = await scanner.run()
    except RunFailure as exc:
        return web.json_response({"error": str(exc)}, status=500)

    logger.info(
        "Reminder run via HTTP: notified=%d in %.2fs",
        result.notified,
        time.monotonic() - started,
    )
    return web.json_response(result.to_payload())


def create_web_app(scanner: ReminderScanner) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[SCANNER_KEY] = scanner
    app.router.add_get("/health", _health)
    app.router.add_post("/reminders/run", _run_reminders)
    return app


class ReminderServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, scanner: ReminderScanner, port: int | None = None) -> None:
        self.port = port or settings.server_port
        self._scanner = scanner
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scan invocations."""
        if not settings.cron_secret:
            logger.warning("CRON_SECRET empty — reminder server disabled")
            return

        app = create_web_app(self._scanner)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Reminder server listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Reminder server stopped")
