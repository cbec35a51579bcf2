"""Jurist Mind reminder service entry point."""

import argparse
import asyncio
import json
import logging
import sys

from juristmind.config import settings
from juristmind.errors import RunFailure
from juristmind.reminders import (
    ReminderScanner,
    ReminderScheduler,
    ReminderStore,
    ResendMailer,
    SupabaseUserDirectory,
)
from juristmind.server import ReminderServer

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def run_once(scanner: ReminderScanner) -> int:
    """Run a single scan and print the JSON summary. Returns the exit code."""
    try:
        result = await scanner.run()
    except RunFailure as exc:
        print(json.dumps({"error": str(exc)}))
        return 1
    print(json.dumps(result.to_payload()))
    return 0


async def serve(scanner: ReminderScanner) -> None:
    """Run the interval scheduler and the invocation server until cancelled."""
    scheduler = ReminderScheduler(scanner)
    server = ReminderServer(scanner)
    await scheduler.start()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        await scheduler.stop()


async def _main(once: bool) -> int:
    mailer = ResendMailer()
    scanner = ReminderScanner(ReminderStore(), SupabaseUserDirectory(), mailer)
    try:
        if once:
            return await run_once(scanner)
        await serve(scanner)
        return 0
    finally:
        await mailer.close()


def main() -> None:
    """Start the reminder service, or run one scan with ``--once``."""
    parser = argparse.ArgumentParser(description="Jurist Mind diary reminder service")
    parser.add_argument("--once", action="store_true", help="run a single scan and exit")
    args = parser.parse_args()

    if not args.once:
        logger.info(
            "Starting reminder service (every %d min, horizon %d min)...",
            settings.reminder_interval_minutes,
            settings.reminder_horizon_minutes,
        )
    try:
        code = asyncio.run(_main(args.once))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
