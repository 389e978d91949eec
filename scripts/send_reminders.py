"""Sends due 24h / 1h session reminders. Meant to run from cron every 15 minutes.

Usage:
    python scripts/send_reminders.py [--db-url ...]
"""

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from mentor_booking_backend.common.config import settings
from mentor_booking_backend.database.engine import build_engine, build_session_factory
from mentor_booking_backend.database.store import BookingStore
from mentor_booking_backend.services.notification_service import EmailDispatcher
from mentor_booking_backend.services.reminder_service import ReminderService

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def run(db_url: str) -> None:
    engine = build_engine(db_url)
    session_factory = build_session_factory(engine)
    try:
        async with session_factory() as session:
            service = ReminderService(BookingStore(session), EmailDispatcher())
            result = await service.send_due_reminders()
            logger.info(f"Checked {result.checked} booking(s): sent {result.sent_24h} x 24h and {result.sent_1h} x 1h reminders.")
    finally:
        await engine.dispose()


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="Send due session reminders.")
    parser.add_argument("--db-url", default=None, help="Database URL (defaults to the configured one).")
    args = parser.parse_args()

    asyncio.run(run(args.db_url or settings.database_url))


if __name__ == "__main__":
    main()
