#!/usr/bin/env python3
"""
Reserved Table Release Service

Runs in an infinite loop, waking up every RELEASE_CHECK_INTERVAL_SECONDS to
return unclaimed reserved tables to the general pool for every published or
ongoing event whose release deadline has passed.

Usage:
    python release_reserved_tables.py          # loop forever
    python release_reserved_tables.py --once   # single pass (cron)
"""

import argparse
import logging
import sys
import time
from datetime import datetime

from app.core.config import settings
from app.core.db import Base, SessionLocal, engine, transaction
from app.core.errors import AdmissionError
from app.models.enums import EventStatus
from app.services.release_scheduler import ReservationReleaseScheduler
from app.services.repositories import EventRepo

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (EventStatus.PUBLISHED.value, EventStatus.ONGOING.value)


def release_all_due(now=None):
    """
    One pass over every active event.

    Returns:
        dict: Summary of the pass
    """
    now = now or datetime.utcnow()
    summary = {
        'events_checked': 0,
        'tables_released': 0,
        'errors': []
    }

    db = SessionLocal()
    try:
        event_ids = [event.id for event in EventRepo.list_by_status(db, ACTIVE_STATUSES)]
        for event_id in event_ids:
            summary['events_checked'] += 1
            try:
                with transaction(db):
                    event = EventRepo.get_by_id(db, event_id)
                    released = ReservationReleaseScheduler.release_due_tables(db, event, now=now)
            except AdmissionError as e:
                error_msg = f"Event {event_id}: release failed: {e.message}"
                logger.error(error_msg)
                summary['errors'].append(error_msg)
                continue

            if released:
                summary['tables_released'] += len(released)
                logger.info(f"Event {event_id}: released tables {released}")
    finally:
        db.close()

    return summary


def main():
    parser = argparse.ArgumentParser(description="Release unclaimed reserved tables")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)

    if args.once:
        summary = release_all_due()
        logger.info(f"Summary: {summary['events_checked']} events checked, "
                    f"{summary['tables_released']} tables released")
        return

    logger.info("Starting Reserved Table Release Service")
    logger.info(f"Will check every {settings.RELEASE_CHECK_INTERVAL_SECONDS} seconds")

    while True:
        try:
            summary = release_all_due()
            if summary['tables_released'] or summary['errors']:
                logger.info(f"Summary: {summary['events_checked']} events checked, "
                            f"{summary['tables_released']} tables released, "
                            f"{len(summary['errors'])} errors")
            time.sleep(settings.RELEASE_CHECK_INTERVAL_SECONDS)
        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down...")
            break
        except Exception as e:
            logger.error(f"Unexpected error in main loop: {e}")
            time.sleep(settings.RELEASE_CHECK_INTERVAL_SECONDS)


if __name__ == "__main__":
    main()
