#!/usr/bin/env python3
"""
Worker process that runs the scheduled email jobs with APScheduler.
Keeps the scheduler out of the web process; run it as its own dyno/service.

Usage:
    python worker.py            # run the scheduler until stopped
    python worker.py --once     # run the daily summary once and exit (for cron)
"""

import logging
import os
import sys

from dotenv import load_dotenv
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

# Load environment variables
load_dotenv()

# Import after loading env vars
from app import app, get_config, get_notifier, get_store, get_today  # noqa: E402
from models import utc_now  # noqa: E402
from reminders import run_daily_summary  # noqa: E402

logger = logging.getLogger("worker")

SUMMARY_HOUR = int(os.environ.get("DAILY_SUMMARY_HOUR", "7"))


def daily_summary_job():
    """Reminders for tomorrow plus the staff summary."""
    with app.app_context():
        summary = run_daily_summary(get_store(), get_notifier(), get_config(), get_today(), utc_now())
        logger.info("Daily summary job finished: %s", summary)
        return summary


def run_scheduler():
    """Run the background scheduler for reminder and summary emails."""
    with app.app_context():
        tz = get_config().timezone

    scheduler = BlockingScheduler(timezone=tz)
    scheduler.add_job(
        daily_summary_job,
        CronTrigger(hour=SUMMARY_HOUR, minute=0, timezone=tz),
        id='daily-summary',
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
    )

    print("Starting meal sign-up scheduler...")
    print(f"Daily reminders and staff summary scheduled for {SUMMARY_HOUR:02d}:00 ({tz})")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if len(sys.argv) > 1 and sys.argv[1] == "--once":
        result = daily_summary_job()
        print(f"Done: {result['remindersSent']} reminders sent, summary sent={result['summaryEmailSent']}")
    else:
        run_scheduler()
