"""
Scheduled email jobs: day-before reminders and the staff daily summary.
"""
import logging
from datetime import timedelta

from emails import build_daily_summary, build_reminder
from errors import NotificationError, SignupError
from reporting import build_daily_digest

logger = logging.getLogger(__name__)


def send_tomorrow_reminders(store, notifier, config, today):
    """Remind every active signup for tomorrow that hasn't been reminded yet.

    ``reminder_sent`` is set only after a successful send, so a failed
    reminder is retried on the next run.
    """
    tomorrow = today + timedelta(days=1)
    signups = store.find_signups(
        start=tomorrow, end=tomorrow, cancelled=False, reminder_sent=False, order_by="location"
    )
    settings = store.get_settings(config.default_kid_count_min, config.default_kid_count_max)

    results = []
    for signup in signups:
        subject, html = build_reminder(signup, settings.kid_count_display, config)
        try:
            sent = notifier.send(signup.email, subject, html)
        except NotificationError as e:
            logger.error("Reminder for signup %s failed: %s", signup.id, e)
            sent = False

        if sent:
            try:
                store.update_signup(signup.id, reminder_sent=True)
            except SignupError:
                # The email went out; the next run may send a duplicate.
                logger.error("Reminder sent for signup %s but flag not saved", signup.id)
            results.append({"id": signup.id, "email": signup.email, "status": "sent"})
        else:
            results.append({"id": signup.id, "email": signup.email, "status": "failed"})

    logger.info(
        "Reminders for %s: %d sent, %d failed",
        tomorrow.isoformat(),
        sum(1 for r in results if r["status"] == "sent"),
        sum(1 for r in results if r["status"] == "failed"),
    )
    return results


def run_daily_summary(store, notifier, config, today, now):
    """Send tomorrow's reminders, then the summary email to staff."""
    reminder_results = send_tomorrow_reminders(store, notifier, config, today)
    digest = build_daily_digest(store, config, today, now)

    summary_sent = False
    if config.summary_recipients:
        subject, html = build_daily_summary(digest, config)
        try:
            summary_sent = bool(notifier.send(list(config.summary_recipients), subject, html))
        except NotificationError as e:
            logger.error("Daily summary email failed: %s", e)
    else:
        logger.warning("DAILY_SUMMARY_EMAIL is not set; daily summary not emailed")

    response = {
        "success": True,
        "summaryEmailSent": summary_sent,
        "remindersSent": sum(1 for r in reminder_results if r["status"] == "sent"),
        "remindersFailed": sum(1 for r in reminder_results if r["status"] == "failed"),
    }
    response.update(digest.counts())
    return response
