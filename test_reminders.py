from datetime import date, datetime

from config import MealSignupConfig
from conftest import BRICK, FARMHOUSE, TODAY
from reminders import run_daily_summary, send_tomorrow_reminders

TOMORROW = date(2025, 3, 2)


def test_reminds_tomorrows_active_signups_once(store, notifier, config, make_signup):
    first = make_signup(TOMORROW, BRICK, email="first@example.org")
    make_signup(TOMORROW, FARMHOUSE, email="gone@example.org", cancelled=True)
    make_signup(date(2025, 3, 3), BRICK, email="later@example.org")

    results = send_tomorrow_reminders(store, notifier, config, TODAY)

    assert results == [{"id": first.id, "email": "first@example.org", "status": "sent"}]
    assert notifier.sent[0]["subject"] == "Reminder: Your Meal is Tomorrow - Sunday, March 2, 2025"
    assert config.cancel_url(first.cancel_token) in notifier.sent[0]["html"]
    assert store.get_signup_by_token(first.cancel_token).reminder_sent

    assert send_tomorrow_reminders(store, notifier, config, TODAY) == []
    assert len(notifier.sent) == 1


def test_failed_reminder_is_retried_next_run(store, notifier, config, make_signup):
    signup = make_signup(TOMORROW, BRICK)
    notifier.succeed = False

    results = send_tomorrow_reminders(store, notifier, config, TODAY)

    assert results[0]["status"] == "failed"
    assert not store.get_signup_by_token(signup.cancel_token).reminder_sent

    notifier.succeed = True
    assert send_tomorrow_reminders(store, notifier, config, TODAY)[0]["status"] == "sent"


def test_daily_summary_goes_to_every_staff_address(store, notifier, config, make_signup):
    make_signup(TOMORROW, BRICK)

    summary = run_daily_summary(store, notifier, config, TODAY, datetime(2025, 3, 1, 12, 0))

    assert summary["success"]
    assert summary["summaryEmailSent"]
    assert summary["remindersSent"] == 1
    assert summary["tomorrowCount"] == 1
    assert summary["openSlotsCount"] == 13

    staff_email = notifier.sent[-1]
    assert staff_email["to"] == ["staff@example.org", "kitchen@example.org"]
    assert staff_email["subject"] == "Daily Meal Summary - Saturday, March 1"


def test_daily_summary_without_recipients(app, store, notifier):
    config = MealSignupConfig.from_mapping({**app.config, "DAILY_SUMMARY_EMAIL": ""})

    summary = run_daily_summary(store, notifier, config, TODAY, datetime(2025, 3, 1, 12, 0))

    assert summary["summaryEmailSent"] is False
    assert notifier.sent == []
