"""
Read-only views built from current store state: the upcoming list, the
open-slot forecast, the CSV export and the daily digest.
"""
import csv
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from io import StringIO
from itertools import groupby
from zoneinfo import ZoneInfo

from slots import Slot, day_range, taken_by_day

CSV_HEADERS = ['Date', 'Name', 'Email', 'Phone', 'Bringing', 'Notes', 'Signed Up At']


def upcoming_signups(store, today):
    """Active signups from today on, grouped by day in date order.

    Returns a list of ``(day, [signups])`` pairs.
    """
    signups = store.find_signups(start=today, cancelled=False)
    return [(day, list(rows)) for day, rows in groupby(signups, key=lambda s: s.date)]


def open_slot_forecast(store, today, config, days=None):
    """Open (day, location) slots for the next ``days`` days starting today.

    Blocked days and days with every location taken contribute nothing.
    """
    window = day_range(today, days or config.forecast_days)
    start, end = window[0], window[-1]
    blocked = {b.date for b in store.find_blocked_dates(start, end)}
    taken = taken_by_day(store.find_signups(start=start, end=end, cancelled=False))

    open_slots = []
    for day in window:
        if day in blocked:
            continue
        for location in config.locations:
            if location not in taken.get(day, ()):
                open_slots.append(Slot(day, location))
    return open_slots


def _us_date(day):
    return f"{day.month}/{day.day}/{day.year}"


def _us_timestamp(created_at, tz_name):
    local = created_at.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{_us_date(local)}, {hour}:{local:%M:%S} {suffix}"


def export_signups_csv(store, config, start=None, end=None):
    """CSV of active signups, one row per signup, every field quoted."""
    signups = store.find_signups(start=start, end=end, cancelled=False)

    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for signup in signups:
        writer.writerow([
            _us_date(signup.date),
            signup.name,
            signup.email,
            signup.phone,
            signup.bringing,
            signup.notes or '',
            _us_timestamp(signup.created_at, config.timezone) if signup.created_at else '',
        ])
    return output.getvalue()


@dataclass
class DailyDigest:
    today: object
    tomorrow: object
    day_after: object
    today_signups: list = field(default_factory=list)
    tomorrow_signups: list = field(default_factory=list)
    day_after_signups: list = field(default_factory=list)
    recent_cancellations: list = field(default_factory=list)
    open_slots: list = field(default_factory=list)
    kid_count_display: str = ""

    def counts(self):
        return {
            "todayCount": len(self.today_signups),
            "tomorrowCount": len(self.tomorrow_signups),
            "dayAfterTomorrowCount": len(self.day_after_signups),
            "cancellationsCount": len(self.recent_cancellations),
            "openSlotsCount": len(self.open_slots),
        }


def build_daily_digest(store, config, today, now):
    """Everything staff see in the morning summary.

    ``now`` is a naive UTC timestamp; cancellations from the 24 hours before
    it are included.
    """
    tomorrow = today + timedelta(days=1)
    day_after = today + timedelta(days=2)

    def on(day):
        return store.find_signups(start=day, end=day, cancelled=False, order_by="location")

    settings = store.get_settings(config.default_kid_count_min, config.default_kid_count_max)
    return DailyDigest(
        today=today,
        tomorrow=tomorrow,
        day_after=day_after,
        today_signups=on(today),
        tomorrow_signups=on(tomorrow),
        day_after_signups=on(day_after),
        recent_cancellations=store.find_signups(
            cancelled=True, cancelled_since=now - timedelta(hours=24), order_by="cancelled_at"
        ),
        open_slots=open_slot_forecast(store, today, config),
        kid_count_display=settings.kid_count_display,
    )
