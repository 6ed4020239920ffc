"""
Slot rules.

A slot is one (calendar day, location) pair and holds at most one active
signup. Days are plain ``datetime.date`` values; "today" is always taken in
the service timezone so a late-evening request never lands on the wrong day.
"""
from collections import namedtuple
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

Slot = namedtuple("Slot", ["day", "location"])


def service_today(tz_name) -> date:
    """Current calendar day in the service timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def to_day(value) -> date:
    """Normalise a date, datetime or ISO string to a calendar day.

    Only the leading ``YYYY-MM-DD`` of a string is used, so a time-of-day or
    offset suffix can never move the day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    raise TypeError(f"Cannot read a calendar day from {value!r}")


def day_range(start: date, days: int):
    return [start + timedelta(days=offset) for offset in range(days)]


def is_past(day: date, today: date) -> bool:
    return day < today


def taken_by_day(signups):
    """Map each day to the locations already held by active signups.

    Locations keep the order the signups were given in.
    """
    taken = {}
    for signup in signups:
        if signup.cancelled:
            continue
        taken.setdefault(signup.date, [])
        if signup.location not in taken[signup.date]:
            taken[signup.date].append(signup.location)
    return taken


def free_locations(locations, taken_locations):
    """Locations still open, in their declared order."""
    return [location for location in locations if location not in taken_locations]


def is_fully_booked(locations, taken_locations) -> bool:
    return not free_locations(locations, taken_locations)


def is_day_bookable(day, today, blocked_days, taken_locations, locations) -> bool:
    """A day can take another signup when it is not past, not blocked, and
    at least one location is still free."""
    if is_past(day, today):
        return False
    if day in blocked_days:
        return False
    return not is_fully_booked(locations, taken_locations)
