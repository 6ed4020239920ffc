"""
Availability resolver.

Given the dates a donor picked (and optionally a location), decide for each
day which location they get or why they can't have it. Blocked dates and
active signups for the whole requested range are fetched in two queries and
resolved in memory, so every day is judged against the same snapshot.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from errors import ValidationError
from slots import free_locations, is_day_bookable, is_past, taken_by_day, to_day

logger = logging.getLogger(__name__)

BLOCKED = "blocked"
FULLY_BOOKED = "fully-booked"
LOCATION_TAKEN = "location-already-taken"
PAST_DATE = "past-date"


@dataclass
class Resolution:
    """Outcome for one candidate day: a ``location`` or a ``reason``."""
    day: object
    location: str = None
    reason: str = None

    @property
    def ok(self) -> bool:
        return self.reason is None


@dataclass
class AvailabilityReport:
    resolutions: list = field(default_factory=list)

    @property
    def assignments(self):
        return [r for r in self.resolutions if r.ok]

    @property
    def rejections(self):
        return [r for r in self.resolutions if not r.ok]

    @property
    def all_available(self) -> bool:
        return not self.rejections


def dedupe_days(raw_dates, max_dates):
    """Parse requested dates, dropping repeats of the same calendar day.

    The cap is checked against the raw request before anything is parsed.
    First occurrence wins, order is preserved.
    """
    if not isinstance(raw_dates, (list, tuple)) or not raw_dates:
        raise ValidationError("Please select at least one date")
    if len(raw_dates) > max_dates:
        raise ValidationError(f"Maximum {max_dates} dates per sign-up")

    days = []
    seen = set()
    for raw in raw_dates:
        try:
            day = to_day(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid date: {raw}") from None
        if day not in seen:
            seen.add(day)
            days.append(day)
    if not days:
        raise ValidationError("Please select at least one date")
    return days


def resolve_day(day, taken, blocked_days, locations, today, location=None):
    """Resolve one day against an in-memory snapshot."""
    if is_past(day, today):
        return Resolution(day, reason=PAST_DATE)
    if day in blocked_days:
        return Resolution(day, reason=BLOCKED)

    open_locations = free_locations(locations, taken.get(day, ()))
    if not open_locations:
        return Resolution(day, reason=FULLY_BOOKED)
    if location is not None:
        if location not in open_locations:
            return Resolution(day, reason=LOCATION_TAKEN)
        return Resolution(day, location=location)
    return Resolution(day, location=open_locations[0])


def resolve_availability(store, days, config, today, location=None):
    """Resolve every candidate day for one request.

    ``days`` must already be deduplicated. ``location`` (when given) must be
    one of ``config.locations``.
    """
    if location is not None and location not in config.locations:
        raise ValidationError("Please select a valid location")
    if not days:
        return AvailabilityReport()

    start, end = min(days), max(days)
    blocked_days = {b.date for b in store.find_blocked_dates(start, end)}
    taken = taken_by_day(store.find_signups(start=start, end=end, cancelled=False))

    report = AvailabilityReport(
        [resolve_day(day, taken, blocked_days, config.locations, today, location) for day in days]
    )
    if report.rejections:
        logger.info(
            "Availability rejected %d of %d dates: %s",
            len(report.rejections),
            len(days),
            ", ".join(f"{r.day.isoformat()}={r.reason}" for r in report.rejections),
        )
    return report


def availability_calendar(store, start, end, config, today):
    """Per-day view for the sign-up calendar: taken locations and flags.

    Contains no donor details.
    """
    blocked_days = {b.date for b in store.find_blocked_dates(start, end)}
    taken = taken_by_day(store.find_signups(start=start, end=end, cancelled=False))

    calendar = []
    day = start
    while day <= end:
        taken_locations = [loc for loc in config.locations if loc in taken.get(day, ())]
        blocked = day in blocked_days
        calendar.append({
            "date": day.isoformat(),
            "takenLocations": taken_locations,
            "blocked": blocked,
            "past": is_past(day, today),
            "available": is_day_bookable(day, today, blocked_days, taken_locations, config.locations),
        })
        day += timedelta(days=1)
    return calendar
