from datetime import date, datetime
from types import SimpleNamespace

import pytest
from freezegun import freeze_time

from slots import (
    day_range,
    free_locations,
    is_day_bookable,
    is_fully_booked,
    service_today,
    taken_by_day,
    to_day,
)

LOCATIONS = ("Brick Building", "Yellow Farmhouse")


def _row(day, location, cancelled=False):
    return SimpleNamespace(date=day, location=location, cancelled=cancelled)


def test_to_day_ignores_time_and_offset():
    assert to_day("2025-03-10") == date(2025, 3, 10)
    assert to_day("2025-03-10T23:30:00-05:00") == date(2025, 3, 10)
    assert to_day("2025-03-10T00:00:00.000Z") == date(2025, 3, 10)
    assert to_day(datetime(2025, 3, 10, 23, 59)) == date(2025, 3, 10)
    assert to_day(date(2025, 3, 10)) == date(2025, 3, 10)


def test_to_day_rejects_garbage():
    with pytest.raises(ValueError):
        to_day("next tuesday")
    with pytest.raises(TypeError):
        to_day(12345)


@freeze_time("2025-03-11 03:30:00")
def test_service_today_uses_service_timezone():
    # 03:30 UTC is still the evening of the 10th in New York
    assert service_today("America/New_York") == date(2025, 3, 10)
    assert service_today("UTC") == date(2025, 3, 11)


def test_taken_by_day_skips_cancelled_rows():
    day = date(2025, 3, 10)
    taken = taken_by_day([
        _row(day, "Yellow Farmhouse"),
        _row(day, "Brick Building", cancelled=True),
    ])
    assert taken == {day: ["Yellow Farmhouse"]}


def test_free_locations_keep_declared_order():
    assert free_locations(LOCATIONS, []) == ["Brick Building", "Yellow Farmhouse"]
    assert free_locations(LOCATIONS, ["Brick Building"]) == ["Yellow Farmhouse"]
    assert is_fully_booked(LOCATIONS, ["Yellow Farmhouse", "Brick Building"])


def test_is_day_bookable_rules():
    today = date(2025, 3, 5)
    blocked = {date(2025, 3, 8)}

    assert is_day_bookable(today, today, blocked, [], LOCATIONS)
    assert not is_day_bookable(date(2025, 3, 4), today, blocked, [], LOCATIONS)
    assert not is_day_bookable(date(2025, 3, 8), today, blocked, [], LOCATIONS)
    assert is_day_bookable(date(2025, 3, 9), today, blocked, ["Brick Building"], LOCATIONS)
    assert not is_day_bookable(date(2025, 3, 9), today, blocked, list(LOCATIONS), LOCATIONS)


def test_day_range_is_consecutive():
    days = day_range(date(2025, 2, 27), 4)
    assert days == [date(2025, 2, 27), date(2025, 2, 28), date(2025, 3, 1), date(2025, 3, 2)]
