from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from booking import BatchBooking, BookingRequest, BookingState, book_signups
from conftest import BRICK, FARMHOUSE, TODAY
from errors import AvailabilityConflict, PersistenceError, ValidationError
from store import SignupStore


def make_request(dates, **overrides):
    fields = {
        "name": "Dana Donor",
        "email": "dana@example.org",
        "phone": "203-555-0100",
        "bringing": "Tacos for everyone",
        "dates": dates,
    }
    fields.update(overrides)
    return BookingRequest(**fields)


class StaleSnapshotStore(SignupStore):
    """Sees an empty calendar, as if another booking landed after the read."""

    def find_signups(self, *args, **kwargs):
        return []


def test_books_every_date_and_confirms_once(store, notifier, config):
    booking = BatchBooking(store, notifier, config, TODAY)

    result = booking.submit(make_request(["2025-03-10", "2025-03-12"]))

    assert booking.state is BookingState.COMMITTED
    assert result.created_count == 2
    assert result.assignments == [
        {"date": "2025-03-10", "location": BRICK},
        {"date": "2025-03-12", "location": BRICK},
    ]
    assert result.notified
    assert len(notifier.sent) == 1

    message = notifier.sent[0]
    assert message["to"] == "dana@example.org"
    assert message["subject"] == "Meal Sign-Ups Confirmed - 2 dates starting March 10, 2025"
    [(filename, content_type, data)] = message["attachments"]
    assert filename == "meal-signups.ics"
    assert content_type == "text/calendar"
    assert data.count(b"BEGIN:VEVENT") == 2


def test_one_bad_date_rejects_the_whole_batch(store, notifier, config):
    store.add_blocked_date(date(2025, 3, 11))
    booking = BatchBooking(store, notifier, config, TODAY)

    with pytest.raises(AvailabilityConflict) as excinfo:
        booking.submit(make_request(["2025-03-10", "2025-03-11", "2025-03-12"]))

    assert booking.state is BookingState.REJECTED
    assert excinfo.value.failing_dates == [date(2025, 3, 11)]
    assert excinfo.value.to_dict()["rejections"] == [{"date": "2025-03-11", "reason": "blocked"}]
    assert "Mar 11" in excinfo.value.message
    assert store.count_signups() == 0
    assert notifier.sent == []


def test_every_failing_date_is_reported(store, notifier, config, make_signup):
    make_signup(date(2025, 3, 10), BRICK)
    make_signup(date(2025, 3, 10), FARMHOUSE, email="x@example.org")
    booking = BatchBooking(store, notifier, config, TODAY)

    with pytest.raises(AvailabilityConflict) as excinfo:
        booking.submit(make_request(["2025-02-20", "2025-03-10", "2025-03-14"]))

    assert booking.rejections == [
        (date(2025, 2, 20), "past-date"),
        (date(2025, 3, 10), "fully-booked"),
    ]
    assert excinfo.value.failing_dates == [date(2025, 2, 20), date(2025, 3, 10)]
    assert store.count_signups() == 2


def test_duplicate_dates_book_once(store, notifier, config):
    result = BatchBooking(store, notifier, config, TODAY).submit(
        make_request(["2025-03-10", "2025-03-10T09:00:00Z"])
    )
    assert result.created_count == 1
    assert store.count_signups() == 1


def test_explicit_location_is_honoured(store, notifier, config):
    result = BatchBooking(store, notifier, config, TODAY).submit(
        make_request(["2025-03-10"], location=FARMHOUSE)
    )
    assert result.signups[0].location == FARMHOUSE


def test_missing_fields_are_rejected_before_the_store(notifier, config):
    store = Mock()
    booking = BatchBooking(store, notifier, config, TODAY)

    with pytest.raises(ValidationError, match="Missing required fields"):
        booking.submit(make_request(["2025-03-10"], phone=None))

    assert booking.state is BookingState.REJECTED
    assert store.mock_calls == []


def test_date_cap_is_enforced_without_touching_the_store(notifier, config):
    store = Mock()
    days = [(date(2025, 3, 2) + timedelta(days=i)).isoformat() for i in range(31)]

    with pytest.raises(ValidationError, match="Maximum 30 dates"):
        BatchBooking(store, notifier, config, TODAY).submit(make_request(days))

    assert store.mock_calls == []


def test_bad_email_is_rejected(store, notifier, config):
    with pytest.raises(ValidationError, match="valid email"):
        BatchBooking(store, notifier, config, TODAY).submit(
            make_request(["2025-03-10"], email="not-an-email")
        )


def test_notification_failure_keeps_the_booking(store, notifier, config):
    notifier.succeed = False
    booking = BatchBooking(store, notifier, config, TODAY)

    result = booking.submit(make_request(["2025-03-10"]))

    assert booking.state is BookingState.COMMITTED
    assert not result.notified
    assert result.to_dict()["confirmationSent"] is False
    assert store.count_signups() == 1


def test_unique_index_stops_a_race_the_snapshot_missed(app, notifier, config, make_signup):
    make_signup(date(2025, 3, 10), BRICK)
    stale = StaleSnapshotStore()
    booking = BatchBooking(stale, notifier, config, TODAY)

    with pytest.raises(PersistenceError):
        booking.submit(make_request(["2025-03-10", "2025-03-11"], location=BRICK))

    assert booking.state is BookingState.FAILED
    # Nothing from the failed batch survives, including 3/11
    assert stale.count_signups() == 1
    assert notifier.sent == []


def test_cancelled_slot_can_be_rebooked(store, notifier, config, make_signup):
    make_signup(date(2025, 3, 10), BRICK, cancelled=True)

    result = BatchBooking(store, notifier, config, TODAY).submit(
        make_request(["2025-03-10"], location=BRICK)
    )

    assert result.signups[0].location == BRICK
    assert store.count_signups(cancelled=False) == 1
    assert store.count_signups() == 2


def test_a_day_never_holds_more_signups_than_locations(store, notifier, config):
    for n in range(2):
        book_signups(store, notifier, config, TODAY, {
            "name": f"Donor {n}",
            "email": f"donor{n}@example.org",
            "phone": "203-555-0100",
            "bringing": "Soup",
            "date": "2025-03-10",
        })

    with pytest.raises(AvailabilityConflict):
        book_signups(store, notifier, config, TODAY, {
            "name": "Late Donor",
            "email": "late@example.org",
            "phone": "203-555-0100",
            "bringing": "Soup",
            "date": "2025-03-10",
        })

    day = date(2025, 3, 10)
    signups = store.find_signups(start=day, end=day, cancelled=False)
    assert sorted(s.location for s in signups) == [BRICK, FARMHOUSE]


def test_payload_strings_are_trimmed_and_typed():
    request = BookingRequest.from_payload({
        "name": "  Dana  ",
        "email": "dana@example.org ",
        "phone": "203",
        "bringing": "Chili",
        "notes": "   ",
        "date": "2025-03-10",
    })
    assert request.name == "Dana"
    assert request.email == "dana@example.org"
    assert request.notes is None
    assert request.dates == ["2025-03-10"]

    with pytest.raises(ValidationError):
        BookingRequest.from_payload({"name": 5})
