from datetime import date, datetime

import pytest

from cancellation import CancelOutcome, cancel_signup, lookup_signup
from conftest import BRICK, FARMHOUSE
from errors import NotFoundError, ValidationError


def test_cancel_then_cancel_again(store, make_signup):
    signup = make_signup(date(2025, 3, 10), BRICK)
    token = signup.cancel_token
    first_at = datetime(2025, 3, 5, 14, 0)

    outcome, cancelled = cancel_signup(store, token, now=first_at)
    assert outcome is CancelOutcome.CANCELLED
    assert cancelled.cancelled
    assert cancelled.cancelled_at == first_at

    outcome, again = cancel_signup(store, token, now=datetime(2025, 3, 6, 9, 0))
    assert outcome is CancelOutcome.ALREADY_CANCELLED
    assert again.id == signup.id
    # The first cancellation time sticks
    assert again.cancelled_at == first_at


def test_token_only_touches_its_own_signup(store, make_signup):
    mine = make_signup(date(2025, 3, 10), BRICK)
    theirs = make_signup(date(2025, 3, 10), FARMHOUSE, email="other@example.org")
    other_day = make_signup(date(2025, 3, 11), BRICK)

    cancel_signup(store, mine.cancel_token)

    assert store.get_signup_by_token(mine.cancel_token).cancelled
    assert not store.get_signup_by_token(theirs.cancel_token).cancelled
    assert not store.get_signup_by_token(other_day.cancel_token).cancelled
    assert store.count_signups(cancelled=False) == 2


def test_tokens_are_unique_and_unguessable(make_signup):
    a = make_signup(date(2025, 3, 10), BRICK)
    b = make_signup(date(2025, 3, 10), FARMHOUSE)
    assert a.cancel_token != b.cancel_token
    assert len(a.cancel_token) >= 32


def test_unknown_token(store, make_signup):
    make_signup(date(2025, 3, 10), BRICK)
    with pytest.raises(NotFoundError):
        cancel_signup(store, "no-such-token")
    with pytest.raises(NotFoundError):
        lookup_signup(store, "no-such-token")
    assert store.count_signups(cancelled=True) == 0


@pytest.mark.parametrize("token", [None, "", "   "])
def test_empty_token(store, token):
    with pytest.raises(ValidationError, match="Token required"):
        cancel_signup(store, token)


def test_lookup_does_not_cancel(store, make_signup):
    signup = make_signup(date(2025, 3, 10), BRICK)
    found = lookup_signup(store, signup.cancel_token)
    assert found.id == signup.id
    assert not found.cancelled
