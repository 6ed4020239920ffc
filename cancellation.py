"""
Cancelling a signup by its token.

The token is the only credential. Cancelling is one conditional update, so
two clicks on the same email link can't both "win", and a second request just
reports that the signup was already cancelled.
"""
import enum
import logging

from errors import NotFoundError, ValidationError
from models import utc_now

logger = logging.getLogger(__name__)


class CancelOutcome(enum.Enum):
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"


def _require_token(token):
    token = (token or "").strip()
    if not token:
        raise ValidationError("Token required")
    return token


def lookup_signup(store, token):
    """Signup for a cancel link, or ``NotFoundError``."""
    signup = store.get_signup_by_token(_require_token(token))
    if not signup:
        raise NotFoundError("Sign-up not found")
    return signup


def cancel_signup(store, token, now=None):
    """Cancel the signup holding ``token``.

    Returns ``(outcome, signup)``. Raises ``NotFoundError`` for an unknown
    token.
    """
    token = _require_token(token)
    changed = store.cancel_by_token(token, now or utc_now())
    signup = store.get_signup_by_token(token)
    if signup is None:
        raise NotFoundError("Sign-up not found")

    if changed:
        logger.info(
            "Signup %s cancelled (%s at %s)", signup.id, signup.date.isoformat(), signup.location
        )
        return CancelOutcome.CANCELLED, signup

    logger.info("Signup %s was already cancelled", signup.id)
    return CancelOutcome.ALREADY_CANCELLED, signup
