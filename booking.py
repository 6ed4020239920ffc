"""
Batch booking.

A donor submits contact details and one or more dates. Either every date is
booked in one transaction, or nothing is and the response lists each date
that failed and why. The confirmation email goes out only after the commit,
and its failure never undoes the booking.

    VALIDATING -> REJECTED
               -> RESOLVING -> REJECTED
                            -> COMMITTING -> COMMITTED
                                          -> FAILED
"""
import enum
import logging
from dataclasses import dataclass, field

from availability import dedupe_days, resolve_availability
from emails import build_batch_confirmation, generate_signup_ical
from errors import AvailabilityConflict, NotificationError, PersistenceError, SignupError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "phone", "bringing")

FIELD_LIMITS = {"name": 120, "email": 255, "phone": 40, "bringing": 2000, "notes": 2000}


class BookingState(enum.Enum):
    VALIDATING = "validating"
    REJECTED = "rejected"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class BookingRequest:
    name: str
    email: str
    phone: str
    bringing: str
    dates: list
    notes: str = None
    location: str = None

    @classmethod
    def from_payload(cls, payload):
        """Build from a JSON body. Accepts ``date`` for the single-date form."""
        if not isinstance(payload, dict):
            raise ValidationError("Invalid request body")

        def text(key):
            value = payload.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ValidationError(f"Invalid {key}")
            return value.strip() or None

        dates = payload.get("dates")
        if dates is None and payload.get("date"):
            dates = [payload["date"]]
        return cls(
            name=text("name"),
            email=text("email"),
            phone=text("phone"),
            bringing=text("bringing"),
            notes=text("notes"),
            location=text("location"),
            dates=dates,
        )


@dataclass
class BookingResult:
    signups: list = field(default_factory=list)
    notified: bool = False

    @property
    def created_count(self) -> int:
        return len(self.signups)

    @property
    def assignments(self):
        return [{"date": s.date.isoformat(), "location": s.location} for s in self.signups]

    def to_dict(self):
        return {
            "success": True,
            "createdCount": self.created_count,
            "assignments": self.assignments,
            "confirmationSent": self.notified,
        }


def validate_fields(request):
    missing = [name for name in REQUIRED_FIELDS if not getattr(request, name)]
    if missing:
        raise ValidationError("Missing required fields")
    if "@" not in request.email or request.email.startswith("@") or request.email.endswith("@"):
        raise ValidationError("Please enter a valid email address")
    for name, limit in FIELD_LIMITS.items():
        value = getattr(request, name)
        if value and len(value) > limit:
            raise ValidationError(f"{name.capitalize()} is too long")


class BatchBooking:
    """One submission moving through validation, resolution and commit."""

    def __init__(self, store, notifier, config, today):
        self.store = store
        self.notifier = notifier
        self.config = config
        self.today = today
        self.state = BookingState.VALIDATING
        self.rejections = []

    def submit(self, request):
        self.state = BookingState.VALIDATING
        try:
            validate_fields(request)
            days = dedupe_days(request.dates, self.config.max_dates)
        except ValidationError:
            self.state = BookingState.REJECTED
            raise

        self.state = BookingState.RESOLVING
        try:
            report = resolve_availability(
                self.store, days, self.config, self.today, location=request.location
            )
        except ValidationError:
            self.state = BookingState.REJECTED
            raise
        except PersistenceError:
            self.state = BookingState.FAILED
            raise

        if not report.all_available:
            self.state = BookingState.REJECTED
            self.rejections = [(r.day, r.reason) for r in report.rejections]
            raise AvailabilityConflict(self.rejections)

        self.state = BookingState.COMMITTING
        rows = [
            {
                "name": request.name,
                "email": request.email,
                "phone": request.phone,
                "bringing": request.bringing,
                "notes": request.notes,
                "date": resolution.day,
                "location": resolution.location,
            }
            for resolution in report.assignments
        ]
        try:
            signups = self.store.create_signups_atomically(rows)
        except PersistenceError:
            self.state = BookingState.FAILED
            logger.error(
                "Batch booking for %s failed at commit (%d dates); nothing saved",
                request.email, len(rows),
            )
            raise

        self.state = BookingState.COMMITTED
        logger.info(
            "Booked %d meal signups for %s: %s",
            len(signups),
            request.email,
            ", ".join(f"{s.date.isoformat()}@{s.location}" for s in signups),
        )

        result = BookingResult(signups=signups)
        result.notified = self.send_confirmation(signups)
        return result

    def send_confirmation(self, signups) -> bool:
        """Best-effort batch confirmation. Never raises."""
        try:
            settings = self.store.get_settings(
                self.config.default_kid_count_min, self.config.default_kid_count_max
            )
            kid_count = settings.kid_count_display
        except SignupError as e:
            logger.warning("Could not read kid count for confirmation, using defaults: %s", e)
            kid_count = _default_kid_count(self.config)

        subject, html = build_batch_confirmation(signups, kid_count, self.config)
        attachments = [("meal-signups.ics", "text/calendar", generate_signup_ical(signups, self.config))]
        try:
            sent = self.notifier.send(signups[0].email, subject, html, attachments=attachments)
        except NotificationError as e:
            logger.error("Confirmation email to %s failed: %s", signups[0].email, e)
            return False
        if not sent:
            logger.warning("Confirmation email to %s was not delivered", signups[0].email)
        return bool(sent)


def _default_kid_count(config):
    if config.default_kid_count_min == config.default_kid_count_max:
        return f"{config.default_kid_count_min}"
    return f"{config.default_kid_count_min}-{config.default_kid_count_max}"


def book_signups(store, notifier, config, today, payload):
    """Run one booking request end to end."""
    request = BookingRequest.from_payload(payload)
    return BatchBooking(store, notifier, config, today).submit(request)
