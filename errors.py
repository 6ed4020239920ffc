"""
Errors raised by the sign-up core.

Every error carries the message that is safe to show a donor or staff member.
Internal details stay on the chained exception and in the logs.
"""


class SignupError(Exception):
    status_code = 400
    message = "Something went wrong with this request."

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message}


class ValidationError(SignupError):
    """Missing or malformed input, or too many dates in one request."""
    status_code = 400


class AvailabilityConflict(SignupError):
    """One or more requested dates cannot be booked.

    ``rejections`` is a list of ``(day, reason)`` pairs in request order.
    """
    status_code = 409

    def __init__(self, rejections, message=None):
        self.rejections = list(rejections)
        if message is None:
            days = ", ".join(day.strftime("%b %d").replace(" 0", " ") for day, _ in self.rejections)
            message = f"The following dates are not available: {days}"
        super().__init__(message)

    @property
    def failing_dates(self):
        return [day for day, _ in self.rejections]

    def to_dict(self):
        payload = super().to_dict()
        payload["failingDates"] = [day.isoformat() for day in self.failing_dates]
        payload["rejections"] = [
            {"date": day.isoformat(), "reason": reason} for day, reason in self.rejections
        ]
        return payload


class PersistenceError(SignupError):
    status_code = 500
    message = "We couldn't save your sign-up. Please try again."


class NotificationError(SignupError):
    """Email could not be delivered. Never undoes a committed change."""
    status_code = 502
    message = "Email could not be sent."


class NotFoundError(SignupError):
    status_code = 404
    message = "Not found."


class AuthorizationError(SignupError):
    status_code = 401
    message = "Unauthorized"
