import secrets
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def utc_now():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_cancel_token():
    return secrets.token_urlsafe(24)


# ==========================
# MODELS
# ==========================

class MealSignup(db.Model):
    """
    One donor committed to bring a meal to one location on one day.
    Rows are never deleted; cancelling flips ``cancelled`` once.
    """
    __tablename__ = "meal_signups"
    __table_args__ = (
        # At most one active signup per (day, location). Cancelled rows are
        # excluded so a freed slot can be booked again.
        db.Index(
            "uq_meal_signup_active_slot",
            "date",
            "location",
            unique=True,
            sqlite_where=db.text("cancelled = 0"),
            postgresql_where=db.text("cancelled = false"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(40), nullable=False)
    bringing = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)
    location = db.Column(db.String(80), nullable=False)
    cancelled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cancelled_at = db.Column(db.DateTime, nullable=True, index=True)
    reminder_sent = db.Column(db.Boolean, nullable=False, default=False)
    cancel_token = db.Column(
        db.String(64), nullable=False, unique=True, index=True, default=generate_cancel_token
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self, include_contact=True):
        data = {
            "id": self.id,
            "name": self.name,
            "date": self.date.isoformat(),
            "location": self.location,
            "bringing": self.bringing,
            "cancelled": bool(self.cancelled),
        }
        if include_contact:
            data.update({
                "email": self.email,
                "phone": self.phone,
                "notes": self.notes,
                "reminderSent": bool(self.reminder_sent),
                "createdAt": self.created_at.isoformat() if self.created_at else None,
                "cancelledAt": self.cancelled_at.isoformat() if self.cancelled_at else None,
            })
        return data


class BlockedDate(db.Model):
    """A day staff closed for every location."""
    __tablename__ = "blocked_dates"

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True, index=True)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self):
        return {"id": self.id, "date": self.date.isoformat(), "reason": self.reason}


class SiteSettings(db.Model):
    """Singleton row (id ``main``) holding the displayed children-served range."""
    __tablename__ = "site_settings"

    id = db.Column(db.String(20), primary_key=True, default="main")
    kid_count_min = db.Column(db.Integer, nullable=False)
    kid_count_max = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def kid_count_display(self) -> str:
        if self.kid_count_min == self.kid_count_max:
            return f"{self.kid_count_min}"
        return f"{self.kid_count_min}-{self.kid_count_max}"

    def to_dict(self):
        return {
            "kidCountMin": self.kid_count_min,
            "kidCountMax": self.kid_count_max,
            "kidCountDisplay": self.kid_count_display,
        }


class ImpactStory(db.Model):
    __tablename__ = "impact_stories"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(500), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "imageUrl": self.image_url,
            "active": bool(self.active),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class AdminUser(db.Model):
    __tablename__ = "admin_users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    last_login = db.Column(db.DateTime, nullable=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)
