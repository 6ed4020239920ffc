import os
from dataclasses import dataclass, field


def _env_bool(name, default):
    return os.environ.get(name, default).lower() == "true"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-this-in-production")
    # Database configuration
    # Use DATABASE_URL if provided (Heroku/Render), otherwise a local SQLite file
    if os.getenv('DATABASE_URL'):
        raw_url = os.environ.get("DATABASE_URL")
        # Heroku may provide postgres://; SQLAlchemy expects postgresql+psycopg2://
        if raw_url.startswith("postgres://"):
            raw_url = raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
        elif raw_url.startswith("postgresql://"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        SQLALCHEMY_DATABASE_URI = raw_url
    else:
        basedir = os.path.abspath(os.path.dirname(__file__))
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{os.path.join(basedir, 'instance', 'meal_signups.sqlite3')}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Email configuration
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", 587))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", "True")
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", "False")
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "noreply@kidsincrisis.org")

    # Public URL used to build cancel links in emails
    BASE_URL = os.environ.get("BASE_URL", "http://localhost:5000")

    # Shared secret for cron-triggered endpoints. When unset the endpoints are open.
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Comma-separated list of staff addresses that receive the daily summary
    DAILY_SUMMARY_EMAIL = os.environ.get("DAILY_SUMMARY_EMAIL", "")

    # Scheduling rules
    SIGNUP_TIMEZONE = os.environ.get("SIGNUP_TIMEZONE", "America/New_York")
    SIGNUP_LOCATIONS = os.environ.get("SIGNUP_LOCATIONS", "Brick Building,Yellow Farmhouse")
    MAX_DATES_PER_SIGNUP = int(os.environ.get("MAX_DATES_PER_SIGNUP", "30"))
    FORECAST_DAYS = int(os.environ.get("FORECAST_DAYS", "7"))
    DEFAULT_KID_COUNT_MIN = int(os.environ.get("DEFAULT_KID_COUNT_MIN", "8"))
    DEFAULT_KID_COUNT_MAX = int(os.environ.get("DEFAULT_KID_COUNT_MAX", "12"))

    # Seconds to wait on the SMTP server before treating a send as failed
    NOTIFICATION_TIMEOUT = float(os.environ.get("NOTIFICATION_TIMEOUT", "10"))

    # Bootstrap admin for `flask init-db`. No built-in fallback credentials.
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD")

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", "False")


@dataclass(frozen=True)
class MealSignupConfig:
    """
    Scheduling and notification settings resolved once when the app starts.

    Handlers receive this object explicitly; nothing in the booking path reads
    the process environment.
    """
    locations: tuple = ("Brick Building", "Yellow Farmhouse")
    timezone: str = "America/New_York"
    max_dates: int = 30
    forecast_days: int = 7
    default_kid_count_min: int = 8
    default_kid_count_max: int = 12
    base_url: str = "http://localhost:5000"
    summary_recipients: tuple = field(default_factory=tuple)
    cron_secret: str = None
    notification_timeout: float = 10.0
    organization_name: str = "Kids In Crisis"
    organization_address: str = "1 Salem Street, Cos Cob, CT 06807"
    organization_phone: str = "(203) 661-1911"
    delivery_window: tuple = ("12:00 PM", "5:00 PM")

    @classmethod
    def from_mapping(cls, mapping):
        """Build from a Flask config (or any mapping using the same keys)."""
        locations = _split_csv(mapping.get("SIGNUP_LOCATIONS")) or cls.locations
        return cls(
            locations=locations,
            timezone=mapping.get("SIGNUP_TIMEZONE") or cls.timezone,
            max_dates=int(mapping.get("MAX_DATES_PER_SIGNUP") or cls.max_dates),
            forecast_days=int(mapping.get("FORECAST_DAYS") or cls.forecast_days),
            default_kid_count_min=int(mapping.get("DEFAULT_KID_COUNT_MIN", cls.default_kid_count_min)),
            default_kid_count_max=int(mapping.get("DEFAULT_KID_COUNT_MAX", cls.default_kid_count_max)),
            base_url=(mapping.get("BASE_URL") or cls.base_url).strip().rstrip("/"),
            summary_recipients=_split_csv(mapping.get("DAILY_SUMMARY_EMAIL")),
            cron_secret=mapping.get("CRON_SECRET") or None,
            notification_timeout=float(mapping.get("NOTIFICATION_TIMEOUT") or cls.notification_timeout),
        )

    def cancel_url(self, token):
        return f"{self.base_url}/cancel/{token}"


def _split_csv(raw):
    if not raw:
        return ()
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    return tuple(part.strip() for part in str(raw).split(",") if part.strip())
