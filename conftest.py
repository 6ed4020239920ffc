"""Shared fixtures: an app on in-memory SQLite and a notifier that records."""
from datetime import date

import pytest

from app import create_app
from models import db
from store import SignupStore

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret-key",
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "BASE_URL": "https://meals.test",
    "CRON_SECRET": None,
    "DAILY_SUMMARY_EMAIL": "staff@example.org, kitchen@example.org",
    "SIGNUP_LOCATIONS": "Brick Building,Yellow Farmhouse",
    "SIGNUP_TIMEZONE": "America/New_York",
    "MAX_DATES_PER_SIGNUP": 30,
    "DEFAULT_KID_COUNT_MIN": 8,
    "DEFAULT_KID_COUNT_MAX": 12,
    "MAIL_DEFAULT_SENDER": "noreply@meals.test",
}

BRICK = "Brick Building"
FARMHOUSE = "Yellow Farmhouse"

# Fixed "today" for tests that call the core directly
TODAY = date(2025, 3, 1)


class RecordingNotifier:
    """Stands in for MailNotifier; keeps every message instead of sending it."""

    def __init__(self):
        self.sent = []
        self.succeed = True

    def send(self, to, subject, html, attachments=()):
        self.sent.append({
            "to": to,
            "subject": subject,
            "html": html,
            "attachments": list(attachments),
        })
        return self.succeed


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(dict(TEST_CONFIG))
    app.extensions["meal_notifier"] = notifier
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return SignupStore(db.session)


@pytest.fixture
def config(app):
    return app.extensions["meal_signup"]


def signup_row(day, location, **overrides):
    row = {
        "name": "Dana Donor",
        "email": "dana@example.org",
        "phone": "203-555-0100",
        "bringing": "Baked ziti and salad",
        "notes": None,
        "date": day,
        "location": location,
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_signup(store):
    def _make(day, location, **overrides):
        return store.create_signups_atomically([signup_row(day, location, **overrides)])[0]
    return _make


@pytest.fixture
def admin_client(client, store):
    store.create_admin("admin@example.org", "correct horse battery staple")
    response = client.post("/api/auth", json={
        "email": "admin@example.org",
        "password": "correct horse battery staple",
    })
    assert response.status_code == 200
    return client
