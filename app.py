from datetime import timedelta
from functools import wraps
import hmac

from flask import Blueprint, Flask, current_app, jsonify, make_response, request, session
from flask_mail import Mail
from dotenv import load_dotenv

from availability import availability_calendar
from booking import book_signups
from cancellation import CancelOutcome, cancel_signup, lookup_signup
from emails import MailNotifier
from errors import AuthorizationError, PersistenceError, SignupError, ValidationError
from models import db, utc_now
from reminders import run_daily_summary, send_tomorrow_reminders
from reporting import export_signups_csv, open_slot_forecast, upcoming_signups
from slots import service_today, to_day
from store import SignupStore

# Load environment variables from .env file BEFORE importing Config so it can read envs
load_dotenv()

from config import Config, MealSignupConfig  # noqa: E402

mail = Mail()
bp = Blueprint("meals", __name__, cli_group=None)

# Longest range the public availability calendar will return in one call
MAX_CALENDAR_DAYS = 366

STORY_TEXT_MESSAGE = "Title and content must be text"


# ==========================
# REQUEST HELPERS
# ==========================

def get_config() -> MealSignupConfig:
    return current_app.extensions["meal_signup"]


def get_notifier():
    return current_app.extensions["meal_notifier"]


def get_store():
    return SignupStore(db.session)


def get_today():
    return service_today(get_config().timezone)


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body")
    return data


def text_field(data, key, message):
    """Stripped string value of ``key``, or None when absent or blank."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(message)
    return value.strip() or None


def whole_number(data, key, message):
    value = data.get(key)
    # bool is an int subclass; reject true/false explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(message)
    return value


def parse_day_arg(name, required=False):
    raw = request.args.get(name)
    if not raw:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return to_day(raw)
    except ValueError:
        raise ValidationError(f"Invalid {name} date") from None


# ==========================
# AUTH HELPERS
# ==========================

def get_current_admin():
    admin_id = session.get("admin_id")
    if not admin_id:
        return None
    return get_store().find_admin(admin_id=admin_id)


def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not get_current_admin():
            raise AuthorizationError()
        return view_func(*args, **kwargs)
    return wrapper


def cron_secret_required(view_func):
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        secret = get_config().cron_secret
        if secret:
            provided = request.headers.get("Authorization", "")
            if not hmac.compare_digest(provided.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
                current_app.logger.warning("Rejected cron call to %s: bad or missing token", request.path)
                raise AuthorizationError()
        return view_func(*args, **kwargs)
    return wrapper


# ==========================
# ERROR HANDLERS
# ==========================

@bp.app_errorhandler(SignupError)
def handle_signup_error(error):
    if isinstance(error, PersistenceError):
        current_app.logger.error("Persistence failure on %s %s", request.method, request.path)
    return jsonify(error.to_dict()), error.status_code


# ==========================
# PUBLIC ROUTES
# ==========================

@bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@bp.route("/api/availability")
def api_availability():
    """Per-day taken locations for the sign-up calendar (no donor details)."""
    today = get_today()
    start = parse_day_arg("start") or today
    end = parse_day_arg("end") or start + timedelta(days=59)
    if end < start:
        raise ValidationError("end must not be before start")
    if (end - start).days >= MAX_CALENDAR_DAYS:
        raise ValidationError(f"Range may cover at most {MAX_CALENDAR_DAYS} days")

    config = get_config()
    return jsonify({
        "locations": list(config.locations),
        "days": availability_calendar(get_store(), start, end, config, today),
    })


@bp.route("/api/signups", methods=["POST"])
@bp.route("/api/signups/batch", methods=["POST"])
def api_create_signups():
    """Book one or more dates in a single all-or-nothing transaction."""
    result = book_signups(get_store(), get_notifier(), get_config(), get_today(), get_json_body())
    if not result.notified:
        current_app.logger.warning(
            "Booking committed but confirmation email not sent (%d signups)", result.created_count
        )
    return jsonify(result.to_dict()), 201


@bp.route("/api/signups/cancel", methods=["GET"])
@bp.route("/api/signups/cancel/<token>", methods=["GET"])
@bp.route("/cancel/<token>", methods=["GET"])
def api_lookup_cancel(token=None):
    signup = lookup_signup(get_store(), token or request.args.get("token"))
    return jsonify(signup.to_dict(include_contact=False))


@bp.route("/api/signups/cancel", methods=["POST"])
@bp.route("/api/signups/cancel/<token>", methods=["POST"])
@bp.route("/cancel/<token>", methods=["POST"])
def api_cancel(token=None):
    outcome, signup = cancel_signup(get_store(), token or request.args.get("token"))
    payload = {
        "success": True,
        "status": outcome.value,
        "signup": signup.to_dict(include_contact=False),
    }
    if outcome is CancelOutcome.ALREADY_CANCELLED:
        payload["message"] = "This sign-up was already cancelled."
    return jsonify(payload)


@bp.route("/api/settings", methods=["GET"])
def api_get_settings():
    config = get_config()
    settings = get_store().get_settings(config.default_kid_count_min, config.default_kid_count_max)
    return jsonify(settings.to_dict())


@bp.route("/api/settings", methods=["PUT"])
@admin_required
def api_put_settings():
    data = get_json_body()
    message = "kidCountMin and kidCountMax must be whole numbers"
    kid_min = whole_number(data, "kidCountMin", message)
    kid_max = whole_number(data, "kidCountMax", message)
    if kid_min < 0 or kid_max < kid_min:
        raise ValidationError("Kid count range is invalid")

    settings = get_store().put_settings(kid_min, kid_max)
    current_app.logger.info("Kid count updated to %s", settings.kid_count_display)
    return jsonify(settings.to_dict())


@bp.route("/api/stories", methods=["GET"])
def api_list_stories():
    return jsonify([story.to_dict() for story in get_store().get_stories(active_only=True)])


# ==========================
# ADMIN AUTH
# ==========================

@bp.route("/api/auth", methods=["POST"])
def api_login():
    data = get_json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password required")

    store = get_store()
    admin = store.find_admin(email=email)
    if not admin or not admin.check_password(password):
        current_app.logger.warning("Failed admin login for %s", email)
        raise AuthorizationError("Invalid credentials")

    session.permanent = True
    session["admin_id"] = admin.id
    store.record_admin_login(admin, utc_now())
    current_app.logger.info("Admin %s logged in", email)
    return jsonify({"success": True})


@bp.route("/api/auth", methods=["DELETE"])
def api_logout():
    session.pop("admin_id", None)
    return jsonify({"success": True})


# ==========================
# ADMIN ROUTES
# ==========================

@bp.route("/api/admin/signups")
@admin_required
def api_admin_signups():
    """Upcoming active signups grouped by day."""
    groups = upcoming_signups(get_store(), get_today())
    return jsonify([
        {"date": day.isoformat(), "signups": [s.to_dict() for s in signups]}
        for day, signups in groups
    ])


@bp.route("/api/admin/export")
@admin_required
def api_admin_export():
    start = parse_day_arg("start")
    end = parse_day_arg("end")
    csv_data = export_signups_csv(get_store(), get_config(), start=start, end=end)

    response = make_response(csv_data)
    response.headers['Content-Type'] = 'text/csv'
    response.headers['Content-Disposition'] = f'attachment; filename="meal-signups-{get_today().isoformat()}.csv"'
    return response


@bp.route("/api/admin/open-slots")
@admin_required
def api_admin_open_slots():
    config = get_config()
    days = request.args.get("days", config.forecast_days, type=int)
    if days < 1 or days > 60:
        raise ValidationError("days must be between 1 and 60")
    slots = open_slot_forecast(get_store(), get_today(), config, days=days)
    return jsonify([{"date": slot.day.isoformat(), "location": slot.location} for slot in slots])


@bp.route("/api/admin/blocked-dates", methods=["GET"])
@admin_required
def api_admin_blocked_dates():
    start = parse_day_arg("start")
    end = parse_day_arg("end")
    return jsonify([b.to_dict() for b in get_store().find_blocked_dates(start, end)])


@bp.route("/api/admin/blocked-dates", methods=["POST"])
@admin_required
def api_admin_block_date():
    data = get_json_body()
    try:
        day = to_day(data.get("date") or "")
    except (TypeError, ValueError):
        raise ValidationError("A valid date is required") from None
    blocked = get_store().add_blocked_date(day, reason=(data.get("reason") or "").strip() or None)
    current_app.logger.info("Blocked %s", day.isoformat())
    return jsonify(blocked.to_dict()), 201


@bp.route("/api/admin/blocked-dates/<date_str>", methods=["DELETE"])
@admin_required
def api_admin_unblock_date(date_str):
    try:
        day = to_day(date_str)
    except ValueError:
        raise ValidationError("Invalid date") from None
    get_store().remove_blocked_date(day)
    current_app.logger.info("Unblocked %s", day.isoformat())
    return jsonify({"success": True})


@bp.route("/api/stories", methods=["POST"])
@admin_required
def api_create_story():
    data = get_json_body()
    title = text_field(data, "title", STORY_TEXT_MESSAGE)
    content = text_field(data, "content", STORY_TEXT_MESSAGE)
    if not title or not content:
        raise ValidationError("Title and content required")
    image_url = text_field(data, "imageUrl", STORY_TEXT_MESSAGE)
    story = get_store().create_story(title, content, image_url=image_url)
    return jsonify(story.to_dict()), 201


@bp.route("/api/stories", methods=["PUT"])
@admin_required
def api_update_story():
    data = get_json_body()
    try:
        story_id = int(data.get("id"))
    except (TypeError, ValueError):
        raise ValidationError("Story ID required") from None

    changes = {}
    title = text_field(data, "title", STORY_TEXT_MESSAGE)
    if title:
        changes["title"] = title
    content = text_field(data, "content", STORY_TEXT_MESSAGE)
    if content:
        changes["content"] = content
    if "imageUrl" in data:
        changes["image_url"] = text_field(data, "imageUrl", STORY_TEXT_MESSAGE)
    if "active" in data:
        changes["active"] = bool(data["active"])

    story = get_store().update_story(story_id, **changes)
    return jsonify(story.to_dict())


@bp.route("/api/stories", methods=["DELETE"])
@admin_required
def api_delete_story():
    story_id = request.args.get("id", type=int)
    if not story_id:
        raise ValidationError("Story ID required")
    get_store().delete_story(story_id)
    return jsonify({"success": True})


# ==========================
# CRON ROUTES
# ==========================

@bp.route("/api/reminders", methods=["POST"])
@cron_secret_required
def api_send_reminders():
    results = send_tomorrow_reminders(get_store(), get_notifier(), get_config(), get_today())
    return jsonify({"success": True, "remindersProcessed": len(results), "results": results})


@bp.route("/api/daily-summary", methods=["GET", "POST"])
@cron_secret_required
def api_daily_summary():
    summary = run_daily_summary(get_store(), get_notifier(), get_config(), get_today(), utc_now())
    return jsonify(summary)


# ==========================
# CLI COMMANDS
# ==========================

@bp.cli.command("init-db")
def init_db_command():
    """
    Create tables and, if ADMIN_EMAIL/ADMIN_PASSWORD are set and no admin
    exists yet, the first admin account.
    Run with: flask --app app.py init-db
    """
    db.create_all()
    store = get_store()

    email = current_app.config.get("ADMIN_EMAIL")
    password = current_app.config.get("ADMIN_PASSWORD")
    if store.count_admins():
        print("Admin already exists.")
    elif email and password:
        store.create_admin(email.strip().lower(), password)
        print(f"Created admin: {email}")
    else:
        print("No admin created. Set ADMIN_EMAIL and ADMIN_PASSWORD to bootstrap one.")

    print("Database initialized.")


@bp.cli.command("send-reminders")
def send_reminders_command():
    """Send tomorrow's reminder emails once."""
    results = send_tomorrow_reminders(get_store(), get_notifier(), get_config(), get_today())
    sent = sum(1 for r in results if r["status"] == "sent")
    print(f"Sent {sent} of {len(results)} reminder emails.")


@bp.cli.command("daily-summary")
def daily_summary_command():
    """Send reminders and the staff daily summary once."""
    summary = run_daily_summary(get_store(), get_notifier(), get_config(), get_today(), utc_now())
    print(f"Daily summary: {summary}")


# ==========================
# APP FACTORY
# ==========================

def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # The active-slot index is partial; MySQL would build it as a plain UNIQUE index
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("mysql"):
        raise RuntimeError("MySQL is not supported; use SQLite or PostgreSQL")

    db.init_app(app)
    mail.init_app(app)

    config = MealSignupConfig.from_mapping(app.config)
    app.extensions["meal_signup"] = config
    app.extensions["meal_notifier"] = MailNotifier(mail, app, timeout=config.notification_timeout)

    app.register_blueprint(bp)

    if not config.cron_secret:
        app.logger.warning("CRON_SECRET is not set; reminder and summary endpoints are open")

    @app.after_request
    def after_request(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    return app


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        db.create_all()
    app.run(debug=True)
