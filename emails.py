"""
Email delivery and the messages the scheduler sends.

``MailNotifier.send`` is the only place that talks to SMTP. It never raises:
a failed or slow send is logged and reported as ``False`` so the caller can
carry on, because the database, not the inbox, is the record of a booking.
"""
import logging
import threading
from datetime import datetime, timedelta

from flask_mail import Message
from icalendar import Alarm, Calendar, Event
from markupsafe import escape

logger = logging.getLogger(__name__)

BRAND_COLOR = "#e31837"

BASE_STYLE = f"""
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 640px; margin: 0 auto; padding: 20px; }}
    .header {{ background: {BRAND_COLOR}; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
    .content {{ background: #f9f9f9; padding: 20px; border-radius: 0 0 8px 8px; }}
    .highlight {{ background: white; padding: 15px; border-radius: 8px; margin: 15px 0; }}
    .btn {{ display: inline-block; background: {BRAND_COLOR}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 25px; margin-top: 15px; }}
    .section-title {{ font-size: 18px; color: {BRAND_COLOR}; border-bottom: 2px solid {BRAND_COLOR}; padding-bottom: 5px; }}
    .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 14px; }}
"""


# ==========================
# DELIVERY
# ==========================

class MailNotifier:
    """Send HTML email through Flask-Mail with a hard timeout."""

    def __init__(self, mail, app, timeout=10.0):
        self.mail = mail
        self.app = app
        self.timeout = timeout

    def send(self, to, subject, html, attachments=()) -> bool:
        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            logger.warning("Email '%s' skipped: no recipients", subject)
            return False

        msg = Message(subject, recipients=recipients, html=html)
        for filename, content_type, data in attachments:
            msg.attach(filename, content_type, data)

        outcome = {}

        def deliver():
            try:
                with self.app.app_context():
                    self.mail.send(msg)
                outcome["sent"] = True
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=deliver, name="mail-send", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            logger.error("Email '%s' to %s timed out after %.1fs", subject, recipients, self.timeout)
            return False
        if "error" in outcome:
            logger.error("Email '%s' to %s failed: %s", subject, recipients, outcome["error"])
            return False
        logger.info("Email '%s' sent to %s", subject, recipients)
        return True


# ==========================
# FORMATTING HELPERS
# ==========================

def format_long_date(day):
    """Monday, March 10, 2025"""
    return f"{day:%A, %B} {day.day}, {day.year}"


def format_short_date(day):
    """Monday, March 10"""
    return f"{day:%A, %B} {day.day}"


def _wrap(title, body, config, subtitle=None):
    subtitle_html = f'<p style="margin: 5px 0 0 0; font-size: 16px;">{escape(subtitle)}</p>' if subtitle else ""
    return f"""<!DOCTYPE html>
<html>
<head><style>{BASE_STYLE}</style></head>
<body>
  <div class="container">
    <div class="header">
      <h1 style="margin: 0;">{escape(title)}</h1>
      {subtitle_html}
    </div>
    <div class="content">
{body}
    </div>
    <div class="footer">
      <p>{escape(config.organization_name)}<br>
      {escape(config.organization_address)}<br>
      {escape(config.organization_phone)}</p>
    </div>
  </div>
</body>
</html>
"""


def _kid_count_box(kid_count_display, caption):
    return f"""
      <div style="background: #fff3cd; border: 2px solid {BRAND_COLOR}; padding: 15px; border-radius: 8px; margin: 15px 0; text-align: center;">
        <p style="margin: 0; font-size: 16px;"><strong>Please prepare meals for approximately</strong></p>
        <p style="margin: 8px 0; font-size: 32px; font-weight: bold; color: {BRAND_COLOR};">{escape(kid_count_display)} children</p>
        <p style="margin: 0; font-size: 14px; color: #666;">{escape(caption)}</p>
      </div>"""


def _delivery_notes(config):
    start, end = config.delivery_window
    return f"""
      <p>Please plan to deliver between {escape(start)} and {escape(end)}.</p>
      <ul style="margin: 10px 0; padding-left: 20px;">
        <li>If you wish to drop off early in the day, please include reheating instructions.</li>
      </ul>"""


# ==========================
# CALENDAR ATTACHMENT
# ==========================

def generate_signup_ical(signups, config):
    """iCal data with one event per delivery day."""
    cal = Calendar()
    cal.add('prodid', f'-//{config.organization_name}//Meal Sign-Up//EN')
    cal.add('version', '2.0')
    cal.add('method', 'PUBLISH')

    for signup in sorted(signups, key=lambda s: s.date):
        event = Event()
        event.add('uid', f"meal-signup-{signup.cancel_token}@{config.organization_name.replace(' ', '').lower()}")
        event.add('summary', f"Meal delivery: {config.organization_name} ({signup.location})")
        event.add('description', f"""You are bringing: {signup.bringing}

Location: {signup.location}
Address: {config.organization_address}

Need to cancel? {config.cancel_url(signup.cancel_token)}""")

        # Delivery window 12:00-17:00 local time
        start = datetime.combine(signup.date, datetime.min.time()) + timedelta(hours=12)
        event.add('dtstart', start)
        event.add('dtend', start + timedelta(hours=5))
        event.add('location', f"{signup.location}, {config.organization_address}")

        alarm = Alarm()
        alarm.add('action', 'DISPLAY')
        alarm.add('description', f"Reminder: meal delivery today at the {signup.location}")
        alarm.add('trigger', timedelta(hours=-3))
        event.add_component(alarm)

        cal.add_component(event)
    return cal.to_ical()


# ==========================
# MESSAGES
# ==========================

def build_batch_confirmation(signups, kid_count_display, config):
    """Subject and HTML body confirming every date in one committed batch."""
    ordered = sorted(signups, key=lambda s: s.date)
    first = ordered[0]
    count = len(ordered)
    plural = "s" if count > 1 else ""
    subject = (
        f"Meal Sign-Ups Confirmed - {count} date{plural} starting "
        f"{first.date:%B} {first.date.day}, {first.date.year}"
    )

    rows = "".join(
        f"""
          <tr>
            <td style="padding: 10px; border-bottom: 1px solid #eee;">{escape(format_long_date(s.date))}</td>
            <td style="padding: 10px; border-bottom: 1px solid #eee;">{escape(s.location)}</td>
            <td style="padding: 10px; border-bottom: 1px solid #eee;">
              <a href="{escape(config.cancel_url(s.cancel_token))}" style="color: {BRAND_COLOR}; font-size: 13px;">Cancel</a>
            </td>
          </tr>"""
        for s in ordered
    )

    body = f"""
      <p>Your meal sign-ups have been confirmed for {escape(config.organization_name)}.
      You've signed up for <strong>{count} date{plural}</strong>!</p>

      <div class="highlight">
        <p><strong>Bringing:</strong> {escape(first.bringing)}</p>
      </div>

      <div class="highlight" style="padding: 0;">
        <table style="width: 100%; border-collapse: collapse; font-size: 14px;">
          <thead>
            <tr style="background: #f3f4f6;">
              <th style="padding: 10px; text-align: left;">Date</th>
              <th style="padding: 10px; text-align: left;">Location</th>
              <th style="padding: 10px; text-align: left;"></th>
            </tr>
          </thead>
          <tbody>{rows}
          </tbody>
        </table>
      </div>
{_kid_count_box(kid_count_display, "per delivery")}
      <p>The kids and staff are looking forward to your meals!</p>
{_delivery_notes(config)}
      <p>Need to cancel a date? Use the cancel link next to that date above.</p>
      <p>A calendar file with your delivery dates is attached.</p>"""

    return subject, _wrap(f"Thank You, {first.name}!", body, config)


def build_reminder(signup, kid_count_display, config):
    """Reminder sent the day before a delivery."""
    subject = f"Reminder: Your Meal is Tomorrow - {format_long_date(signup.date)}"
    cancel_url = config.cancel_url(signup.cancel_token)
    body = f"""
      <p>Hi {escape(signup.name)},</p>
      <p>This is a friendly reminder that you're signed up to provide a meal tomorrow
      for {escape(config.organization_name)}.</p>

      <div class="highlight">
        <p><strong>Date:</strong> {escape(format_long_date(signup.date))}</p>
        <p><strong>Location:</strong> {escape(signup.location)}</p>
        <p><strong>Bringing:</strong> {escape(signup.bringing)}</p>
      </div>
{_kid_count_box(kid_count_display, f"at the {signup.location}")}
      <p><strong>Address:</strong> {escape(config.organization_address)}</p>
{_delivery_notes(config)}
      <p>If you can no longer make it, please cancel as soon as possible so we can find a replacement:</p>
      <a href="{escape(cancel_url)}" class="btn">Cancel My Sign-Up</a>
      <p style="margin-top: 20px; font-size: 12px; color: #666;">Or copy this link: {escape(cancel_url)}</p>"""
    return subject, _wrap("Reminder: Your Meal is Tomorrow!", body, config)


def _signup_table(signups):
    if not signups:
        return '<p style="color: #666; font-style: italic;">No deliveries scheduled.</p>'
    rows = "".join(
        f"""
          <tr>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.name)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.phone)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.email)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.bringing)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.location)}</td>
          </tr>"""
        for s in signups
    )
    return f"""<table style="width: 100%; border-collapse: collapse; font-size: 14px;">
        <thead>
          <tr style="background: #f0f0f0;">
            <th style="padding: 8px; text-align: left;">Name</th>
            <th style="padding: 8px; text-align: left;">Phone</th>
            <th style="padding: 8px; text-align: left;">Email</th>
            <th style="padding: 8px; text-align: left;">Bringing</th>
            <th style="padding: 8px; text-align: left;">Location</th>
          </tr>
        </thead>
        <tbody>{rows}</tbody>
      </table>"""


def _cancellation_table(signups):
    if not signups:
        return '<p style="color: #666; font-style: italic;">No recent cancellations.</p>'
    rows = "".join(
        f"""
          <tr>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.name)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(format_short_date(s.date))}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.location)}</td>
            <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(s.bringing)}</td>
          </tr>"""
        for s in signups
    )
    return f"""<table style="width: 100%; border-collapse: collapse; font-size: 14px;">
        <thead>
          <tr style="background: #f0f0f0;">
            <th style="padding: 8px; text-align: left;">Name</th>
            <th style="padding: 8px; text-align: left;">Date</th>
            <th style="padding: 8px; text-align: left;">Location</th>
            <th style="padding: 8px; text-align: left;">Was Bringing</th>
          </tr>
        </thead>
        <tbody>{rows}</tbody>
      </table>"""


def build_daily_summary(digest, config):
    """Staff summary: three days of deliveries, cancellations, open slots."""
    today_label = format_short_date(digest.today)
    subject = f"Daily Meal Summary - {today_label}"

    if digest.open_slots:
        open_html = '<ul style="padding-left: 20px;">' + "".join(
            f"<li><strong>{escape(format_short_date(slot.day))}</strong> - {escape(slot.location)}</li>"
            for slot in digest.open_slots
        ) + "</ul>"
    else:
        open_html = f'<p style="color: #28a745; font-style: italic;">All slots are filled for the next {config.forecast_days} days!</p>'

    sections = [
        ("Today's Deliveries", _signup_table(digest.today_signups)),
        ("Tomorrow's Deliveries", _signup_table(digest.tomorrow_signups)),
        (f"{format_short_date(digest.day_after)}'s Deliveries", _signup_table(digest.day_after_signups)),
        ("Cancellations (Past 24 Hours)", _cancellation_table(digest.recent_cancellations)),
        (f"Open Slots - Next {config.forecast_days} Days", open_html),
    ]
    body = "".join(
        f"""
      <div style="margin-bottom: 25px;">
        <h2 class="section-title">{escape(title)}</h2>
        {content}
      </div>"""
        for title, content in sections
    )
    body += f'\n      <p style="color: #666;">Kid count on file: {escape(digest.kid_count_display)} children.</p>'
    return subject, _wrap("Daily Meal Summary", body, config, subtitle=today_label)
