"""
Persistence for signups, blocked dates, settings, stories and admins.

The core only talks to ``SignupStore``; it never touches ``db.session``
directly. Every write either commits as a whole or is rolled back and
re-raised as ``PersistenceError``.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from errors import NotFoundError, PersistenceError
from models import AdminUser, BlockedDate, ImpactStory, MealSignup, SiteSettings, db

logger = logging.getLogger(__name__)

SETTINGS_ID = "main"


class SignupStore:

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Database commit failed during %s", action)
            raise PersistenceError() from exc

    def _query(self, action, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Database read failed during %s", action)
            raise PersistenceError() from exc

    # ------------------------------------------------------------------
    # blocked dates
    # ------------------------------------------------------------------

    def find_blocked_dates(self, start=None, end=None):
        """Blocked days between ``start`` and ``end`` inclusive."""
        def run():
            query = self.session.query(BlockedDate)
            if start is not None:
                query = query.filter(BlockedDate.date >= start)
            if end is not None:
                query = query.filter(BlockedDate.date <= end)
            return query.order_by(BlockedDate.date.asc()).all()
        return self._query("find_blocked_dates", run)

    def add_blocked_date(self, day, reason=None):
        existing = self._query(
            "add_blocked_date",
            lambda: self.session.query(BlockedDate).filter_by(date=day).first(),
        )
        if existing:
            return existing
        blocked = BlockedDate(date=day, reason=reason)
        self.session.add(blocked)
        self._commit("add_blocked_date")
        return blocked

    def remove_blocked_date(self, day):
        blocked = self._query(
            "remove_blocked_date",
            lambda: self.session.query(BlockedDate).filter_by(date=day).first(),
        )
        if not blocked:
            raise NotFoundError("Blocked date not found.")
        self.session.delete(blocked)
        self._commit("remove_blocked_date")

    # ------------------------------------------------------------------
    # signups
    # ------------------------------------------------------------------

    def _signup_query(self, start=None, end=None, cancelled=None, reminder_sent=None,
                      cancelled_since=None):
        query = self.session.query(MealSignup)
        if start is not None:
            query = query.filter(MealSignup.date >= start)
        if end is not None:
            query = query.filter(MealSignup.date <= end)
        if cancelled is not None:
            query = query.filter(MealSignup.cancelled == cancelled)
        if reminder_sent is not None:
            query = query.filter(MealSignup.reminder_sent == reminder_sent)
        if cancelled_since is not None:
            query = query.filter(MealSignup.cancelled_at >= cancelled_since)
        return query

    def find_signups(self, start=None, end=None, cancelled=None, reminder_sent=None,
                     cancelled_since=None, order_by="date"):
        """Signups matching every filter given. Dates are inclusive."""
        orderings = {
            "date": (MealSignup.date.asc(), MealSignup.location.asc(), MealSignup.id.asc()),
            "location": (MealSignup.date.asc(), MealSignup.location.asc(), MealSignup.name.asc()),
            "cancelled_at": (MealSignup.cancelled_at.desc(),),
        }

        def run():
            query = self._signup_query(start, end, cancelled, reminder_sent, cancelled_since)
            return query.order_by(*orderings[order_by]).all()
        return self._query("find_signups", run)

    def count_signups(self, start=None, end=None, cancelled=None):
        return self._query(
            "count_signups",
            lambda: self._signup_query(start, end, cancelled).count(),
        )

    def get_signup_by_token(self, token):
        return self._query(
            "get_signup_by_token",
            lambda: self.session.query(MealSignup).filter_by(cancel_token=token).first(),
        )

    def create_signup(self, data):
        return self.create_signups_atomically([data])[0]

    def create_signups_atomically(self, rows):
        """Insert every row in one transaction or none of them."""
        signups = [MealSignup(**row) for row in rows]
        try:
            self.session.add_all(signups)
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Batch insert of %d signups failed", len(signups))
            raise PersistenceError() from exc
        self._commit("create_signups_atomically")
        return signups

    def update_signup(self, signup_id, **changes):
        signup = self._query("update_signup", lambda: self.session.get(MealSignup, signup_id))
        if not signup:
            raise NotFoundError("Sign-up not found")
        for key, value in changes.items():
            setattr(signup, key, value)
        self._commit("update_signup")
        return signup

    def cancel_by_token(self, token, cancelled_at) -> int:
        """Flip one active signup to cancelled.

        Returns the number of rows changed (0 when the token is unknown or the
        signup was already cancelled).
        """
        try:
            changed = (
                self.session.query(MealSignup)
                .filter(MealSignup.cancel_token == token, MealSignup.cancelled.is_(False))
                .update(
                    {MealSignup.cancelled: True, MealSignup.cancelled_at: cancelled_at},
                    synchronize_session=False,
                )
            )
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Cancel update failed")
            raise PersistenceError() from exc
        self._commit("cancel_by_token")
        return changed

    # ------------------------------------------------------------------
    # settings
    # ------------------------------------------------------------------

    def get_settings(self, default_min, default_max):
        """The settings row, created with the given defaults on first read."""
        settings = self._query("get_settings", lambda: self.session.get(SiteSettings, SETTINGS_ID))
        if settings is None:
            settings = SiteSettings(id=SETTINGS_ID, kid_count_min=default_min, kid_count_max=default_max)
            self.session.add(settings)
            self._commit("get_settings")
        return settings

    def put_settings(self, kid_count_min, kid_count_max):
        settings = self._query("put_settings", lambda: self.session.get(SiteSettings, SETTINGS_ID))
        if settings is None:
            settings = SiteSettings(id=SETTINGS_ID)
            self.session.add(settings)
        settings.kid_count_min = kid_count_min
        settings.kid_count_max = kid_count_max
        self._commit("put_settings")
        return settings

    # ------------------------------------------------------------------
    # stories
    # ------------------------------------------------------------------

    def get_stories(self, active_only=True):
        def run():
            query = self.session.query(ImpactStory)
            if active_only:
                query = query.filter(ImpactStory.active.is_(True))
            return query.order_by(ImpactStory.created_at.desc(), ImpactStory.id.desc()).all()
        return self._query("get_stories", run)

    def create_story(self, title, content, image_url=None):
        story = ImpactStory(title=title, content=content, image_url=image_url or None)
        self.session.add(story)
        self._commit("create_story")
        return story

    def update_story(self, story_id, **changes):
        story = self._query("update_story", lambda: self.session.get(ImpactStory, story_id))
        if not story:
            raise NotFoundError("Story not found")
        for key, value in changes.items():
            setattr(story, key, value)
        self._commit("update_story")
        return story

    def delete_story(self, story_id):
        story = self._query("delete_story", lambda: self.session.get(ImpactStory, story_id))
        if not story:
            raise NotFoundError("Story not found")
        self.session.delete(story)
        self._commit("delete_story")

    # ------------------------------------------------------------------
    # admins
    # ------------------------------------------------------------------

    def find_admin(self, email=None, admin_id=None):
        def run():
            if admin_id is not None:
                return self.session.get(AdminUser, admin_id)
            return self.session.query(AdminUser).filter_by(email=email).first()
        return self._query("find_admin", run)

    def count_admins(self):
        return self._query("count_admins", lambda: self.session.query(AdminUser).count())

    def create_admin(self, email, password):
        admin = AdminUser(email=email)
        admin.set_password(password)
        self.session.add(admin)
        self._commit("create_admin")
        return admin

    def record_admin_login(self, admin, when):
        admin.last_login = when
        self._commit("record_admin_login")
