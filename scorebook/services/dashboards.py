"""
Dashboards
==========
Per-session view state for the student and teacher dashboards.

A dashboard owns its live subscriptions. It never runs two subscriptions for
the same source: switching student cancels the old grade feed before the new
one starts, and close() cancels everything. Pushed results replace the local
list; snapshot() derives the filtered rows, statistics and chart from it.
"""
import concurrent.futures
import logging
import threading
import time

from scorebook.config import config
from scorebook.errors import BackendError, DocumentStoreError, NotFoundError, ValidationError
from scorebook.services.documents import PROFILES_COLLECTION, grades_collection
from scorebook.services.grades import (
    filter_grades, grade_stats, normalize_filters, serialize_grade, sort_by_created,
    student_chart, subject_chart, validate_grade,
)
from scorebook.services.identity import SIGNED_OUT

logger = logging.getLogger(__name__)

MODE_ROSTER = "roster"
MODE_STUDENT = "student"
MODE_ALL = "all"


class GradeView:
    """Loaded records plus the selectors and chart toggle applied to them."""

    def __init__(self):
        self.grades = []
        self.filters = normalize_filters()
        self.show_chart = False
        self.loading = True
        self.processing = False
        self._lock = threading.RLock()

    def set_filters(self, term=None, subject=None, test=None):
        filters = normalize_filters(term, subject, test)
        with self._lock:
            self.filters = filters
        return filters

    def toggle_chart(self):
        with self._lock:
            self.show_chart = not self.show_chart
            return self.show_chart

    def filtered(self):
        with self._lock:
            grades, filters = list(self.grades), dict(self.filters)
        return filter_grades(grades, **filters)

    def _grade_payload(self, rows):
        return {
            "filters": dict(self.filters),
            "show_chart": self.show_chart,
            "grades": [serialize_grade(g) for g in rows],
            "stats": grade_stats(rows),
        }


class StudentDashboard(GradeView):
    """One student's records, kept live by a subscription."""

    def __init__(self, store, student_id):
        super().__init__()
        self.store = store
        self.student_id = student_id
        self.collection = grades_collection(student_id)
        self._subscription = None

    def open(self):
        """Start (or restart) the live feed ordered by created_at ascending."""
        with self._lock:
            if self._subscription:
                self._subscription.cancel()
            self.loading = True
            self._subscription = self.store.subscribe(
                self.collection, self._on_grades,
                order_by="created_at", on_error=self._on_error,
            )
        return self

    def close(self):
        with self._lock:
            if self._subscription:
                self._subscription.cancel()
                self._subscription = None

    def _on_grades(self, grades):
        with self._lock:
            self.grades = list(grades)
            self.loading = False

    def _on_error(self, error):
        logger.error("Grade feed for %s failed: %s", self.student_id, error)
        with self._lock:
            self.grades = []
            self.loading = False

    def add_grade(self, form):
        """Validate then write one record. Returns the new record id."""
        record = validate_grade(form)
        self.processing = True
        try:
            grade_id = self.store.add(self.collection, record)
        except DocumentStoreError as e:
            logger.error("Failed to add grade for %s: %s", self.student_id, e)
            raise BackendError("Failed to add the grade.")
        finally:
            self.processing = False
        if self._subscription:
            self._subscription.refresh()
        logger.info("Grade added: %s/%s", self.student_id, grade_id)
        return grade_id

    def delete_grade(self, grade_id, confirmed=False):
        """Remove exactly one record. Requires confirmation; no undo."""
        if not confirmed:
            raise ValidationError("Please confirm the deletion.")
        self.processing = True
        try:
            self.store.delete(self.collection, grade_id)
        except DocumentStoreError as e:
            logger.error("Failed to delete grade %s/%s: %s", self.student_id, grade_id, e)
            raise BackendError("Failed to delete the grade.")
        finally:
            self.processing = False
        if self._subscription:
            self._subscription.refresh()
        logger.info("Grade deleted: %s/%s", self.student_id, grade_id)

    def chart(self):
        return student_chart(self.filtered())

    def snapshot(self):
        rows = self.filtered()
        payload = {
            "student_id": self.student_id,
            "loading": self.loading,
            "processing": self.processing,
        }
        payload.update(self._grade_payload(rows))
        payload["chart"] = student_chart(rows)
        return payload


class TeacherDashboard(GradeView):
    """
    Roster of every profile, with drill-in and an all-students view.

    The roster's grade_count comes from a newest-first, limit-1 fetch, so it
    is 0 or 1 rather than the real number of records.
    """

    def __init__(self, store, workers=None):
        super().__init__()
        self.store = store
        self.workers = workers or config.fetch_workers
        self.students = []
        self.mode = MODE_ROSTER
        self.current_student_id = None
        self.search_term = ""
        self._profiles_sub = None
        self._grades_sub = None

    # ---- lifecycle ----

    def open(self):
        with self._lock:
            if self._profiles_sub:
                self._profiles_sub.cancel()
            self.loading = True
            self._profiles_sub = self.store.subscribe(
                PROFILES_COLLECTION, self._on_profiles, on_error=self._on_profiles_error,
            )
        return self

    def close(self):
        with self._lock:
            self._cancel_grades()
            if self._profiles_sub:
                self._profiles_sub.cancel()
                self._profiles_sub = None

    def _cancel_grades(self):
        if self._grades_sub:
            self._grades_sub.cancel()
            self._grades_sub = None

    # ---- roster ----

    def _on_profiles(self, profiles):
        summaries = self._summarize(profiles)
        with self._lock:
            self.students = summaries
            self.loading = False

    def _on_profiles_error(self, error):
        logger.error("Profile feed failed: %s", error)
        with self._lock:
            self.loading = False

    def _summarize(self, profiles):
        if not profiles:
            return []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(self._student_summary, profiles))

    def _student_summary(self, profile):
        uid = profile.get("id")
        grade_count = 0
        latest_score = None
        try:
            latest = self.store.query(
                grades_collection(uid), order_by="created_at", descending=True, limit=1,
            )
            grade_count = len(latest)
            if latest:
                latest_score = latest[0].get("score")
        except DocumentStoreError as e:
            logger.error("Failed to fetch initial grade info for %s: %s", uid, e)

        return {
            "uid": uid,
            "email": profile.get("email") or "N/A",
            "name": profile.get("name") or "No name",
            "grade_count": grade_count,
            "latest_score": latest_score,
        }

    def search_roster(self, term=None):
        """Case-insensitive substring match on name or email."""
        if term is not None:
            self.search_term = term
        with self._lock:
            students = list(self.students)
        if not self.search_term:
            return students
        needle = self.search_term.lower()
        return [
            s for s in students
            if needle in s["name"].lower() or needle in s["email"].lower()
        ]

    def find_student(self, uid):
        with self._lock:
            for s in self.students:
                if s["uid"] == uid:
                    return s
        return None

    # ---- drill-in ----

    def select_student(self, uid):
        """Switch to one student's live records, resetting filters and chart."""
        if self.find_student(uid) is None:
            raise NotFoundError("Student not found.")
        with self._lock:
            self._cancel_grades()
            self.mode = MODE_STUDENT
            self.current_student_id = uid
            self.grades = []
            self.loading = True
            self.filters = normalize_filters()
            self.show_chart = False
            self._grades_sub = self.store.subscribe(
                grades_collection(uid),
                lambda grades: self._on_student_grades(uid, grades),
                order_by="created_at",
                on_error=lambda error: self._on_student_error(uid, error),
            )

    def _on_student_grades(self, uid, grades):
        with self._lock:
            # a late push for a student we already left is dropped
            if self.mode != MODE_STUDENT or self.current_student_id != uid:
                return
            self.grades = list(grades)
            self.loading = False

    def _on_student_error(self, uid, error):
        logger.error("Grade feed for %s failed: %s", uid, error)
        with self._lock:
            if self.current_student_id == uid:
                self.grades = []
                self.loading = False

    def delete_grade(self, grade_id, confirmed=False):
        """Delete one record of the selected student. Not offered in the all-students view."""
        if self.mode != MODE_STUDENT or not self.current_student_id:
            raise ValidationError("Select a student before deleting a grade.")
        if not confirmed:
            raise ValidationError("Please confirm the deletion.")
        uid = self.current_student_id
        self.processing = True
        try:
            self.store.delete(grades_collection(uid), grade_id)
        except DocumentStoreError as e:
            logger.error("Failed to delete grade %s/%s: %s", uid, grade_id, e)
            raise BackendError("Failed to delete the grade.")
        finally:
            self.processing = False
        if self._grades_sub:
            self._grades_sub.refresh()
        logger.info("Teacher deleted grade: %s/%s", uid, grade_id)

    # ---- all students ----

    def view_all(self):
        """
        Fetch every roster student's records once, tag each with the owner's
        name and sort the union by created_at. Not live.
        """
        with self._lock:
            self._cancel_grades()
            self.mode = MODE_ALL
            self.current_student_id = None
            self.grades = []
            self.loading = True
            students = list(self.students)

        if not students:
            with self._lock:
                self.loading = False
            return []

        try:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
                per_student = list(executor.map(self._fetch_tagged, students))
        except DocumentStoreError as e:
            logger.error("Failed to fetch all students' grades: %s", e)
            with self._lock:
                self.grades = []
                self.loading = False
            raise BackendError("Failed to load grades for all students.")

        combined = sort_by_created([g for rows in per_student for g in rows])
        with self._lock:
            if self.mode == MODE_ALL:
                self.grades = combined
                self.loading = False
        return combined

    def _fetch_tagged(self, student):
        rows = self.store.query(grades_collection(student["uid"]), order_by="created_at")
        for row in rows:
            row["student_name"] = student["name"]
        return rows

    def back_to_roster(self):
        with self._lock:
            self._cancel_grades()
            self.mode = MODE_ROSTER
            self.current_student_id = None
            self.grades = []

    # ---- view ----

    def chart(self):
        return subject_chart(self.filtered(), term=self.filters["term"])

    def snapshot(self):
        payload = {
            "mode": self.mode,
            "loading": self.loading,
            "processing": self.processing,
        }
        if self.mode == MODE_ROSTER:
            students = self.search_roster()
            payload.update({
                "search": self.search_term,
                "students": students,
                "student_count": len(students),
            })
            return payload

        rows = self.filtered()
        payload.update(self._grade_payload(rows))
        payload.update({
            "student": self.find_student(self.current_student_id) if self.current_student_id else None,
            "chart": subject_chart(rows, term=self.filters["term"]),
            "can_delete": self.mode == MODE_STUDENT,
        })
        return payload


class DashboardRegistry:
    """
    Dashboards keyed by session sid.

    Created on the first protected request of a session, closed on logout,
    when the session is dropped as invalid, when the identity service reports
    the principal signed out, and when untouched for `idle_seconds`.
    """

    def __init__(self, store, identity=None, workers=None, idle_seconds=None, clock=time.monotonic):
        self.store = store
        self.workers = workers
        self.idle_seconds = config.dashboard_idle_seconds if idle_seconds is None else idle_seconds
        self._clock = clock
        self._dashboards = {}
        self._last_seen = {}
        self._lock = threading.Lock()
        self._auth_sub = None
        if identity is not None:
            self._auth_sub = identity.on_auth_state_change(self._on_auth_event)

    def student(self, session):
        return self._get(session, StudentDashboard,
                         lambda: StudentDashboard(self.store, session.principal_id))

    def teacher(self, session):
        return self._get(session, TeacherDashboard,
                         lambda: TeacherDashboard(self.store, workers=self.workers))

    def _get(self, session, kind, factory):
        self.sweep(keep=session.sid)
        stale = None
        with self._lock:
            self._last_seen[session.sid] = self._clock()
            entry = self._dashboards.get(session.sid)
            if entry and isinstance(entry[1], kind) and entry[0] == session.principal_id:
                return entry[1]
            if entry:
                stale = entry[1]
            dashboard = factory()
            self._dashboards[session.sid] = (session.principal_id, dashboard)
        if stale:
            stale.close()
        return dashboard.open()

    def sweep(self, keep=None):
        """Close dashboards idle longer than idle_seconds. Returns how many."""
        if not self.idle_seconds or self.idle_seconds <= 0:
            return 0
        cutoff = self._clock() - self.idle_seconds
        with self._lock:
            idle = [sid for sid, seen in self._last_seen.items()
                    if seen < cutoff and sid != keep]
        for sid in idle:
            logger.info("Closing idle dashboard %s", sid)
            self.close(sid)
        return len(idle)

    def close(self, sid):
        with self._lock:
            entry = self._dashboards.pop(sid, None)
            self._last_seen.pop(sid, None)
        if entry:
            entry[1].close()

    def close_principal(self, principal_id):
        with self._lock:
            sids = [sid for sid, (pid, _) in self._dashboards.items() if pid == principal_id]
        for sid in sids:
            self.close(sid)

    def close_all(self):
        with self._lock:
            sids = list(self._dashboards)
        for sid in sids:
            self.close(sid)
        if self._auth_sub:
            self._auth_sub.cancel()

    def __len__(self):
        return len(self._dashboards)

    def _on_auth_event(self, event, user):
        if event == SIGNED_OUT and user:
            self.close_principal(user.get("uid"))
