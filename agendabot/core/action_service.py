"""
Agenda Bot — UI-Agnostic Action Service.

Service layer behind the chat commands: add, extend, remove and list
activities, and manage the subject list. Every operation is scoped to one
tenant (group chat) and returns a structured response object; nothing here
sends messages or knows about Telegram.

Rejected input never mutates state.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from agendabot.core import windows
from agendabot.core.parser import build_deadline, parse_date, parse_time
from agendabot.data.models import Activity

if TYPE_CHECKING:
    from agendabot.core.bootstrap import TenantBootstrapper
    from agendabot.core.clock import Clock
    from agendabot.data.db import ActivityDB, SubjectDB

logger = logging.getLogger(__name__)

OTHER_SUBJECT = "Other"


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    QUERY_RESULT = "query_result"


class ErrorKind(Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    STORAGE = "storage"


@dataclass
class ActivityInfo:
    id: str
    name: str
    display_name: str
    subject: str
    deadline: datetime
    deadline_text: str     # "November 19, 2025 at 10:00 PM"
    day_name: str          # "Wednesday"
    time_label: str | None
    countdown: str


@dataclass
class SubjectGroup:
    subject: str
    activities: list[ActivityInfo] = field(default_factory=list)


# --- Response dataclasses ---

@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class SuccessResponse(ServiceResponse):
    activity: ActivityInfo | None = None
    previous_deadline_text: str = ""
    subject: str = ""


@dataclass
class ErrorResponse(ServiceResponse):
    error: ErrorKind = ErrorKind.INVALID_INPUT
    field_name: str = ""                             # "date" | "time" | "subject" | "activity"
    choices: list[str] = field(default_factory=list)  # e.g. known subjects


@dataclass
class ActivityListResponse(ServiceResponse):
    groups: list[SubjectGroup] = field(default_factory=list)


@dataclass
class SubjectListResponse(ServiceResponse):
    subjects: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_deadline(activity: Activity) -> str:
    """Long-form deadline, e.g. "November 19, 2025 at 10:00 PM"."""
    d = activity.deadline
    text = f"{d.strftime('%B')} {d.day}, {d.year}"
    if activity.has_time:
        text += f" at {activity.time_label}"
    return text


def to_info(activity: Activity, now: datetime) -> ActivityInfo:
    return ActivityInfo(
        id=activity.id,
        name=activity.name,
        display_name=activity.display_name,
        subject=activity.subject,
        deadline=activity.deadline,
        deadline_text=format_deadline(activity),
        day_name=activity.deadline.strftime("%A"),
        time_label=activity.time_label,
        countdown=windows.format_countdown(activity, now),
    )


def _error(error: ErrorKind, message: str, field_name: str = "", choices=None) -> ErrorResponse:
    return ErrorResponse(
        kind=ResponseKind.ERROR,
        message=message,
        error=error,
        field_name=field_name,
        choices=list(choices or []),
    )


def _storage_error() -> ErrorResponse:
    return _error(ErrorKind.STORAGE, "Could not save changes. Please try again.")


def _read_error() -> ErrorResponse:
    return _error(ErrorKind.STORAGE, "Could not read activities. Please try again.")


# ---------------------------------------------------------------------------
# ActionService
# ---------------------------------------------------------------------------


class ActionService:
    """Command operations on one tenant's activities and the subject list."""

    def __init__(
        self,
        store: ActivityDB,
        subjects: SubjectDB,
        clock: Clock,
        bootstrapper: TenantBootstrapper | None = None,
    ) -> None:
        self._store = store
        self._subjects = subjects
        self._clock = clock
        self._bootstrapper = bootstrapper

    def _load(self, chat_id: int) -> list[Activity] | None:
        """Load a tenant's activities, or None if the store could not be read.

        Writes are full overwrites, so callers must not save after a failed
        read.
        """
        if self._bootstrapper is not None:
            self._bootstrapper.ensure_tenant(chat_id)
        try:
            return self._store.load_activities(chat_id, strict=True)
        except sqlite3.Error:
            return None

    @staticmethod
    def _find_by_name(activities: list[Activity], name: str) -> int:
        wanted = name.lower()
        for i, activity in enumerate(activities):
            if activity.name.lower() == wanted:
                return i
        return -1

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    def add_activity(
        self,
        chat_id: int,
        actor_id: int | str,
        name: str,
        subject: str,
        date_text: str,
        time_text: str | None = None,
    ) -> ServiceResponse:
        """Create an activity. Name + subject must be unique (any case)."""
        at = None
        if time_text:
            at = parse_time(time_text)
            if at is None:
                return _error(ErrorKind.INVALID_INPUT, f"Invalid time: {time_text}", "time")

        canonical_subject = self._subjects.find_subject(subject)
        if canonical_subject is None:
            return _error(
                ErrorKind.NOT_FOUND, f'Subject "{subject}" not found.', "subject",
                choices=self._subjects.list_subjects(),
            )

        day = parse_date(date_text)
        if day is None:
            return _error(ErrorKind.INVALID_INPUT, f"Invalid date: {date_text}", "date")

        activities = self._load(chat_id)
        if activities is None:
            return _read_error()
        duplicate = any(
            a.name.lower() == name.lower() and a.subject.lower() == canonical_subject.lower()
            for a in activities
        )
        if duplicate:
            return _error(
                ErrorKind.DUPLICATE,
                f'Activity "{name.replace("_", " ")}" already exists for {canonical_subject}.',
                "activity",
            )

        now = self._clock.now()
        activity = Activity(
            id=uuid.uuid4().hex,
            name=name,
            subject=canonical_subject,
            deadline=build_deadline(day, at, self._clock.tz),
            has_time=at is not None,
            created_at=now,
            created_by=str(actor_id),
        )
        activities.append(activity)
        if not self._store.save_activities(chat_id, activities):
            return _storage_error()

        logger.info(
            "Tenant %d: activity '%s' (%s) added by %s, due %s",
            chat_id, name, canonical_subject, actor_id, activity.deadline.isoformat(),
        )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message="Activity added.",
            activity=to_info(activity, now),
            subject=canonical_subject,
        )

    def extend_activity(
        self,
        chat_id: int,
        actor_id: int | str,
        name: str,
        date_text: str,
        time_text: str | None = None,
    ) -> ServiceResponse:
        """Move an activity's deadline.

        Reminder flags are left as they are: a reminder that already fired
        for the old deadline does not fire again for the new one.
        """
        at = None
        if time_text:
            at = parse_time(time_text)
            if at is None:
                return _error(ErrorKind.INVALID_INPUT, f"Invalid time: {time_text}", "time")

        activities = self._load(chat_id)
        if activities is None:
            return _read_error()
        index = self._find_by_name(activities, name)
        if index == -1:
            return _error(
                ErrorKind.NOT_FOUND,
                f'Activity "{name.replace("_", " ")}" not found.', "activity",
            )

        day = parse_date(date_text)
        if day is None:
            return _error(ErrorKind.INVALID_INPUT, f"Invalid date: {date_text}", "date")

        now = self._clock.now()
        activity = activities[index]
        previous = format_deadline(activity)
        activity.deadline = build_deadline(day, at, self._clock.tz)
        activity.has_time = at is not None
        activity.extended = True
        activity.extended_by = str(actor_id)
        activity.extended_at = now

        if not self._store.save_activities(chat_id, activities):
            return _storage_error()

        logger.info(
            "Tenant %d: activity '%s' extended by %s to %s",
            chat_id, activity.name, actor_id, activity.deadline.isoformat(),
        )
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message="Deadline extended.",
            activity=to_info(activity, now),
            previous_deadline_text=previous,
            subject=activity.subject,
        )

    def remove_activity(self, chat_id: int, name: str) -> ServiceResponse:
        activities = self._load(chat_id)
        if activities is None:
            return _read_error()
        index = self._find_by_name(activities, name)
        if index == -1:
            return _error(
                ErrorKind.NOT_FOUND,
                f'Activity "{name.replace("_", " ")}" not found.', "activity",
            )

        removed = activities.pop(index)
        if not self._store.save_activities(chat_id, activities):
            return _storage_error()

        logger.info("Tenant %d: activity '%s' removed", chat_id, removed.name)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f'Activity "{removed.display_name}" removed.',
            activity=to_info(removed, self._clock.now()),
            subject=removed.subject,
        )

    def list_activities(self, chat_id: int) -> ServiceResponse:
        """Pending activities grouped by subject, in subject-list order.

        Activities whose subject is no longer registered go under "Other".
        """
        activities = self._load(chat_id)
        if activities is None:
            return _read_error()
        now = self._clock.now()
        pending = [a for a in activities if windows.is_pending(a, now)]
        subjects = self._subjects.list_subjects()

        groups = {s.lower(): SubjectGroup(subject=s) for s in subjects}
        other = SubjectGroup(subject=OTHER_SUBJECT)
        for activity in pending:
            group = groups.get(activity.subject.lower(), other)
            group.activities.append(to_info(activity, now))

        result = [g for g in groups.values() if g.activities]
        if other.activities:
            result.append(other)

        message = "Pending activities." if pending else "No pending activities."
        return ActivityListResponse(
            kind=ResponseKind.QUERY_RESULT, message=message, groups=result,
        )

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------

    def list_subjects(self) -> SubjectListResponse:
        subjects = self._subjects.list_subjects()
        message = "Active subjects." if subjects else "No subjects registered yet."
        return SubjectListResponse(
            kind=ResponseKind.QUERY_RESULT, message=message, subjects=subjects,
        )

    def add_subject(self, name: str) -> ServiceResponse:
        name = name.strip()
        if not name:
            return _error(ErrorKind.INVALID_INPUT, "Subject name is empty.", "subject")
        if not self._subjects.add_subject(name):
            return _error(ErrorKind.DUPLICATE, f'Subject "{name}" already exists.', "subject")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f'Subject "{name}" added.', subject=name,
        )

    def remove_subject(self, name: str) -> ServiceResponse:
        removed = self._subjects.remove_subject(name)
        if removed is None:
            return _error(ErrorKind.NOT_FOUND, f'Subject "{name}" not found.', "subject")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=f'Subject "{removed}" removed.', subject=removed,
        )
