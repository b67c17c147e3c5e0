"""Reminder state machine — decides which reminders fire on a tick.

Each activity carries one independent one-shot flag per ReminderKind. On
every tick the window predicates are checked against ``now``; a kind fires
when its window matches, its time-of-day gate is open, and its flag is
still clear. Firing sets the flag, so re-running a tick for the same
instant never fires anything twice.

No I/O: this module only mutates the Activity objects it is handed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from agendabot.core import windows
from agendabot.data.models import Activity, ReminderKind

if TYPE_CHECKING:
    from agendabot.config import Settings

logger = logging.getLogger(__name__)

FRIDAY, SATURDAY, SUNDAY = 4, 5, 6


@dataclass(frozen=True)
class ReminderSchedule:
    """Time-of-day gates and the drift-tolerant urgent band."""

    morning_hour: int = 8
    today_hour: int = 7
    next_week_days: tuple[int, ...] = (FRIDAY, SATURDAY)
    this_week_day: int = SUNDAY
    urgent_min: int = 28
    urgent_max: int = 31

    @classmethod
    def from_settings(cls, settings: Settings) -> ReminderSchedule:
        return cls(
            morning_hour=settings.MORNING_REMINDER_HOUR,
            today_hour=settings.TODAY_REMINDER_HOUR,
            urgent_min=settings.URGENT_BAND_MIN,
            urgent_max=settings.URGENT_BAND_MAX,
        )


@dataclass
class FiredReminder:
    """Structured content for one reminder; rendering is the transport's job."""

    kind: ReminderKind
    activity_id: str
    name: str
    display_name: str
    subject: str
    deadline: datetime
    has_time: bool
    time_label: str | None
    countdown: str
    minutes_left: int | None = None


@dataclass
class ReminderBatch:
    """All reminders fired for one tenant on one tick, grouped by kind."""

    chat_id: int
    groups: dict[ReminderKind, list[FiredReminder]] = field(default_factory=dict)

    def add(self, reminder: FiredReminder) -> None:
        self.groups.setdefault(reminder.kind, []).append(reminder)

    @property
    def reminders(self) -> list[FiredReminder]:
        """Flattened in precedence order."""
        return [r for kind in ReminderKind for r in self.groups.get(kind, [])]

    def __len__(self) -> int:
        return sum(len(group) for group in self.groups.values())

    def __bool__(self) -> bool:
        return len(self) > 0


def _at(now: datetime, hour: int) -> bool:
    return now.hour == hour and now.minute == 0


def _in_urgent_band(activity: Activity, now: datetime, schedule: ReminderSchedule) -> bool:
    if not activity.has_time:
        return False
    return schedule.urgent_min <= windows.minutes_until(activity, now) <= schedule.urgent_max


def _triggers(
    schedule: ReminderSchedule,
) -> list[tuple[ReminderKind, Callable[[Activity, datetime], bool]]]:
    """The trigger table, in precedence order."""
    return [
        (
            ReminderKind.NEXT_WEEK,
            lambda a, now: (
                now.weekday() in schedule.next_week_days
                and _at(now, schedule.morning_hour)
                and windows.is_next_week(a, now)
            ),
        ),
        (
            ReminderKind.THIS_WEEK,
            lambda a, now: (
                now.weekday() == schedule.this_week_day
                and _at(now, schedule.morning_hour)
                and windows.is_this_week(a, now)
            ),
        ),
        (
            ReminderKind.TWO_DAYS,
            lambda a, now: _at(now, schedule.morning_hour) and windows.is_in_2_days(a, now),
        ),
        (
            ReminderKind.TOMORROW,
            lambda a, now: _at(now, schedule.morning_hour) and windows.is_tomorrow(a, now),
        ),
        (
            ReminderKind.TODAY,
            lambda a, now: _at(now, schedule.today_hour) and windows.is_today(a, now),
        ),
        (
            ReminderKind.THIRTY_MIN,
            lambda a, now: _in_urgent_band(a, now, schedule),
        ),
    ]


def _snapshot(activity: Activity, kind: ReminderKind, now: datetime) -> FiredReminder:
    return FiredReminder(
        kind=kind,
        activity_id=activity.id,
        name=activity.name,
        display_name=activity.display_name,
        subject=activity.subject,
        deadline=activity.deadline,
        has_time=activity.has_time,
        time_label=activity.time_label,
        countdown=windows.format_countdown(activity, now),
        minutes_left=windows.minutes_until(activity, now) if activity.has_time else None,
    )


def evaluate_activity(
    activity: Activity,
    now: datetime,
    schedule: ReminderSchedule | None = None,
) -> list[FiredReminder]:
    """Fire every newly-due reminder for one activity and set its flags.

    Several kinds may fire on the same tick. Once the deadline has passed
    only the ended reminder is considered; it marks the activity ended.
    """
    schedule = schedule or ReminderSchedule()
    if activity.ended:
        return []

    fired: list[FiredReminder] = []

    if windows.is_passed(activity, now):
        if activity.mark_notified(ReminderKind.ENDED):
            fired.append(_snapshot(activity, ReminderKind.ENDED, now))
        return fired

    for kind, matches in _triggers(schedule):
        if activity.is_notified(kind):
            continue
        if matches(activity, now):
            activity.mark_notified(kind)
            fired.append(_snapshot(activity, kind, now))

    return fired


def evaluate_tenant(
    chat_id: int,
    activities: list[Activity],
    now: datetime,
    schedule: ReminderSchedule | None = None,
) -> ReminderBatch:
    """Run the state machine over a tenant's activities."""
    batch = ReminderBatch(chat_id=chat_id)
    for activity in activities:
        for reminder in evaluate_activity(activity, now, schedule):
            batch.add(reminder)
    if batch:
        logger.debug(
            "Tenant %d: %d reminders fired (%s)",
            chat_id, len(batch), ", ".join(k.value for k in batch.groups),
        )
    return batch
