"""Reminder windows — pure calendar predicates.

Every function takes ``now`` explicitly (from a Clock) and compares civil
dates in now's timezone. Nothing here reads the system clock or does I/O.

Reminder weeks run Monday to Sunday, but the week is judged from the day
after ``now``. On a Sunday the "current" week is therefore the one starting
the next morning, which is what the Sunday this-week reminder announces.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from agendabot.data.models import Activity


def _local_day(moment: datetime, now: datetime) -> date:
    return moment.astimezone(now.tzinfo).date()


def _reminder_week_start(day: date) -> date:
    """Monday of the reminder week that day belongs to."""
    anchor = day + timedelta(days=1)
    return anchor - timedelta(days=anchor.weekday())


def effective_deadline(activity: Activity) -> datetime:
    """The deadline itself, or the last instant of its day when untimed."""
    if activity.has_time:
        return activity.deadline
    return datetime.combine(
        activity.deadline.date(), time.max, tzinfo=activity.deadline.tzinfo,
    )


def is_passed(activity: Activity, now: datetime) -> bool:
    return now > effective_deadline(activity)


def is_pending(activity: Activity, now: datetime) -> bool:
    return not activity.ended and not is_passed(activity, now)


def days_until(activity: Activity, now: datetime) -> int:
    """Calendar days between today and the deadline's day."""
    return (_local_day(activity.deadline, now) - now.date()).days


def is_today(activity: Activity, now: datetime) -> bool:
    return days_until(activity, now) == 0


def is_tomorrow(activity: Activity, now: datetime) -> bool:
    return days_until(activity, now) == 1


def is_in_2_days(activity: Activity, now: datetime) -> bool:
    return days_until(activity, now) == 2


def is_this_week(activity: Activity, now: datetime) -> bool:
    """Deadline falls Monday..Saturday of the current reminder week.

    Activities created during that same week are exempt: whoever added them
    already knows the deadline is close.
    """
    start = _reminder_week_start(now.date())
    day = _local_day(activity.deadline, now)
    if not start <= day <= start + timedelta(days=5):
        return False
    if activity.created_at is not None:
        created = _local_day(activity.created_at, now)
        if _reminder_week_start(created) == start:
            return False
    return True


def is_next_week(activity: Activity, now: datetime) -> bool:
    start = _reminder_week_start(now.date()) + timedelta(days=7)
    day = _local_day(activity.deadline, now)
    return start <= day <= start + timedelta(days=6)


def minutes_until(activity: Activity, now: datetime) -> int:
    """Whole minutes until the (timed) deadline, rounded down."""
    return int((activity.deadline - now).total_seconds() // 60)


def format_countdown(activity: Activity, now: datetime) -> str:
    """Short human countdown, e.g. "1h 59m left", "TOMORROW", "2d 5h left"."""
    today = now.date()
    day = _local_day(activity.deadline, now)

    if is_passed(activity, now):
        return "TODAY (PASSED)" if day == today else "PASSED"

    if day == today:
        if not activity.has_time:
            return "TODAY"
        hours, minutes = divmod(minutes_until(activity, now), 60)
        if hours > 0:
            return f"{hours}h {minutes}m left"
        if minutes > 0:
            return f"{minutes}m left"
        return "< 1m left"

    if day == today + timedelta(days=1):
        return "TOMORROW"

    remaining = activity.deadline - now
    parts = []
    if remaining.days > 0:
        parts.append(f"{remaining.days}d")
    hours = remaining.seconds // 3600
    if hours > 0:
        parts.append(f"{hours}h")
    if not parts:
        return "< 1m left"
    return " ".join(parts) + " left"
