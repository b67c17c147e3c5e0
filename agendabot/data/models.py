"""
Agenda Bot — Data Models.

Activities persist in SQLite per tenant (one tenant per group chat).
Reminder flags are independent one-shot facts, not a single status: an
activity can be reminded "tomorrow" and "in 30 minutes" on the same day.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any


class ReminderKind(Enum):
    """Reminder categories, in evaluation precedence order."""

    NEXT_WEEK = "next_week"
    THIS_WEEK = "this_week"
    TWO_DAYS = "2_days"
    TOMORROW = "tomorrow"
    TODAY = "today"
    THIRTY_MIN = "30_min"
    ENDED = "ended"

    @property
    def flag(self) -> str:
        """Name of the Activity attribute guarding this kind."""
        return f"notified_{self.value}"


@dataclass
class Activity:
    """A deadline-bound task tracked for one tenant.

    Added via /addact, moved via /extend, retired by the reminder tick once
    its deadline has passed.
    """

    id: str
    name: str                          # may contain "_" for spaces
    subject: str
    deadline: datetime                 # aware, in the configured zone
    has_time: bool = False             # False → due by end of that day
    created_at: datetime | None = None
    created_by: str = ""
    extended: bool = False
    extended_by: str | None = None
    extended_at: datetime | None = None
    notified_next_week: bool = False
    notified_this_week: bool = False
    notified_2_days: bool = False
    notified_tomorrow: bool = False
    notified_today: bool = False
    notified_30_min: bool = False
    notified_ended: bool = False
    ended: bool = False
    migrated_from: str | None = None
    migrated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ")

    @property
    def time_label(self) -> str | None:
        """Deadline time as "h:mm AM", or None for whole-day deadlines."""
        if not self.has_time:
            return None
        return format_time_label(self.deadline)

    def is_notified(self, kind: ReminderKind) -> bool:
        return getattr(self, kind.flag)

    def mark_notified(self, kind: ReminderKind) -> bool:
        """Set the one-shot flag for kind. Returns False if it was already set."""
        if self.is_notified(kind):
            return False
        setattr(self, kind.flag, True)
        if kind is ReminderKind.ENDED:
            self.ended = True
        return True

    def reset_reminders(self) -> None:
        """Clear every flag. Only used when copying a record into a new tenant."""
        for kind in ReminderKind:
            setattr(self, kind.flag, False)
        self.ended = False

    def to_dict(self) -> dict[str, Any]:
        """Snake_case record with ISO timestamps, readable by from_dict()."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], tz: tzinfo) -> Activity:
        """Build an Activity from a stored record.

        Accepts both snake_case records and the legacy camelCase layout
        where a non-empty ``time`` label marks a timed deadline.
        """
        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        if "has_time" in data or "hasTime" in data:
            has_time = bool(pick("has_time", "hasTime", default=False))
        else:
            has_time = bool(data.get("time"))

        activity = cls(
            id=str(pick("id", default="")),
            name=str(data["name"]),
            subject=str(pick("subject", default="")),
            deadline=parse_instant(data["deadline"], tz),
            has_time=has_time,
            created_at=_optional_instant(pick("created_at", "createdAt"), tz),
            created_by=str(pick("created_by", "createdBy", default="")),
            extended=bool(pick("extended", default=False)),
            extended_by=pick("extended_by", "extendedBy"),
            extended_at=_optional_instant(pick("extended_at", "extendedAt"), tz),
            ended=bool(pick("ended", default=False)),
            migrated_from=pick("migrated_from", "migratedFrom"),
            migrated_at=_optional_instant(pick("migrated_at", "migratedAt"), tz),
        )
        for kind in ReminderKind:
            camel = "notified" + "".join(
                part[:1].upper() + part[1:] for part in kind.value.split("_")
            )
            setattr(activity, kind.flag, bool(pick(kind.flag, camel, default=False)))
        if activity.notified_ended:
            activity.ended = True
        return activity


def parse_instant(value: str | datetime, tz: tzinfo) -> datetime:
    """Parse an ISO timestamp into an aware datetime in tz.

    Naive values are taken to already be wall-clock time in tz.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def _optional_instant(value: str | datetime | None, tz: tzinfo) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_instant(value, tz)


def format_time_label(moment: datetime) -> str:
    """Render a time of day as "h:mm AM"."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


@dataclass
class Tenant:
    """A group chat with its own isolated activity collection."""

    chat_id: int
    created_at: str = ""
    last_updated: str = ""
    migrated: bool = False
