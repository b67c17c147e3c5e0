"""
Agenda Bot — Command Argument Parser.

Turns the whitespace-split arguments of /addact and /extend into structured
commands, and parses the date (MM/DD/YYYY) and 12-hour time formats the
group uses. Subjects may span several words, so /addact takes every token
between the activity name and the date as the subject, and that whole run
must name a known subject.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, tzinfo

from pydantic import BaseModel

_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_TIME_RE = re.compile(
    r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>[ap]\.?m\.?)?$",
    re.IGNORECASE,
)


class ArgumentError(ValueError):
    """Arguments could not be split into a command.

    ``reason`` is one of: "usage", "no_date", "missing_name_or_subject",
    "unknown_subject". ``detail`` carries the offending text, if any.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


# ---------------------------------------------------------------------------
# Structured commands
# ---------------------------------------------------------------------------


class AddActivityCommand(BaseModel):
    """Arguments of /addact.

    Example: /addact Quiz_1 Araling Panlipunan 12/01/2025 10:00pm
    """
    name: str
    subject: str
    date: str           # MM/DD/YYYY as typed
    time: str | None = None


class ExtendActivityCommand(BaseModel):
    """Arguments of /extend.

    Example: /extend Performance_Task_3 10/25/2025 11:59pm
    """
    name: str
    date: str
    time: str | None = None


# ---------------------------------------------------------------------------
# Date / time
# ---------------------------------------------------------------------------


def is_date_token(text: str) -> bool:
    return bool(_DATE_RE.match(text))


def parse_date(text: str) -> date | None:
    """Parse M/D/YYYY (leading zeros optional). Returns None if invalid."""
    if not text or not is_date_token(text.strip()):
        return None
    try:
        return datetime.strptime(text.strip(), "%m/%d/%Y").date()
    except ValueError:
        return None


def parse_time(text: str) -> time | None:
    """Parse "10:00pm", "10:00 pm", "10pm" or 24-hour "22:00".

    Returns None if the text is not a valid time of day.
    """
    if not text:
        return None
    match = _TIME_RE.match(text.strip())
    if match is None:
        return None

    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = match.group("meridiem")

    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        is_pm = meridiem.lower().startswith("p")
        hour = hour % 12 + (12 if is_pm else 0)
    else:
        # Bare numbers are only accepted as HH:MM
        if match.group("minute") is None or hour > 23:
            return None
    return time(hour, minute)


def build_deadline(day: date, at: time | None, tz: tzinfo) -> datetime:
    """Combine a date and optional time into an aware deadline.

    Untimed deadlines sit at midnight, the start of their day.
    """
    return datetime.combine(day, at or time(0, 0), tzinfo=tz)


# ---------------------------------------------------------------------------
# Argument splitting
# ---------------------------------------------------------------------------


def find_date_index(args: list[str]) -> int:
    for i, arg in enumerate(args):
        if is_date_token(arg):
            return i
    return -1


def find_subject(args: list[str], subjects: list[str]) -> tuple[str, int] | None:
    """Match the tokens between args[0] and the date against known subjects.

    The whole run must name a subject (any case); stray words make it
    unknown. Returns (subject as stored, index of the date token) or None.
    """
    date_index = find_date_index(args)
    if date_index < 2:
        return None

    by_lower = {s.lower(): s for s in subjects}
    candidate = " ".join(args[1:date_index]).lower()
    if candidate in by_lower:
        return by_lower[candidate], date_index
    return None


def parse_add_args(args: list[str], subjects: list[str]) -> AddActivityCommand:
    """Split /addact arguments: NAME SUBJECT... DATE [TIME]."""
    if len(args) < 3:
        raise ArgumentError("usage")

    date_index = find_date_index(args)
    if date_index == -1:
        raise ArgumentError("no_date")
    if date_index < 2:
        raise ArgumentError("missing_name_or_subject")

    found = find_subject(args, subjects)
    if found is None:
        raise ArgumentError("unknown_subject", " ".join(args[1:date_index]))

    subject, date_index = found
    time_text = args[date_index + 1] if len(args) > date_index + 1 else None
    return AddActivityCommand(
        name=args[0],
        subject=subject,
        date=args[date_index],
        time=time_text,
    )


def parse_extend_args(args: list[str]) -> ExtendActivityCommand:
    """Split /extend arguments: NAME DATE [TIME]."""
    if len(args) < 2:
        raise ArgumentError("usage")
    return ExtendActivityCommand(
        name=args[0],
        date=args[1],
        time=args[2] if len(args) > 2 else None,
    )
