"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and renders each structured reminder batch
into a single group message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Bot
from telegram.error import TelegramError

from agendabot.data.models import ReminderKind

if TYPE_CHECKING:
    from agendabot.core.reminders import FiredReminder, ReminderBatch

logger = logging.getLogger(__name__)

_HEADINGS = {
    ReminderKind.NEXT_WEEK: "📅 DUE NEXT WEEK",
    ReminderKind.THIS_WEEK: "🗓️ DUE THIS WEEK",
    ReminderKind.TWO_DAYS: "⏳ DUE IN 2 DAYS",
    ReminderKind.TOMORROW: "🚨 DUE TOMORROW",
    ReminderKind.TODAY: "⚠️ DUE TODAY",
    ReminderKind.THIRTY_MIN: "⏰ URGENT: 30 MINUTES LEFT",
    ReminderKind.ENDED: "📢 DEADLINE MET",
}


def _format_deadline(reminder: FiredReminder) -> str:
    d = reminder.deadline
    text = f"{d.strftime('%A')}, {d.strftime('%b')} {d.day}, {d.year}"
    if reminder.time_label:
        text += f" {reminder.time_label}"
    return text


def _format_entry(reminder: FiredReminder) -> str:
    lines = [
        f"📝 {reminder.display_name}",
        f"📚 {reminder.subject}",
    ]
    if reminder.kind is ReminderKind.ENDED:
        lines.append("This activity has passed its deadline and was removed from the list.")
    elif reminder.kind is ReminderKind.THIRTY_MIN:
        lines.append(f"🔴 Only {reminder.minutes_left} minutes left! ({reminder.time_label})")
    else:
        lines.append(f"📅 {_format_deadline(reminder)}")
        lines.append(f"⏳ {reminder.countdown}")
    return "\n".join(lines)


def render_batch(batch: ReminderBatch) -> str:
    """Render a batch as one message, one section per reminder kind."""
    sections = []
    for kind in ReminderKind:
        group = batch.groups.get(kind)
        if not group:
            continue
        entries = "\n\n".join(_format_entry(r) for r in group)
        sections.append(f"{_HEADINGS[kind]}\n\n{entries}")
    return "\n\n━━━━━━━━━━━━\n\n".join(sections)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def notify(self, chat_id: int, batch: ReminderBatch) -> bool:
        if not batch:
            return True
        try:
            await self._bot.send_message(chat_id=chat_id, text=render_batch(batch))
        except TelegramError as exc:
            logger.error("Telegram send to chat %d failed: %s", chat_id, exc)
            return False
        logger.info("Sent %d reminders to chat %d", len(batch), chat_id)
        return True
