"""Notification port — abstract interface for delivering reminder batches.

Core modules depend on this protocol, never on a specific messaging provider.
The core hands over structured content only; rendering text is up to the
implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from agendabot.core.reminders import ReminderBatch


class NotificationPort(Protocol):
    """Abstract notification interface used by the reminder scheduler."""

    async def notify(self, chat_id: int, batch: ReminderBatch) -> bool: ...
