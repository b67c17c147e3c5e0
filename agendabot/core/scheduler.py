"""
Agenda Bot — Reminder Tick.

Runs once a minute (driven by the Telegram job queue). Each tick walks every
known tenant in turn: load its activities, let the reminder state machine
set flags, persist the result with ended activities removed, then hand the
tenant's reminder batch to the notifier in the background.

State is decided and saved before delivery starts; a failed send is logged
and never rolls flags back. One tenant failing never stops the others.

This module is provider-agnostic: it depends on the NotificationPort
protocol, not on Telegram.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from agendabot.core.reminders import ReminderBatch, ReminderSchedule, evaluate_tenant

if TYPE_CHECKING:
    from agendabot.core.bootstrap import TenantBootstrapper
    from agendabot.core.clock import Clock
    from agendabot.data.db import ActivityDB
    from agendabot.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """What happened during one tick."""

    started_at: datetime | None = None
    skipped: bool = False
    tenants: int = 0
    failed: list[int] = field(default_factory=list)
    fired: int = 0
    retired: int = 0


class ReminderScheduler:
    """Runs reminder ticks across all tenants, one tick at a time."""

    def __init__(
        self,
        store: ActivityDB,
        notifier: NotificationPort,
        clock: Clock,
        schedule: ReminderSchedule | None = None,
        bootstrapper: TenantBootstrapper | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._schedule = schedule or ReminderSchedule()
        self._bootstrapper = bootstrapper
        self._lock = asyncio.Lock()
        self._deliveries: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self) -> TickReport:
        """Evaluate every tenant once. Overlapping calls are skipped."""
        if self._lock.locked():
            logger.warning("Previous reminder tick still running; skipping this one")
            return TickReport(skipped=True)

        async with self._lock:
            now = self._clock.now()
            report = TickReport(started_at=now)

            try:
                tenants = self._store.list_tenants()
            except sqlite3.Error as exc:
                logger.error("Reminder tick could not list tenants: %s", exc)
                return report

            for tenant in tenants:
                try:
                    batch = self._process_tenant(tenant.chat_id, now, report)
                except Exception as exc:
                    logger.error("Reminder tick failed for tenant %d: %s", tenant.chat_id, exc)
                    report.failed.append(tenant.chat_id)
                    continue

                report.tenants += 1
                if batch:
                    report.fired += len(batch)
                    self._dispatch(batch)

            if report.fired or report.failed:
                logger.info(
                    "Reminder tick %s: %d tenants, %d reminders, %d retired, %d failed",
                    now.strftime("%Y-%m-%d %H:%M"), report.tenants, report.fired,
                    report.retired, len(report.failed),
                )
            return report

    def _process_tenant(
        self, chat_id: int, now: datetime, report: TickReport,
    ) -> ReminderBatch | None:
        """Decide and persist one tenant's reminders. Returns the batch to send."""
        if self._bootstrapper is not None:
            self._bootstrapper.ensure_tenant(chat_id)

        activities = self._store.load_activities(chat_id)
        if not activities:
            return None

        batch = evaluate_tenant(chat_id, activities, now, self._schedule)
        if not batch:
            return None

        if not self._store.save_activities(chat_id, activities):
            # Flags were not persisted, so the reminders stay due; sending
            # now would repeat them on the next tick.
            logger.warning(
                "Tenant %d: state not saved, holding back %d reminders",
                chat_id, len(batch),
            )
            report.failed.append(chat_id)
            return None

        report.retired += sum(1 for a in activities if a.ended)
        return batch

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _dispatch(self, batch: ReminderBatch) -> None:
        task = asyncio.create_task(self._deliver(batch))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, batch: ReminderBatch) -> bool:
        try:
            delivered = await self._notifier.notify(batch.chat_id, batch)
        except Exception as exc:
            logger.error("Failed to deliver reminders to chat %d: %s", batch.chat_id, exc)
            return False
        if not delivered:
            logger.warning("Reminders to chat %d were not delivered", batch.chat_id)
        return delivered

    async def wait_for_deliveries(self) -> None:
        """Wait until every in-flight delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)


def seconds_until_next_minute(now: datetime) -> float:
    """Delay that lines the first tick up with the start of a minute."""
    next_minute = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return (next_minute - now).total_seconds()
