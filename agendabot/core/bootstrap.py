"""Tenant bootstrap — first contact with a group chat.

A tenant is registered the first time the bot sees its chat. When legacy
migration is enabled, the new tenant starts with its own copy of every
activity from the pre-multi-tenant snapshot: fresh ids, all reminder flags
cleared, provenance recorded.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agendabot.core.clock import Clock
    from agendabot.data.db import ActivityDB
    from agendabot.data.legacy import LegacySnapshot
    from agendabot.data.models import Activity

logger = logging.getLogger(__name__)


def migrate_legacy_activities(
    legacy: list[Activity], migrated_at: datetime,
) -> list[Activity]:
    """Turn legacy activities into fresh tenant-owned records.

    The input objects must not be shared with anyone else; they are
    modified in place and returned.
    """
    migrated: list[Activity] = []
    for activity in legacy:
        old_id = activity.id
        activity.id = uuid.uuid4().hex
        activity.reset_reminders()
        activity.migrated_from = old_id or None
        activity.migrated_at = migrated_at
        migrated.append(activity)
    return migrated


class TenantBootstrapper:
    """Registers tenants on first contact, at most once per process each."""

    def __init__(
        self,
        store: ActivityDB,
        clock: Clock,
        legacy: LegacySnapshot | None = None,
        migrate_legacy: bool = True,
    ) -> None:
        self._store = store
        self._clock = clock
        self._legacy = legacy
        self._migrate_legacy = migrate_legacy and legacy is not None
        self._initialized: set[int] = set()

    def ensure_tenant(self, chat_id: int) -> bool:
        """Make sure chat_id has a store. Returns True if it was created now."""
        if chat_id in self._initialized:
            return False

        if self._store.get_tenant(chat_id) is not None:
            self._initialized.add(chat_id)
            return False

        activities: list[Activity] = []
        if self._migrate_legacy:
            activities = migrate_legacy_activities(
                self._legacy.activities(), self._clock.now(),
            )

        if activities and not self._store.save_activities(chat_id, activities):
            logger.error("Legacy copy for tenant %d could not be saved; will retry", chat_id)
            return False

        self._store.create_tenant(chat_id, migrated=bool(activities))

        self._initialized.add(chat_id)
        logger.info(
            "Tenant %d bootstrapped with %d migrated activities", chat_id, len(activities),
        )
        return True
