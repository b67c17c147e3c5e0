"""Tests for agendabot.core.bootstrap — first-contact tenant setup and migration."""

import json
from datetime import datetime
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from agendabot.core.bootstrap import TenantBootstrapper, migrate_legacy_activities
from agendabot.data.legacy import LegacySnapshot
from agendabot.data.models import Activity, ReminderKind

TZ = ZoneInfo("Asia/Manila")
TZ_NAME = "Asia/Manila"


@pytest.fixture
def legacy(tmp_path):
    records = [
        {
            "id": "1729000000000",
            "name": "Performance_Task_3",
            "subject": "English",
            "deadline": "2025-11-19T14:00:00.000Z",
            "time": "10:00 PM",
            "notifiedNextWeek": True,
            "notifiedTomorrow": True,
        },
        {
            "id": "1729000000001",
            "name": "Quiz_1",
            "subject": "Math",
            "deadline": "2025-11-20T16:00:00.000Z",
            "time": None,
            "notifiedEnded": True,
        },
    ]
    path = tmp_path / "activities.json"
    path.write_text(json.dumps({"activities": records}), encoding="utf-8")
    return LegacySnapshot(path, TZ_NAME)


@pytest.fixture
def bootstrapper(activity_db, clock, legacy):
    return TenantBootstrapper(activity_db, clock, legacy=legacy)


class TestMigrateLegacyActivities:
    def test_resets_flags_and_records_provenance(self):
        moment = datetime(2025, 11, 14, 8, 0, tzinfo=TZ)
        activity = Activity(
            id="old", name="Quiz", subject="Math",
            deadline=datetime(2025, 11, 20, tzinfo=TZ),
        )
        for kind in ReminderKind:
            activity.mark_notified(kind)

        [migrated] = migrate_legacy_activities([activity], moment)

        assert migrated.id != "old"
        assert len(migrated.id) == 32
        assert migrated.migrated_from == "old"
        assert migrated.migrated_at == moment
        assert migrated.ended is False
        assert not any(migrated.is_notified(k) for k in ReminderKind)
        assert migrated.name == "Quiz"


class TestEnsureTenant:
    def test_first_contact_creates_tenant_with_copy(self, bootstrapper, activity_db, clock):
        assert bootstrapper.ensure_tenant(-1001) is True

        tenant = activity_db.get_tenant(-1001)
        assert tenant is not None
        assert tenant.migrated is True

        activities = activity_db.load_activities(-1001)
        assert [a.name for a in activities] == ["Performance_Task_3", "Quiz_1"]
        for activity in activities:
            assert activity.migrated_from in ("1729000000000", "1729000000001")
            assert activity.migrated_at == clock.now()
            assert not any(activity.is_notified(k) for k in ReminderKind)

    def test_second_contact_is_noop(self, bootstrapper, activity_db):
        bootstrapper.ensure_tenant(-1001)
        activity_db.save_activities(-1001, [])
        assert bootstrapper.ensure_tenant(-1001) is False
        assert activity_db.load_activities(-1001) == []

    def test_existing_tenant_from_previous_run(self, activity_db, clock, legacy):
        activity_db.create_tenant(-1001)
        fresh = TenantBootstrapper(activity_db, clock, legacy=legacy)
        assert fresh.ensure_tenant(-1001) is False
        assert activity_db.load_activities(-1001) == []

    def test_tenants_get_independent_copies(self, bootstrapper, activity_db):
        bootstrapper.ensure_tenant(-1)
        bootstrapper.ensure_tenant(-2)

        first = activity_db.load_activities(-1)
        second = activity_db.load_activities(-2)
        assert {a.id for a in first}.isdisjoint({a.id for a in second})

        first[0].mark_notified(ReminderKind.TOMORROW)
        activity_db.save_activities(-1, first)
        assert activity_db.load_activities(-2)[0].notified_tomorrow is False

    def test_legacy_file_read_once_across_tenants(self, bootstrapper):
        with patch("agendabot.data.legacy.json.load", wraps=json.load) as mock_load:
            for chat_id in (-1, -2, -3):
                bootstrapper.ensure_tenant(chat_id)
        assert mock_load.call_count == 1

    def test_migration_disabled(self, activity_db, clock, legacy):
        bootstrapper = TenantBootstrapper(activity_db, clock, legacy=legacy, migrate_legacy=False)
        assert bootstrapper.ensure_tenant(-1001) is True
        assert activity_db.get_tenant(-1001).migrated is False
        assert activity_db.load_activities(-1001) == []
        assert legacy.loaded is False

    def test_missing_legacy_file(self, activity_db, clock, tmp_path):
        legacy = LegacySnapshot(tmp_path / "missing.json", TZ_NAME)
        bootstrapper = TenantBootstrapper(activity_db, clock, legacy=legacy)
        assert bootstrapper.ensure_tenant(-1001) is True
        assert activity_db.get_tenant(-1001).migrated is False
        assert activity_db.load_activities(-1001) == []

    def test_failed_copy_is_retried(self, clock, legacy):
        store = MagicMock()
        store.get_tenant.return_value = None
        store.save_activities.side_effect = [False, True]
        bootstrapper = TenantBootstrapper(store, clock, legacy=legacy)

        assert bootstrapper.ensure_tenant(-1001) is False
        store.create_tenant.assert_not_called()

        assert bootstrapper.ensure_tenant(-1001) is True
        store.create_tenant.assert_called_once_with(-1001, migrated=True)
