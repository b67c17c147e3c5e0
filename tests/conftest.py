"""Shared test fixtures and configuration.

Sets up fake environment variables so agendabot.config doesn't sys.exit(),
and provides common fixtures like temp-file-backed stores and a fixed clock.
"""

import os

# Patch env vars BEFORE any agendabot imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ADMIN_USER_IDS", "12345")
os.environ.setdefault("TIMEZONE", "Asia/Manila")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("LEGACY_ACTIVITIES_PATH", "does-not-exist.json")

import pytest
from datetime import datetime


TZ_NAME = "Asia/Manila"


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_agenda.db")


@pytest.fixture
def activity_db(tmp_db_path):
    """Return an ActivityDB instance backed by a temp file."""
    from agendabot.data.db import ActivityDB
    return ActivityDB(db_path=tmp_db_path, tz_name=TZ_NAME)


@pytest.fixture
def subject_db(tmp_db_path):
    """Return a SubjectDB sharing the temp file with activity_db."""
    from agendabot.data.db import SubjectDB
    return SubjectDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """A clock frozen at Friday 2025-11-14 08:00 Manila time."""
    from agendabot.core.clock import FixedClock
    return FixedClock(datetime(2025, 11, 14, 8, 0), tz_name=TZ_NAME)
