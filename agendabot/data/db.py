"""
Agenda Bot — Activity and Subject Database.

Each group chat is a tenant with its own activity rows. Every query is scoped
by tenant, and a tenant's activity set is saved with full-overwrite
semantics inside a single transaction.

Storage errors never escape this module unless a caller asks for a strict
read: reads degrade to "empty" and writes report False so the reminder
tick can carry on with other tenants.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from agendabot.data.models import Activity, ReminderKind, Tenant, parse_instant

logger = logging.getLogger(__name__)

_FLAG_COLUMNS = [kind.flag for kind in ReminderKind]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ActivityDB:
    """SQLite-backed per-tenant activity storage."""

    def __init__(self, db_path: str | None = None, tz_name: str | None = None) -> None:
        if db_path is None or tz_name is None:
            from agendabot.config import settings
            db_path = db_path or settings.DATABASE_PATH
            tz_name = tz_name or settings.TIMEZONE

        self._db_path = db_path
        self._tz = ZoneInfo(tz_name)
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the tenants and activities tables if they don't exist."""
        flag_ddl = ",\n".join(
            f"                    {col:<18} INTEGER NOT NULL DEFAULT 0"
            for col in _FLAG_COLUMNS
        )
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tenants (
                    chat_id       INTEGER PRIMARY KEY,
                    created_at    TEXT    NOT NULL,
                    last_updated  TEXT    NOT NULL,
                    migrated      INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS activities (
                    id            TEXT    PRIMARY KEY,
                    tenant_id     INTEGER NOT NULL,
                    position      INTEGER NOT NULL DEFAULT 0,
                    name          TEXT    NOT NULL,
                    subject       TEXT    NOT NULL,
                    deadline      TEXT    NOT NULL,
                    has_time      INTEGER NOT NULL DEFAULT 0,
                    created_at    TEXT,
                    created_by    TEXT    NOT NULL DEFAULT '',
                    extended      INTEGER NOT NULL DEFAULT 0,
                    extended_by   TEXT,
                    extended_at   TEXT,
{flag_ddl},
                    ended         INTEGER NOT NULL DEFAULT 0,
                    migrated_from TEXT,
                    migrated_at   TEXT
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_activities_tenant ON activities (tenant_id)"
            )
        logger.debug("Activity tables initialized at %s", self._db_path)

    def _row_to_activity(self, row: sqlite3.Row) -> Activity:
        activity = Activity(
            id=row["id"],
            name=row["name"],
            subject=row["subject"],
            deadline=parse_instant(row["deadline"], self._tz),
            has_time=bool(row["has_time"]),
            created_at=_parse_optional(row["created_at"], self._tz),
            created_by=row["created_by"],
            extended=bool(row["extended"]),
            extended_by=row["extended_by"],
            extended_at=_parse_optional(row["extended_at"], self._tz),
            ended=bool(row["ended"]),
            migrated_from=row["migrated_from"],
            migrated_at=_parse_optional(row["migrated_at"], self._tz),
        )
        for col in _FLAG_COLUMNS:
            setattr(activity, col, bool(row[col]))
        return activity

    @staticmethod
    def _row_to_tenant(row: sqlite3.Row) -> Tenant:
        return Tenant(
            chat_id=row["chat_id"],
            created_at=row["created_at"],
            last_updated=row["last_updated"],
            migrated=bool(row["migrated"]),
        )

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    def create_tenant(self, chat_id: int, migrated: bool = False) -> Tenant:
        """Register a tenant. Existing tenants are left untouched."""
        now = datetime.now(self._tz).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO tenants (chat_id, created_at, last_updated, migrated)
                VALUES (?, ?, ?, ?)
                """,
                (chat_id, now, now, int(migrated)),
            )
            row = conn.execute(
                "SELECT * FROM tenants WHERE chat_id = ?", (chat_id,)
            ).fetchone()
        logger.info("Tenant registered: %d (migrated=%s)", chat_id, migrated)
        return self._row_to_tenant(row)

    def get_tenant(self, chat_id: int) -> Tenant | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tenants WHERE chat_id = ?", (chat_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_tenant(row)

    def list_tenants(self) -> list[Tenant]:
        """Return all known tenants, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tenants ORDER BY created_at, chat_id"
            ).fetchall()
        return [self._row_to_tenant(r) for r in rows]

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    def load_activities(self, chat_id: int, strict: bool = False) -> list[Activity]:
        """Return a tenant's activities in insertion order.

        Rows that cannot be decoded are logged and skipped. If the query
        itself fails the error is logged and an empty list returned, unless
        ``strict`` is set, in which case the sqlite3.Error propagates so a
        caller about to overwrite the set can back off instead.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM activities WHERE tenant_id = ? ORDER BY position",
                    (chat_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Failed to load activities for tenant %d: %s", chat_id, exc)
            if strict:
                raise
            return []

        activities = []
        for row in rows:
            try:
                activities.append(self._row_to_activity(row))
            except (ValueError, KeyError, TypeError) as exc:
                logger.error(
                    "Skipping unreadable activity %r for tenant %d: %s",
                    row["id"], chat_id, exc,
                )
        return activities

    def _unreadable_ids(self, conn: sqlite3.Connection, chat_id: int) -> set[str]:
        rows = conn.execute(
            "SELECT * FROM activities WHERE tenant_id = ?", (chat_id,)
        ).fetchall()
        bad = set()
        for row in rows:
            try:
                self._row_to_activity(row)
            except (ValueError, KeyError, TypeError):
                bad.add(row["id"])
        return bad

    def save_activities(self, chat_id: int, activities: list[Activity]) -> bool:
        """Replace a tenant's activity set. Ended activities are dropped.

        Rows that load_activities() could not decode stay in place.
        Returns False (after logging) if the write failed; nothing is
        partially written in that case.
        """
        kept = [a for a in activities if not a.ended]
        columns = [
            "id", "tenant_id", "position", "name", "subject", "deadline", "has_time",
            "created_at", "created_by", "extended", "extended_by", "extended_at",
            *_FLAG_COLUMNS, "ended", "migrated_from", "migrated_at",
        ]
        placeholders = ", ".join("?" for _ in columns)
        rows = [
            (
                a.id, chat_id, position, a.name, a.subject, a.deadline.isoformat(),
                int(a.has_time), _iso(a.created_at), a.created_by, int(a.extended),
                a.extended_by, _iso(a.extended_at),
                *(int(getattr(a, col)) for col in _FLAG_COLUMNS),
                int(a.ended), a.migrated_from, _iso(a.migrated_at),
            )
            for position, a in enumerate(kept)
        ]
        now = datetime.now(self._tz).isoformat()
        try:
            with self._connect() as conn:
                unreadable = self._unreadable_ids(conn, chat_id) - {a.id for a in kept}
                keep = ", ".join("?" for _ in unreadable)
                conn.execute(
                    "DELETE FROM activities WHERE tenant_id = ?"
                    + (f" AND id NOT IN ({keep})" if unreadable else ""),
                    (chat_id, *unreadable),
                )
                conn.executemany(
                    f"INSERT INTO activities ({', '.join(columns)}) VALUES ({placeholders})",
                    rows,
                )
                conn.execute(
                    "UPDATE tenants SET last_updated = ? WHERE chat_id = ?",
                    (now, chat_id),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to save activities for tenant %d: %s", chat_id, exc)
            return False

        dropped = len(activities) - len(kept)
        logger.debug(
            "Saved %d activities for tenant %d (%d ended removed)",
            len(kept), chat_id, dropped,
        )
        return True


def _parse_optional(value: str | None, tz: ZoneInfo) -> datetime | None:
    if not value:
        return None
    return parse_instant(value, tz)


class SubjectDB:
    """SQLite-backed storage for the process-wide subject list."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from agendabot.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS subjects (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    name            TEXT NOT NULL,
                    name_normalized TEXT NOT NULL UNIQUE
                )
            """)
        logger.debug("Subjects table initialized at %s", self._db_path)

    def list_subjects(self) -> list[str]:
        """Return subject names in the order they were added.

        Read failures are logged and reported as an empty list.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT name FROM subjects ORDER BY id").fetchall()
        except sqlite3.Error as exc:
            logger.error("Failed to load subjects: %s", exc)
            return []
        return [r["name"] for r in rows]

    def find_subject(self, name: str) -> str | None:
        """Case-insensitive exact match; returns the stored spelling."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT name FROM subjects WHERE name_normalized = ?",
                (name.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return row["name"]

    def add_subject(self, name: str) -> bool:
        """Insert a subject. Returns False if it already exists (any case)."""
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO subjects (name, name_normalized) VALUES (?, ?)",
                    (name.strip(), name.strip().lower()),
                )
        except sqlite3.IntegrityError:
            return False
        logger.info("Subject added: '%s'", name.strip())
        return True

    def remove_subject(self, name: str) -> str | None:
        """Delete a subject by name, any case. Returns the removed spelling."""
        existing = self.find_subject(name)
        if existing is None:
            return None
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM subjects WHERE name_normalized = ?",
                (name.strip().lower(),),
            )
        logger.info("Subject removed: '%s'", existing)
        return existing
