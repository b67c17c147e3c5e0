"""Legacy snapshot — the single-group activities file from before tenants.

The file (``{"activities": [...]}``) is read at most once per process and
cached as raw records. Every call to ``activities()`` builds brand-new
Activity objects from that cache, so no two tenants ever share state.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from zoneinfo import ZoneInfo

from agendabot.data.models import Activity

logger = logging.getLogger(__name__)


class LegacySnapshot:
    """Read-once cache of the legacy global activity list."""

    def __init__(self, path: str | Path, tz_name: str) -> None:
        self._path = Path(path)
        self._tz = ZoneInfo(tz_name)
        self._records: list[dict] | None = None

    @property
    def loaded(self) -> bool:
        return self._records is not None

    def _load(self) -> list[dict]:
        if self._records is not None:
            return self._records

        records: list[dict] = []
        if self._path.exists():
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                raw = data.get("activities", []) if isinstance(data, dict) else data
                records = [r for r in raw if isinstance(r, dict)]
                logger.info(
                    "Legacy snapshot loaded: %d activities from %s",
                    len(records), self._path,
                )
            except (json.JSONDecodeError, OSError) as exc:
                logger.error("Could not read legacy snapshot %s: %s", self._path, exc)
        else:
            logger.info("No legacy snapshot at %s", self._path)

        self._records = records
        return records

    def activities(self) -> list[Activity]:
        """Return fresh Activity objects for every usable legacy record."""
        result: list[Activity] = []
        for record in self._load():
            try:
                result.append(Activity.from_dict(copy.deepcopy(record), self._tz))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning("Skipping malformed legacy activity %r: %s", record.get("id"), exc)
        return result
