"""
frm — Interaction Ledger.

The Memory pillar: every real interaction is appended to a JSON-lines file
in the config directory. The file is never rewritten, only appended to, and
it is the source of truth for "when did I last talk to X".
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from frm.data.models import LogEntry

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "log.jsonl"


class InteractionLedger:
    """Append-only JSON-lines storage for logged interactions."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @classmethod
    def in_config_dir(cls, config_dir: str | Path) -> InteractionLedger:
        return cls(Path(config_dir) / LOG_FILE_NAME)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: LogEntry) -> None:
        """Append one entry as a single line.

        The whole line goes out in one write call so a crash cannot leave
        two entries interleaved.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = entry.model_dump_json(exclude_none=True) + "\n"
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line)
        logger.info("Logged interaction with '%s' at %s", entry.contact, entry.time.isoformat())

    def read_all(self) -> list[LogEntry]:
        """Every entry in file order. Malformed lines are skipped."""
        if not self._path.exists():
            return []

        entries: list[LogEntry] = []
        with self._path.open("r", encoding="utf-8", errors="replace") as fh:
            for lineno, raw in enumerate(fh, start=1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    entries.append(LogEntry.model_validate_json(raw))
                except ValidationError:
                    logger.debug("Skipping malformed log line %d in %s", lineno, self._path)
        return entries

    def last_contact_by_key(self) -> dict[str, datetime]:
        """Most recent interaction time per identity key."""
        return last_contact_by_key(self.read_all())

    def entries_for(self, name: str, path: str | None = None) -> list[LogEntry]:
        """Entries logged for a contact name (case-insensitive) or path."""
        name_lower = name.strip().lower()
        return [
            e for e in self.read_all()
            if e.contact.strip().lower() == name_lower or (path and e.path == path)
        ]

    def interaction_counts(self) -> Counter[str]:
        """Number of logged interactions per contact name."""
        return Counter(e.contact for e in self.read_all())


def last_contact_by_key(entries: list[LogEntry]) -> dict[str, datetime]:
    """Fold entries into the latest timestamp seen for each identity key."""
    last: dict[str, datetime] = {}
    for entry in entries:
        key = entry.identity_key
        if key not in last or entry.time > last[key]:
            last[key] = entry.time
    return last
