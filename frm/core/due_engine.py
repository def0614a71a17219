"""Due-date engine — pure business logic.

Decides, for each tracked contact, how many days remain until the next
check-in is due. Precedence, highest first:

1. ignored or untracked  -> not evaluated at all
2. snoozed               -> due when the snooze ends, never overdue
3. no logged contact     -> "never contacted", overdue right away
4. otherwise             -> frequency minus time since the last contact

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from frm.core import metadata
from frm.core.durations import parse_frequency, whole_days
from frm.core.errors import InvalidDuration
from frm.data.ledger import InteractionLedger
from frm.data.models import ContactRecord

logger = logging.getLogger(__name__)


class DueState(Enum):
    SNOOZED = "snoozed"
    NEVER_CONTACTED = "never_contacted"
    SCHEDULED = "scheduled"


@dataclass
class DueStatus:
    """Evaluation of one tracked contact at a given moment."""

    name: str
    path: str
    frequency: str
    state: DueState
    due_in: timedelta              # zero for never-contacted
    group: str = ""
    last_contact: datetime | None = None
    snooze_until: datetime | None = None

    @property
    def due_in_days(self) -> int:
        """Signed days: negative = overdue, 0 = due now, positive = remaining."""
        return whole_days(self.due_in)

    @property
    def is_overdue(self) -> bool:
        if self.state is DueState.SNOOZED:
            return False
        if self.state is DueState.NEVER_CONTACTED:
            return True
        return self.due_in_days <= 0


class DueDateEngine:
    """Cross-references tracked contacts against the interaction ledger."""

    def __init__(self, last_contact: dict[str, datetime]) -> None:
        self._last_contact = dict(last_contact)

    @classmethod
    def from_ledger(cls, ledger: InteractionLedger) -> DueDateEngine:
        return cls(ledger.last_contact_by_key())

    def last_contact_for(self, record: ContactRecord) -> datetime | None:
        """Latest logged contact: by path first, then by lowercased name."""
        last = self._last_contact.get(record.path)
        if last is None:
            last = self._last_contact.get(record.name.lower())
        return last

    def has_history(self, record: ContactRecord) -> bool:
        return self.last_contact_for(record) is not None

    def evaluate(self, record: ContactRecord, now: datetime) -> DueStatus | None:
        """Due status of one record, or None when it is not tracked.

        Ignored contacts, contacts without a frequency and contacts whose
        frequency does not parse all return None.
        """
        card = record.card
        frequency = metadata.get_frequency(card)
        if not frequency or metadata.is_ignored(card):
            return None

        try:
            interval = parse_frequency(frequency)
        except InvalidDuration as exc:
            logger.warning("Skipping %s: %s", record.name or record.path, exc)
            return None

        status = DueStatus(
            name=record.name,
            path=record.path,
            frequency=frequency,
            state=DueState.SCHEDULED,
            due_in=timedelta(0),
            group=metadata.get_group(card),
            last_contact=self.last_contact_for(record),
        )

        if metadata.is_snoozed(card, now):
            status.state = DueState.SNOOZED
            status.snooze_until = metadata.snooze_deadline(card)
            status.due_in = status.snooze_until - now
            return status

        if status.last_contact is None:
            status.state = DueState.NEVER_CONTACTED
            return status

        status.due_in = interval - (now - status.last_contact)
        return status

    def evaluate_all(
        self, records: Iterable[ContactRecord], now: datetime,
    ) -> list[DueStatus]:
        """Statuses of every tracked record, sorted by name."""
        statuses = [
            s for s in (self.evaluate(r, now) for r in records) if s is not None
        ]
        statuses.sort(key=lambda s: s.name.lower())
        return statuses

    def overdue(
        self, records: Iterable[ContactRecord], now: datetime,
    ) -> list[DueStatus]:
        """Tracked records that need attention now, sorted by name."""
        return [s for s in self.evaluate_all(records, now) if s.is_overdue]
