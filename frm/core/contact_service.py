"""
frm — UI-Agnostic Contact Service.

Stateless service layer behind every user command: resolve contacts across
accounts, change their tracking fields, consult the interaction log, and
return structured result objects.

The service never prints. The CLI (or any other front end) calls it and
renders the results in its own way. Collaborators are passed in explicitly
so each command invocation builds exactly what it needs.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from frm.core import metadata
from frm.core.aggregator import ContactAggregator
from frm.core.due_engine import DueDateEngine, DueStatus
from frm.core.durations import (
    parse_absolute_or_relative_date,
    parse_frequency,
    parse_until,
    utcnow,
    whole_days,
)
from frm.core.enrichment import collect_context
from frm.core.errors import NotFound
from frm.core.spread import SpreadPlan, SpreadScheduler
from frm.data.ledger import InteractionLedger
from frm.data.models import ContactMatch, ContactRecord, LogEntry
from frm.ports.context_port import ContextProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class UpdateResult:
    """Outcome of a write applied to every matching record."""

    name: str
    updated: int          # number of records written
    matched: int = 1      # number of records that matched the name

    @property
    def changed(self) -> bool:
        return self.updated > 0


@dataclass
class SnoozeResult(UpdateResult):
    until: date | None = None


@dataclass
class ListEntry:
    name: str
    frequency: str = ""
    group: str = ""
    due_in_days: int | None = None


@dataclass
class Stats:
    total_contacts: int
    tracked: int
    ignored: int
    untracked: int
    overdue: int
    total_interactions: int
    most_contacted: tuple[str, int] | None = None
    least_contacted: tuple[str, int] | None = None


@dataclass
class ContactSummary:
    """Everything worth knowing before meeting someone."""

    name: str
    path: str
    ignored: bool
    frequency: str = ""
    group: str = ""
    last_entry: LogEntry | None = None
    days_since: int | None = None
    status: DueStatus | None = None
    context: list[str] = field(default_factory=list)


@dataclass
class TriageItem:
    match: ContactMatch
    email: str = ""
    org: str = ""
    phone: str = ""

    @property
    def name(self) -> str:
        return self.match.record.name


class TriageChoice(Enum):
    MONTHLY = "m"
    QUARTERLY = "q"
    YEARLY = "y"
    IGNORE = "i"
    SKIP = "s"

    @classmethod
    def from_input(cls, text: str) -> TriageChoice:
        """Map a typed answer to a choice; anything unknown means skip."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            return cls.SKIP


TRIAGE_FREQUENCIES = {
    TriageChoice.MONTHLY: "1m",
    TriageChoice.QUARTERLY: "3m",
    TriageChoice.YEARLY: "12m",
}


def most_least_contacted(
    counts: dict[str, int],
) -> tuple[tuple[str, int], tuple[str, int]] | None:
    """Most and least logged names; ties break alphabetically (case-insensitive)."""
    if not counts:
        return None
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0].lower()))
    return ordered[0], ordered[-1]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ContactService:
    """Implements every frm command on top of explicit collaborators."""

    def __init__(
        self,
        aggregator: ContactAggregator,
        ledger: InteractionLedger,
        providers: Sequence[ContextProvider] = (),
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._ledger = ledger
        self._providers = list(providers)
        self._clock = clock
        self._rng = rng

    def now(self) -> datetime:
        return self._clock()

    def _engine(self) -> DueDateEngine:
        return DueDateEngine.from_ledger(self._ledger)

    async def _pooled_records(self) -> list[ContactRecord]:
        return [m.record for m in await self._aggregator.all_matches()]

    async def _update_all(
        self, name: str, mutate: Callable[[ContactRecord], bool],
    ) -> UpdateResult:
        matches = await self._aggregator.resolve_all_matches(name)
        updated = await self._aggregator.apply_to_all(matches, mutate)
        return UpdateResult(name=matches[0].record.name, updated=updated, matched=len(matches))

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def contact_names(self) -> list[str]:
        """Sorted display names of every contact in every account."""
        return sorted(r.name for r in await self._pooled_records() if r.name)

    async def add_contact(
        self, name: str, email: str = "", phone: str = "", org: str = "", url: str = "",
    ) -> ContactMatch:
        card = metadata.new_card(name, email=email, phone=phone, org=org, url=url)
        match = await self._aggregator.add_contact(card)
        logger.info("Added contact '%s' to %s", name, match.account)
        return match

    # ------------------------------------------------------------------
    # Tracking fields
    # ------------------------------------------------------------------

    async def track(self, name: str, every: str) -> UpdateResult:
        """Set the contact frequency on every matching record."""
        parse_frequency(every)

        def mutate(record: ContactRecord) -> bool:
            metadata.set_frequency(record.card, every)
            return True

        return await self._update_all(name, mutate)

    async def untrack(self, name: str) -> UpdateResult:
        def mutate(record: ContactRecord) -> bool:
            if not metadata.get_frequency(record.card):
                return False
            metadata.remove_frequency(record.card)
            return True

        return await self._update_all(name, mutate)

    async def set_group(self, name: str, group: str) -> UpdateResult:
        def mutate(record: ContactRecord) -> bool:
            metadata.set_group(record.card, group)
            return True

        return await self._update_all(name, mutate)

    async def unset_group(self, name: str) -> UpdateResult:
        def mutate(record: ContactRecord) -> bool:
            if not metadata.get_group(record.card):
                return False
            metadata.remove_group(record.card)
            return True

        return await self._update_all(name, mutate)

    async def ignore(self, name: str) -> UpdateResult:
        """Ignore the first matching record; no write if already ignored."""
        match = await self._aggregator.resolve_contact(name)
        if metadata.is_ignored(match.record.card):
            return UpdateResult(name=match.record.name, updated=0)
        metadata.set_ignored(match.record.card)
        await self._aggregator.update_contact(match)
        return UpdateResult(name=match.record.name, updated=1)

    async def unignore(self, name: str) -> UpdateResult:
        """Clear the ignore flag on every matching record that has it."""
        def mutate(record: ContactRecord) -> bool:
            if not metadata.is_ignored(record.card):
                return False
            metadata.remove_ignored(record.card)
            return True

        return await self._update_all(name, mutate)

    async def snooze(self, name: str, until: str) -> SnoozeResult:
        """Snooze every matching record until a date or for a duration."""
        target = parse_until(until, self._clock()).date()

        def mutate(record: ContactRecord) -> bool:
            metadata.set_snooze_until(record.card, target)
            return True

        result = await self._update_all(name, mutate)
        return SnoozeResult(
            name=result.name, updated=result.updated, matched=result.matched, until=target,
        )

    async def unsnooze(self, name: str) -> UpdateResult:
        def mutate(record: ContactRecord) -> bool:
            if metadata.get_snooze_until(record.card) is None:
                return False
            metadata.remove_snooze_until(record.card)
            return True

        return await self._update_all(name, mutate)

    # ------------------------------------------------------------------
    # Interaction log
    # ------------------------------------------------------------------

    async def log_interaction(
        self, name: str, note: str | None = None, when: str | None = None,
    ) -> LogEntry:
        """Append an interaction, resolving the name to a record if possible.

        A resolved contact is logged under its canonical name and path; an
        unknown name is logged exactly as typed.
        """
        now = self._clock()
        at = parse_absolute_or_relative_date(when, now) if when else now

        contact, path = name, None
        try:
            match = await self._aggregator.resolve_contact(name)
        except NotFound:
            logger.info("No contact named '%s'; logging the name as typed", name)
        else:
            contact, path = match.record.name or name, match.record.path

        entry = LogEntry(contact=contact, path=path, time=at, note=note or None)
        self._ledger.append(entry)
        return entry

    def history(self, name: str) -> list[LogEntry]:
        return self._ledger.entries_for(name)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def check(self) -> list[DueStatus]:
        """Overdue tracked contacts across all accounts."""
        records = await self._pooled_records()
        return self._engine().overdue(records, self._clock())

    async def list_contacts(self, include_all: bool = False) -> list[ListEntry]:
        """Tracked contacts with their due dates (or everyone)."""
        records = await self._pooled_records()
        engine = self._engine()
        now = self._clock()

        entries: list[ListEntry] = []
        for record in records:
            if not record.name:
                continue
            frequency = metadata.get_frequency(record.card)
            if not include_all and (not frequency or metadata.is_ignored(record.card)):
                continue
            status = engine.evaluate(record, now)
            entries.append(ListEntry(
                name=record.name,
                frequency=frequency,
                group=metadata.get_group(record.card),
                due_in_days=status.due_in_days if status else None,
            ))
        entries.sort(key=lambda e: e.name)
        return entries

    async def stats(self) -> Stats:
        records = [r for r in await self._pooled_records() if r.name]
        engine = self._engine()
        now = self._clock()
        counts = self._ledger.interaction_counts()

        ignored = sum(1 for r in records if metadata.is_ignored(r.card))
        tracked = sum(
            1 for r in records
            if not metadata.is_ignored(r.card) and metadata.get_frequency(r.card)
        )
        overdue = len(engine.overdue(records, now))

        extremes = most_least_contacted(counts)

        return Stats(
            total_contacts=len(records),
            tracked=tracked,
            ignored=ignored,
            untracked=len(records) - tracked - ignored,
            overdue=overdue,
            total_interactions=sum(counts.values()),
            most_contacted=extremes[0] if extremes else None,
            least_contacted=extremes[1] if extremes else None,
        )

    async def list_groups(self) -> dict[str, int]:
        """Group label -> number of contacts carrying it."""
        groups: dict[str, int] = {}
        for record in await self._pooled_records():
            group = metadata.get_group(record.card)
            if group:
                groups[group] = groups.get(group, 0) + 1
        return dict(sorted(groups.items()))

    async def group_members(self, group: str) -> list[str]:
        wanted = group.strip().lower()
        return sorted(
            r.name for r in await self._pooled_records()
            if r.name and metadata.get_group(r.card).lower() == wanted
        )

    async def spread(self, apply: bool = False) -> SpreadPlan:
        scheduler = SpreadScheduler(self._aggregator, self._engine(), rng=self._rng)
        return await scheduler.run(self._clock(), apply=apply)

    async def context(self, name: str) -> ContactSummary:
        """Pre-meeting summary for one contact."""
        match = await self._aggregator.resolve_contact(name)
        record = match.record
        now = self._clock()

        entries = self._ledger.entries_for(record.name, path=record.path)
        last_entry = None
        for entry in entries:
            if last_entry is None or entry.time >= last_entry.time:
                last_entry = entry

        summary = ContactSummary(
            name=record.name,
            path=record.path,
            ignored=metadata.is_ignored(record.card),
            frequency=metadata.get_frequency(record.card),
            group=metadata.get_group(record.card),
            last_entry=last_entry,
            days_since=whole_days(now - last_entry.time) if last_entry else None,
            status=self._engine().evaluate(record, now),
        )
        summary.context = await collect_context(self._providers, record)
        return summary

    # ------------------------------------------------------------------
    # Triage
    # ------------------------------------------------------------------

    async def untriaged(self, limit: int = 5) -> list[TriageItem]:
        """Named contacts with no frequency that are not ignored.

        Sorted by name; a negative ``limit`` means no limit.
        """
        items = [
            TriageItem(
                match=m,
                email=metadata.preferred_value(m.record.card, "EMAIL").strip(),
                org=metadata.preferred_value(m.record.card, "ORG").strip().rstrip("; "),
                phone=metadata.preferred_value(m.record.card, "TEL").strip(),
            )
            for m in await self._aggregator.all_matches()
            if m.record.name
            and not metadata.get_frequency(m.record.card)
            and not metadata.is_ignored(m.record.card)
        ]
        items.sort(key=lambda i: i.name)
        if limit >= 0:
            items = items[:limit]
        return items

    async def context_for(self, record: ContactRecord) -> list[str]:
        return await collect_context(self._providers, record)

    async def apply_triage(self, item: TriageItem, choice: TriageChoice) -> TriageChoice:
        """Write the chosen frequency (or ignore flag) for one contact."""
        card = item.match.record.card
        if choice in TRIAGE_FREQUENCIES:
            metadata.set_frequency(card, TRIAGE_FREQUENCIES[choice])
        elif choice is TriageChoice.IGNORE:
            metadata.set_ignored(card)
        else:
            return TriageChoice.SKIP
        await self._aggregator.update_contact(item.match)
        return choice
