"""
frm — Spread Scheduler.

After a big import every newly tracked contact is "never contacted" and
therefore overdue on the same day. Spreading snoozes each of them to a random
point inside its own frequency window, so they come due as a steady trickle
instead of a wall.

Draws are independent and uniform, not evenly spaced: two contacts can land
on the same day.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from frm.core import metadata
from frm.core.aggregator import ContactAggregator
from frm.core.due_engine import DueDateEngine
from frm.core.durations import parse_frequency, whole_days
from frm.core.errors import AccountUnavailable, InvalidDuration, PartialWriteFailure
from frm.data.models import ContactMatch

logger = logging.getLogger(__name__)


@dataclass
class SpreadAssignment:
    """A proposed (or applied) snooze for one never-contacted contact."""

    match: ContactMatch
    frequency: str
    offset: timedelta
    snooze_until: date
    applied: bool = False

    @property
    def name(self) -> str:
        return self.match.record.name

    @property
    def due_in_days(self) -> int:
        return whole_days(self.offset)


@dataclass
class SpreadGroup:
    """All candidates sharing one frequency string."""

    frequency: str
    assignments: list[SpreadAssignment] = field(default_factory=list)


@dataclass
class SpreadPlan:
    groups: list[SpreadGroup] = field(default_factory=list)
    applied: bool = False

    @property
    def total(self) -> int:
        return sum(len(g.assignments) for g in self.groups)

    @property
    def assignments(self) -> list[SpreadAssignment]:
        return [a for g in self.groups for a in g.assignments]


class SpreadScheduler:
    """Staggers never-contacted tracked contacts across their intervals."""

    def __init__(
        self,
        aggregator: ContactAggregator,
        engine: DueDateEngine,
        rng: random.Random | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._engine = engine
        self._rng = rng or random.Random()

    def candidates(
        self, matches: Iterable[ContactMatch], now: datetime,
    ) -> dict[str, list[tuple[ContactMatch, timedelta]]]:
        """Never-contacted tracked contacts grouped by frequency string.

        Ignored, snoozed, unnamed and already-contacted records are left
        out, as are records whose frequency does not parse.
        """
        groups: dict[str, list[tuple[ContactMatch, timedelta]]] = {}
        for match in matches:
            card = match.record.card
            if metadata.is_ignored(card) or metadata.is_snoozed(card, now):
                continue
            frequency = metadata.get_frequency(card)
            if not frequency or not match.record.name:
                continue
            if self._engine.has_history(match.record):
                continue
            try:
                interval = parse_frequency(frequency)
            except InvalidDuration as exc:
                logger.warning("Skipping %s: %s", match.record.name, exc)
                continue
            groups.setdefault(frequency, []).append((match, interval))

        for members in groups.values():
            members.sort(key=lambda m: m[0].record.name)
        return groups

    def _draw(self, interval: timedelta, now: datetime) -> tuple[timedelta, date]:
        """Uniform offset in [0, interval) and the snooze date it maps to.

        A date that falls on today would not snooze anything, so it moves to
        tomorrow.
        """
        offset = timedelta(seconds=self._rng.random() * interval.total_seconds())
        snooze_until = (now + offset).date()
        tomorrow = now.date() + timedelta(days=1)
        if snooze_until < tomorrow:
            snooze_until = tomorrow
        return offset, snooze_until

    def plan(self, matches: Iterable[ContactMatch], now: datetime) -> SpreadPlan:
        """Draw a snooze date for every candidate without writing anything."""
        plan = SpreadPlan()
        for frequency, members in sorted(self.candidates(matches, now).items()):
            group = SpreadGroup(frequency=frequency)
            for match, interval in members:
                offset, snooze_until = self._draw(interval, now)
                group.assignments.append(SpreadAssignment(
                    match=match,
                    frequency=frequency,
                    offset=offset,
                    snooze_until=snooze_until,
                ))
            plan.groups.append(group)
        logger.info("Spread plan: %d contact(s) in %d group(s)", plan.total, len(plan.groups))
        return plan

    async def run(self, now: datetime, apply: bool = False) -> SpreadPlan:
        """Plan a spread over the pooled contacts and optionally apply it.

        Dry run by default. With ``apply`` each snooze is written through
        the aggregator; a failing write raises PartialWriteFailure naming
        the contacts already snoozed.
        """
        matches = await self._aggregator.all_matches()
        plan = self.plan(matches, now)
        if not apply:
            return plan

        done: list[str] = []
        for assignment in plan.assignments:
            record = assignment.match.record
            metadata.set_snooze_until(record.card, assignment.snooze_until)
            try:
                await self._aggregator.update_contact(assignment.match)
            except AccountUnavailable as exc:
                logger.error("Spread stopped at %s: %s", record.name, exc)
                raise PartialWriteFailure(done, record.name, exc) from exc
            assignment.applied = True
            done.append(record.name)
        plan.applied = True
        logger.info("Spread %d contact(s) across their intervals", len(done))
        return plan
