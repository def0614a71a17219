"""Tracking metadata codec — reads and writes the reserved vCard fields.

Four independent attributes turn an ordinary contact into a tracked one:

    X-FRM-FREQUENCY     how often to get in touch ("2w", "1m", ...)
    X-FRM-IGNORE        "true" excludes the contact from check/triage
    X-FRM-GROUP         a single free-text label
    X-FRM-SNOOZE-UNTIL  YYYY-MM-DD; suppresses overdue reporting until then

No I/O: every function transforms an in-memory vobject vCard. Each field
lives under its own key, so setting one never disturbs the others.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

import vobject
from vobject.base import Component, ContentLine

from frm.core.durations import parse_day
from frm.core.errors import InvalidDate

FIELD_FREQUENCY = "X-FRM-FREQUENCY"
FIELD_IGNORE = "X-FRM-IGNORE"
FIELD_GROUP = "X-FRM-GROUP"
FIELD_SNOOZE_UNTIL = "X-FRM-SNOOZE-UNTIL"


# ---------------------------------------------------------------------------
# Generic field access
# ---------------------------------------------------------------------------


def _is_preferred(line: ContentLine) -> bool:
    params = {k.upper(): v for k, v in line.params.items()}
    if "PREF" in params:
        return True
    return any(t.lower() == "pref" for t in params.get("TYPE", []))


def preferred_value(card: Component, field: str) -> str:
    """Return the preferred value of ``field``, or "" when absent.

    A value flagged PREF (or TYPE=pref) wins; otherwise the first one.
    """
    lines = card.contents.get(field.lower(), [])
    if not lines:
        return ""
    for line in lines:
        if _is_preferred(line):
            return _as_text(line.value)
    return _as_text(lines[0].value)


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ";".join(str(v) for v in value)
    return str(value)


def set_field(card: Component, field: str, value: str) -> None:
    """Replace every value of ``field`` with a single ``value``."""
    remove_field(card, field)
    card.add(field.lower()).value = value


def remove_field(card: Component, field: str) -> None:
    card.contents.pop(field.lower(), None)


# ---------------------------------------------------------------------------
# Standard vCard fields
# ---------------------------------------------------------------------------


def contact_name(card: Component) -> str:
    """Display name (FN) of a card."""
    return preferred_value(card, "FN").strip()


def extract_emails(card: Component) -> list[str]:
    """Every non-empty EMAIL value, in card order."""
    return [
        str(line.value).strip()
        for line in card.contents.get("email", [])
        if line.value and str(line.value).strip()
    ]


# ---------------------------------------------------------------------------
# Tracking fields
# ---------------------------------------------------------------------------


def get_frequency(card: Component) -> str:
    return preferred_value(card, FIELD_FREQUENCY).strip()


def set_frequency(card: Component, frequency: str) -> None:
    set_field(card, FIELD_FREQUENCY, frequency)


def remove_frequency(card: Component) -> None:
    remove_field(card, FIELD_FREQUENCY)


def is_ignored(card: Component) -> bool:
    """Only the exact string "true" marks a contact as ignored."""
    return preferred_value(card, FIELD_IGNORE) == "true"


def set_ignored(card: Component) -> None:
    set_field(card, FIELD_IGNORE, "true")


def remove_ignored(card: Component) -> None:
    remove_field(card, FIELD_IGNORE)


def get_group(card: Component) -> str:
    return preferred_value(card, FIELD_GROUP).strip()


def set_group(card: Component, group: str) -> None:
    set_field(card, FIELD_GROUP, group)


def remove_group(card: Component) -> None:
    remove_field(card, FIELD_GROUP)


def get_snooze_until(card: Component) -> date | None:
    """Snooze date, or None when absent or not a valid YYYY-MM-DD."""
    raw = preferred_value(card, FIELD_SNOOZE_UNTIL).strip()
    if not raw:
        return None
    try:
        return parse_day(raw)
    except InvalidDate:
        return None


def set_snooze_until(card: Component, until: date | datetime) -> None:
    if isinstance(until, datetime):
        until = until.astimezone(timezone.utc).date()
    set_field(card, FIELD_SNOOZE_UNTIL, until.isoformat())


def remove_snooze_until(card: Component) -> None:
    remove_field(card, FIELD_SNOOZE_UNTIL)


def snooze_deadline(card: Component) -> datetime | None:
    """Midnight UTC of the snooze date, or None."""
    until = get_snooze_until(card)
    if until is None:
        return None
    return datetime(until.year, until.month, until.day, tzinfo=timezone.utc)


def is_snoozed(card: Component, now: datetime) -> bool:
    """True while ``now`` is strictly before the snooze date."""
    deadline = snooze_deadline(card)
    return deadline is not None and now < deadline


# ---------------------------------------------------------------------------
# New cards
# ---------------------------------------------------------------------------


def new_card(
    name: str,
    email: str = "",
    phone: str = "",
    org: str = "",
    url: str = "",
) -> Component:
    """Build a vCard 3.0 for a new contact.

    The first word of ``name`` becomes the given name, the rest the family
    name.
    """
    card = vobject.vCard()
    card.add("version").value = "3.0"
    card.add("uid").value = str(uuid.uuid4())
    card.add("fn").value = name

    given, _, family = name.strip().partition(" ")
    card.add("n").value = vobject.vcard.Name(family=family, given=given)

    if email:
        card.add("email").value = email
    if phone:
        card.add("tel").value = phone
    if org:
        card.add("org").value = [org]
    if url:
        card.add("url").value = url
    return card
