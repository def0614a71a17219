"""Duration and date parsing — pure functions, no I/O.

Durations are compact strings like "3d", "2w" or "1m". A month is a fixed
30 days, not a calendar month.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

from frm.core.errors import InvalidDate, InvalidDuration

_UNIT_DAYS = {"d": 1, "w": 7, "m": 30}
_NUMBER_RE = re.compile(r"-?[0-9]+")
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_duration(text: str) -> timedelta:
    """Parse "<integer><unit>" where unit is d, w or m.

    Raises InvalidDuration on anything else.
    """
    s = text.strip()
    if len(s) < 2:
        raise InvalidDuration(f"invalid duration {text!r}: too short")

    suffix, number = s[-1], s[:-1]
    if suffix not in _UNIT_DAYS:
        raise InvalidDuration(
            f"invalid duration {text!r}: unknown suffix {suffix!r} (use d, w, or m)"
        )
    if not _NUMBER_RE.fullmatch(number):
        raise InvalidDuration(f"invalid duration {text!r}: {number!r} is not a number")

    try:
        return timedelta(days=int(number) * _UNIT_DAYS[suffix])
    except OverflowError as exc:
        raise InvalidDuration(f"invalid duration {text!r}: out of range") from exc


def parse_frequency(text: str) -> timedelta:
    """Parse a contact frequency; it must be longer than zero."""
    interval = parse_duration(text)
    if interval <= timedelta(0):
        raise InvalidDuration(f"invalid frequency {text!r}: must be longer than zero")
    return interval


def parse_day(text: str) -> date:
    """Parse a strict YYYY-MM-DD calendar day."""
    s = text.strip()
    if not _DATE_RE.fullmatch(s):
        raise InvalidDate(f"invalid date {text!r}: expected YYYY-MM-DD")
    try:
        return date.fromisoformat(s)
    except ValueError as exc:
        raise InvalidDate(f"invalid date {text!r}: expected YYYY-MM-DD") from exc


def parse_calendar_date(text: str) -> datetime:
    """Parse YYYY-MM-DD as midnight UTC."""
    d = parse_day(text)
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def parse_absolute_or_relative_date(text: str, now: datetime) -> datetime:
    """Parse a point in the past or an absolute date.

    "-2w" means two weeks before ``now``; anything else must be YYYY-MM-DD.
    """
    s = text.strip()
    if s.startswith("-"):
        try:
            return now - parse_duration(s[1:])
        except InvalidDuration as exc:
            raise InvalidDate(f"invalid date {text!r}: {exc}") from exc
        except OverflowError as exc:
            raise InvalidDate(f"invalid date {text!r}: out of range") from exc
    return parse_calendar_date(s)


def parse_until(text: str, now: datetime) -> datetime:
    """Parse a snooze target: absolute date first, then duration from now.

    "2026-04-01" is taken literally; a bare "2m" means two months from now.
    """
    try:
        return parse_calendar_date(text)
    except InvalidDate:
        pass
    try:
        return now + parse_duration(text)
    except InvalidDuration as exc:
        raise InvalidDate(
            f"invalid date {text!r}: use YYYY-MM-DD or a duration like 2w"
        ) from exc
    except OverflowError as exc:
        raise InvalidDate(f"invalid date {text!r}: out of range") from exc


def format_ago(delta: timedelta) -> str:
    """Render an elapsed time as "5d", "3w" or "2m"."""
    days = int(delta.total_seconds() // 86400)
    if days < 7:
        return f"{days}d"
    if days < 30:
        return f"{days // 7}w"
    return f"{days // 30}m"


def whole_days(delta: timedelta) -> int:
    """Signed number of whole days in ``delta``, truncated toward zero."""
    return int(delta.total_seconds() / 86400)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
