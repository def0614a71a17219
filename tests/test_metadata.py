"""Tests for frm.core.metadata — the reserved X-FRM-* vCard fields."""

import vobject
from datetime import date, datetime, timezone

from frm.core import metadata


_CARD_TEXT = (
    "BEGIN:VCARD\r\n"
    "VERSION:3.0\r\n"
    "FN:Bob Jones\r\n"
    "N:Jones;Bob;;;\r\n"
    "EMAIL;TYPE=INTERNET:bob@work.example\r\n"
    "EMAIL;TYPE=pref:bob@home.example\r\n"
    "X-FRM-FREQUENCY:2w\r\n"
    "X-FRM-GROUP:climbing\r\n"
    "END:VCARD\r\n"
)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


class TestReadFields:
    def test_parsed_card(self):
        card = vobject.readOne(_CARD_TEXT)
        assert metadata.contact_name(card) == "Bob Jones"
        assert metadata.get_frequency(card) == "2w"
        assert metadata.get_group(card) == "climbing"
        assert metadata.is_ignored(card) is False
        assert metadata.get_snooze_until(card) is None

    def test_preferred_value_wins(self):
        card = vobject.readOne(_CARD_TEXT)
        assert metadata.preferred_value(card, "EMAIL") == "bob@home.example"

    def test_first_value_without_pref(self, make_card):
        card = make_card(emails=["a@example.com", "b@example.com"])
        assert metadata.preferred_value(card, "EMAIL") == "a@example.com"

    def test_missing_field_is_empty(self, make_card):
        assert metadata.preferred_value(make_card(), "X-FRM-GROUP") == ""

    def test_extract_emails(self):
        card = vobject.readOne(_CARD_TEXT)
        assert metadata.extract_emails(card) == ["bob@work.example", "bob@home.example"]

    def test_only_exact_true_is_ignored(self, make_card):
        assert metadata.is_ignored(make_card(ignore="true")) is True
        assert metadata.is_ignored(make_card(ignore="TRUE")) is False
        assert metadata.is_ignored(make_card(ignore="yes")) is False

    def test_invalid_snooze_date_is_none(self, make_card):
        assert metadata.get_snooze_until(make_card(snooze_until="soon")) is None

    def test_snooze_date_must_be_dashed(self, make_card):
        assert metadata.get_snooze_until(make_card(snooze_until="20260401")) is None
        assert metadata.get_snooze_until(make_card(snooze_until="2026-W14-3")) is None
        assert metadata.get_snooze_until(make_card(snooze_until="2026-04-01")) == date(2026, 4, 1)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


class TestWriteFields:
    def test_set_replaces_existing_value(self, make_card):
        card = make_card(frequency="2w")
        metadata.set_frequency(card, "1m")
        assert metadata.get_frequency(card) == "1m"
        assert len(card.contents["x-frm-frequency"]) == 1

    def test_fields_are_independent(self, make_card):
        card = make_card(frequency="2w", group="family")
        metadata.set_ignored(card)
        metadata.set_snooze_until(card, date(2026, 4, 1))
        metadata.remove_group(card)

        assert metadata.get_frequency(card) == "2w"
        assert metadata.is_ignored(card) is True
        assert metadata.get_snooze_until(card) == date(2026, 4, 1)
        assert metadata.get_group(card) == ""

    def test_remove_absent_field_is_noop(self, make_card):
        card = make_card()
        metadata.remove_frequency(card)
        assert metadata.get_frequency(card) == ""

    def test_snooze_from_datetime_uses_utc_date(self, make_card):
        card = make_card()
        metadata.set_snooze_until(card, datetime(2026, 4, 1, 23, 30, tzinfo=timezone.utc))
        assert metadata.preferred_value(card, metadata.FIELD_SNOOZE_UNTIL) == "2026-04-01"

    def test_written_fields_survive_serialization(self, make_card):
        card = make_card()
        metadata.set_frequency(card, "3m")
        metadata.set_group(card, "school")
        reparsed = vobject.readOne(card.serialize(validate=False))
        assert metadata.get_frequency(reparsed) == "3m"
        assert metadata.get_group(reparsed) == "school"


# ---------------------------------------------------------------------------
# Snooze semantics
# ---------------------------------------------------------------------------


class TestSnooze:
    def test_snoozed_before_deadline(self, make_card, now):
        card = make_card(snooze_until="2026-03-16")
        assert metadata.is_snoozed(card, now) is True

    def test_not_snoozed_on_the_day(self, make_card, now):
        card = make_card(snooze_until="2026-03-15")
        assert metadata.is_snoozed(card, now) is False

    def test_deadline_is_midnight_utc(self, make_card):
        card = make_card(snooze_until="2026-03-16")
        assert metadata.snooze_deadline(card) == datetime(2026, 3, 16, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# new_card
# ---------------------------------------------------------------------------


class TestNewCard:
    def test_minimal(self):
        card = metadata.new_card("Carol Danvers")
        assert metadata.contact_name(card) == "Carol Danvers"
        assert card.n.value.given == "Carol"
        assert card.n.value.family == "Danvers"
        assert card.uid.value
        assert "email" not in card.contents

    def test_optional_fields(self):
        card = metadata.new_card(
            "Dan", email="dan@example.com", phone="+1 555 0100",
            org="Acme", url="https://dan.example.com",
        )
        assert metadata.extract_emails(card) == ["dan@example.com"]
        assert card.tel.value == "+1 555 0100"
        assert card.org.value == ["Acme"]
        assert card.url.value == "https://dan.example.com"
        assert "BEGIN:VCARD" in card.serialize(validate=False)
