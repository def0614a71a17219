"""Tests for frm.data.ledger and the LogEntry model."""

import json
import pytest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from frm.data.ledger import InteractionLedger, last_contact_by_key
from frm.data.models import LogEntry


def _entry(contact="Alice Smith", days_ago=0, path=None, note=None, now=None):
    now = now or datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
    return LogEntry(contact=contact, path=path, time=now - timedelta(days=days_ago), note=note)


# ---------------------------------------------------------------------------
# LogEntry model
# ---------------------------------------------------------------------------


class TestLogEntry:
    def test_naive_time_becomes_utc(self):
        e = LogEntry(contact="A", time=datetime(2026, 1, 1, 9, 0))
        assert e.time.tzinfo == timezone.utc

    def test_offset_time_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))
        e = LogEntry(contact="A", time=datetime(2026, 1, 1, 9, 0, tzinfo=tz))
        assert e.time == datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc)

    def test_empty_strings_become_none(self):
        e = LogEntry(contact="A", time=datetime(2026, 1, 1), path="", note="")
        assert e.path is None
        assert e.note is None

    def test_identity_key_prefers_path(self):
        assert _entry(path="/a.vcf").identity_key == "/a.vcf"
        assert _entry(contact=" Alice SMITH ").identity_key == "alice smith"

    def test_missing_contact_is_rejected(self):
        with pytest.raises(ValidationError):
            LogEntry.model_validate({"time": "2026-01-01T00:00:00Z"})

    def test_time_past_max_utc_is_rejected(self):
        with pytest.raises(ValidationError, match="out of range"):
            LogEntry(
                contact="B",
                time=datetime(9999, 12, 31, 23, tzinfo=timezone(timedelta(hours=-5))),
            )

    def test_frozen(self):
        e = _entry()
        with pytest.raises(ValidationError):
            e.contact = "Bob"


# ---------------------------------------------------------------------------
# Append / read
# ---------------------------------------------------------------------------


class TestInteractionLedger:
    def test_missing_file_reads_empty(self, ledger):
        assert ledger.read_all() == []

    def test_append_writes_one_line_per_entry(self, ledger):
        ledger.append(_entry(note="coffee"))
        ledger.append(_entry(contact="Bob", path="/bob.vcf"))

        lines = ledger.path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["contact"] == "Alice Smith"
        assert first["note"] == "coffee"
        assert "path" not in first
        assert json.loads(lines[1])["path"] == "/bob.vcf"

    def test_append_creates_parent_directory(self, tmp_path):
        ledger = InteractionLedger.in_config_dir(tmp_path / "fresh")
        ledger.append(_entry())
        assert (tmp_path / "fresh" / "log.jsonl").exists()

    def test_round_trip_preserves_fields(self, ledger):
        original = _entry(path="/a.vcf", note="lunch")
        ledger.append(original)
        assert ledger.read_all() == [original]

    def test_malformed_lines_are_skipped(self, ledger):
        ledger.append(_entry(contact="Alice"))
        with ledger.path.open("a") as fh:
            fh.write("not json\n")
            fh.write('{"contact": "NoTime"}\n')
            fh.write("\n")
        ledger.append(_entry(contact="Bob"))

        assert [e.contact for e in ledger.read_all()] == ["Alice", "Bob"]

    def test_time_past_max_utc_is_skipped(self, ledger):
        with ledger.path.open("w") as fh:
            fh.write('{"contact": "A", "time": "2026-03-01T10:00:00Z"}\n')
            fh.write('{"contact": "B", "time": "9999-12-31T23:00:00-05:00"}\n')

        assert [e.contact for e in ledger.read_all()] == ["A"]

    def test_entries_for_matches_name_case_insensitively(self, ledger):
        ledger.append(_entry(contact="Alice Smith"))
        ledger.append(_entry(contact="alice smith"))
        ledger.append(_entry(contact="Bob"))
        assert len(ledger.entries_for("ALICE SMITH")) == 2

    def test_entries_for_matches_path(self, ledger):
        ledger.append(_entry(contact="Alice Old-Name", path="/a.vcf"))
        assert len(ledger.entries_for("Alice New-Name", path="/a.vcf")) == 1

    def test_interaction_counts(self, ledger):
        for name in ("Alice", "Bob", "Alice"):
            ledger.append(_entry(contact=name))
        assert ledger.interaction_counts() == {"Alice": 2, "Bob": 1}


# ---------------------------------------------------------------------------
# last_contact_by_key
# ---------------------------------------------------------------------------


class TestLastContactByKey:
    def test_latest_time_wins_regardless_of_order(self):
        newer = _entry(days_ago=1)
        older = _entry(days_ago=10)
        result = last_contact_by_key([newer, older])
        assert result == {"alice smith": newer.time}

    def test_path_and_name_keys_are_separate(self):
        by_path = _entry(path="/a.vcf", days_ago=3)
        by_name = _entry(days_ago=1)
        result = last_contact_by_key([by_path, by_name])
        assert result["/a.vcf"] == by_path.time
        assert result["alice smith"] == by_name.time
