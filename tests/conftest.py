"""Shared test fixtures and configuration.

Provides vCard builders, an in-memory ContactStore fake, a ledger in a
temp directory and a fixed "now".
"""

import os

# Keep the developer's real ~/.frm and .env out of the tests
os.environ.setdefault("FRM_CONFIG_DIR", "/nonexistent/frm-tests")

import pytest
import vobject
from datetime import datetime, timezone

from frm.data.ledger import InteractionLedger
from frm.data.models import ContactRecord
from frm.ports.contact_store_port import ContactStoreError


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def build_card(name="Alice Smith", emails=(), **fields):
    """A vCard 3.0 with FN/N plus any X-FRM-* fields given as keyword args.

    ``frequency="2w"`` becomes X-FRM-FREQUENCY:2w, ``snooze_until=...``
    becomes X-FRM-SNOOZE-UNTIL, and so on.
    """
    card = vobject.vCard()
    card.add("version").value = "3.0"
    if name:
        card.add("fn").value = name
        given, _, family = name.partition(" ")
        card.add("n").value = vobject.vcard.Name(family=family, given=given)
    for email in emails:
        card.add("email").value = email
    for key, value in fields.items():
        card.add("x-frm-" + key.replace("_", "-")).value = value
    return card


def build_record(name="Alice Smith", path=None, etag='"1"', **kwargs):
    slug = (name or "unnamed").lower().replace(" ", "-")
    return ContactRecord(
        path=path or f"/dav/addressbooks/me/default/{slug}.vcf",
        card=build_card(name, **kwargs),
        etag=etag,
    )


class FakeStore:
    """In-memory ContactStore that records writes and can be told to fail."""

    def __init__(self, name="me@dav.example.com", records=None,
                 fail_list=False, fail_put=False):
        self.name = name
        self.records = list(records or [])
        self.fail_list = fail_list
        self.fail_put = fail_put
        self.list_calls = 0
        self.puts = []
        self.created = []

    async def list_contacts(self):
        self.list_calls += 1
        if self.fail_list:
            raise ContactStoreError(f"{self.name}: querying contacts: connection refused")
        return list(self.records)

    async def put_contact(self, record):
        if self.fail_put:
            raise ContactStoreError(f"{self.name}: updating contact: HTTP 500")
        self.puts.append(record)
        return record

    async def create_contact(self, card):
        if self.fail_put:
            raise ContactStoreError(f"{self.name}: creating contact: HTTP 500")
        record = ContactRecord(path=f"/dav/new-{len(self.created)}.vcf", card=card, etag='"new"')
        self.created.append(record)
        self.records.append(record)
        return record


@pytest.fixture
def now():
    """A fixed 'current time' in UTC."""
    return NOW


@pytest.fixture
def make_card():
    return build_card


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def make_store():
    return FakeStore


@pytest.fixture
def ledger(tmp_path):
    """Return an InteractionLedger backed by a temp file."""
    return InteractionLedger(tmp_path / "log.jsonl")
