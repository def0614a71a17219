"""
frm — Data Models.

Contacts live in remote address books and are only borrowed for the length of
one command. The interaction log is the one piece of state frm owns locally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator
from vobject.base import Component

from frm.core.metadata import contact_name

if TYPE_CHECKING:
    from frm.ports.contact_store_port import ContactStore


@dataclass
class ContactRecord:
    """A vCard fetched from a remote store.

    ``path`` is the server href of the card; it stays stable when the
    contact is renamed, so it is the preferred identity key.
    """

    path: str
    card: Component
    etag: str | None = None

    @property
    def name(self) -> str:
        return contact_name(self.card)


@dataclass
class ContactMatch:
    """A record together with the account it was fetched from.

    All writes go through the match so they land in the right account.
    """

    record: ContactRecord
    store: ContactStore

    @property
    def account(self) -> str:
        return self.store.name


@dataclass
class AccountBinding:
    """One account and the contacts most recently listed from it."""

    store: ContactStore
    contacts: list[ContactRecord] = field(default_factory=list)

    @property
    def account(self) -> str:
        return self.store.name


# ---------------------------------------------------------------------------
# Interaction log contract — one JSON object per line of log.jsonl
# ---------------------------------------------------------------------------


class LogEntry(BaseModel):
    """One logged interaction. Immutable once written.

    JSON example:
    {
        "contact": "Alice Smith",
        "path": "/dav/addressbooks/user/default/alice.vcf",
        "time": "2026-03-01T18:30:00Z",
        "note": "coffee"
    }
    """

    model_config = ConfigDict(frozen=True)

    contact: str
    path: str | None = None
    time: datetime
    note: str | None = None

    @field_validator("time")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        try:
            return v.astimezone(timezone.utc)
        except OverflowError as exc:
            raise ValueError(f"time out of range: {v.isoformat()}") from exc

    @field_validator("path", "note", mode="before")
    @classmethod
    def empty_as_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v:
            return None
        return v

    @property
    def identity_key(self) -> str:
        """Path when known, otherwise the lowercased contact name."""
        return self.path or self.contact.strip().lower()
