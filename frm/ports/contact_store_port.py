"""Contact store port — abstract interface for a remote address book.

Core modules depend on this protocol, never on a specific protocol client.
"""

from __future__ import annotations

from typing import Protocol

from vobject.base import Component

from frm.data.models import ContactRecord


class ContactStoreError(Exception):
    """Raised when any contact store operation fails."""


class ContactStore(Protocol):
    """One remote address-book account.

    ``name`` identifies the account in log lines and error messages.
    """

    name: str

    async def list_contacts(self) -> list[ContactRecord]: ...

    async def put_contact(self, record: ContactRecord) -> ContactRecord: ...

    async def create_contact(self, card: Component) -> ContactRecord: ...
