"""Context port — abstract interface for contact enrichment sources.

A provider returns a few human-readable lines about a contact (recent
emails, for instance). Core modules depend on this protocol only.
"""

from __future__ import annotations

from typing import Protocol

from frm.data.models import ContactRecord


class ContextProviderError(Exception):
    """Raised when a context provider cannot produce context."""


class ContextProvider(Protocol):
    """Abstract enrichment interface used by the contact service."""

    name: str

    async def get_context(self, record: ContactRecord) -> list[str]: ...
