"""Multi-account aggregator — many address books, one logical pool.

Two failure policies, on purpose:

* name resolution (single-contact commands) skips accounts that cannot be
  reached and keeps looking, so one dead server does not block the rest;
* bulk pooling (list, check, stats, spread) fails as soon as any account
  fails, so a dashboard never silently under-reports.

Writes always go back to the account a record was fetched from. There is no
cross-account transaction: a multi-account write that fails part way leaves
the earlier writes in place and reports them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from vobject.base import Component

from frm.core.errors import AccountUnavailable, NotFound, PartialWriteFailure
from frm.data.models import AccountBinding, ContactMatch, ContactRecord
from frm.ports.contact_store_port import ContactStore, ContactStoreError

logger = logging.getLogger(__name__)


def _same_name(record: ContactRecord, name_lower: str) -> bool:
    return record.name.lower() == name_lower


class ContactAggregator:
    """Fans reads and name lookups out across every configured account."""

    def __init__(self, stores: Sequence[ContactStore]) -> None:
        self._stores = list(stores)

    @property
    def stores(self) -> list[ContactStore]:
        return list(self._stores)

    # ------------------------------------------------------------------
    # Name resolution (tolerant)
    # ------------------------------------------------------------------

    async def resolve_contact(self, name: str) -> ContactMatch:
        """First case-insensitive exact display-name match across accounts.

        Accounts are tried in configuration order and the scan stops at the
        first hit. Unreachable accounts are logged and skipped.
        """
        name_lower = name.strip().lower()
        for store in self._stores:
            try:
                records = await store.list_contacts()
            except ContactStoreError as exc:
                logger.warning("Skipping account %s while resolving '%s': %s", store.name, name, exc)
                continue

            for record in records:
                if _same_name(record, name_lower):
                    logger.debug("Resolved '%s' to %s in %s", name, record.path, store.name)
                    return ContactMatch(record=record, store=store)

        raise NotFound(name)

    async def resolve_all_matches(self, name: str) -> list[ContactMatch]:
        """Every record named ``name`` in every reachable account.

        A person may exist as a duplicate card in several address books.
        Raises NotFound only when no account has a match.
        """
        name_lower = name.strip().lower()
        results = await asyncio.gather(
            *(store.list_contacts() for store in self._stores),
            return_exceptions=True,
        )

        matches: list[ContactMatch] = []
        for store, result in zip(self._stores, results):
            if isinstance(result, ContactStoreError):
                logger.warning("Skipping account %s while resolving '%s': %s", store.name, name, result)
                continue
            if isinstance(result, BaseException):
                raise result
            matches.extend(
                ContactMatch(record=record, store=store)
                for record in result
                if _same_name(record, name_lower)
            )

        if not matches:
            raise NotFound(name)
        logger.debug("Resolved '%s' to %d record(s)", name, len(matches))
        return matches

    # ------------------------------------------------------------------
    # Bulk pooling (fail fast)
    # ------------------------------------------------------------------

    async def pool_all(self) -> list[AccountBinding]:
        """Full contact list of every account.

        Accounts are listed concurrently; if any of them fails the whole
        call fails with AccountUnavailable naming the first failing account
        in configuration order.
        """
        results = await asyncio.gather(
            *(store.list_contacts() for store in self._stores),
            return_exceptions=True,
        )

        bindings: list[AccountBinding] = []
        for store, result in zip(self._stores, results):
            if isinstance(result, ContactStoreError):
                logger.error("Account %s unavailable: %s", store.name, result)
                raise AccountUnavailable(store.name, result) from result
            if isinstance(result, BaseException):
                raise result
            bindings.append(AccountBinding(store=store, contacts=list(result)))

        logger.info(
            "Pooled %d contact(s) from %d account(s)",
            sum(len(b.contacts) for b in bindings), len(bindings),
        )
        return bindings

    async def all_matches(self) -> list[ContactMatch]:
        """Pooled contacts flattened into matches (fails like pool_all)."""
        return [
            ContactMatch(record=record, store=binding.store)
            for binding in await self.pool_all()
            for record in binding.contacts
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_contact(self, match: ContactMatch) -> None:
        """Write one record back to the account it came from."""
        try:
            await match.store.put_contact(match.record)
        except ContactStoreError as exc:
            logger.error("Updating %s in %s failed: %s", match.record.name, match.account, exc)
            raise AccountUnavailable(match.account, exc) from exc

    async def apply_to_all(
        self,
        matches: Sequence[ContactMatch],
        mutate: Callable[[ContactRecord], bool],
    ) -> int:
        """Mutate every match and write back the ones that changed.

        ``mutate`` returns True when it modified the record. Writes run one
        after another; the first failure raises PartialWriteFailure naming
        the accounts already written. Returns the number of writes.
        """
        applied: list[str] = []
        for match in matches:
            if not mutate(match.record):
                continue
            try:
                await match.store.put_contact(match.record)
            except ContactStoreError as exc:
                logger.error(
                    "Write to %s failed after %d successful write(s): %s",
                    match.account, len(applied), exc,
                )
                raise PartialWriteFailure(applied, match.account, exc) from exc
            applied.append(match.account)
        return len(applied)

    async def add_contact(self, card: Component) -> ContactMatch:
        """Create a new record in the first configured account."""
        if not self._stores:
            raise AccountUnavailable("(none)", ContactStoreError("no CardDAV services configured"))
        store = self._stores[0]
        try:
            record = await store.create_contact(card)
        except ContactStoreError as exc:
            logger.error("Creating contact in %s failed: %s", store.name, exc)
            raise AccountUnavailable(store.name, exc) from exc
        return ContactMatch(record=record, store=store)
