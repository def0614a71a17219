"""Adapter factory — builds stores and providers from the account list."""

from __future__ import annotations

from frm.config import AppConfig
from frm.ports.contact_store_port import ContactStore
from frm.ports.context_port import ContextProvider


def create_contact_stores(
    config: AppConfig, timeout: float | None = None,
) -> list[ContactStore]:
    """One ContactStore per configured address-book service, in config order."""
    stores: list[ContactStore] = []
    for service in config.services:
        if service.type == "carddav":
            from frm.adapters.carddav_store import CardDAVContactStore

            stores.append(CardDAVContactStore(service, timeout=timeout))
    return stores


def create_context_providers(
    config: AppConfig, timeout: float | None = None,
) -> list[ContextProvider]:
    """One ContextProvider per configured enrichment service."""
    providers: list[ContextProvider] = []
    for service in config.services:
        if service.type == "jmap":
            from frm.adapters.jmap_context import JMAPContextProvider

            providers.append(JMAPContextProvider(service, timeout=timeout))
    return providers
