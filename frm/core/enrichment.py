"""Context enrichment — gathers extra lines about a contact from providers."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from frm.data.models import ContactRecord
from frm.ports.context_port import ContextProvider, ContextProviderError

logger = logging.getLogger(__name__)


async def collect_context(
    providers: Sequence[ContextProvider], record: ContactRecord,
) -> list[str]:
    """Lines from every provider, each block headed by the provider name.

    A failing provider is logged and skipped; the others still contribute.
    """
    lines: list[str] = []
    for provider in providers:
        try:
            provided = await provider.get_context(record)
        except ContextProviderError as exc:
            logger.warning("%s: %s", provider.name, exc)
            continue
        if not provided:
            continue
        lines.append(f"{provider.name}:")
        lines.extend(provided)
    return lines
