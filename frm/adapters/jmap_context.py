"""JMAP context provider — recent emails exchanged with a contact.

Authenticates against the JMAP session endpoint with a bearer token, then
runs a single API request: Email/query (from or to any of the contact's
addresses, newest first) chained into Email/get through a result reference.

Contacts without an email address produce no lines and no request.
"""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from frm.config import ServiceConfig
from frm.core.metadata import extract_emails
from frm.data.models import ContactRecord
from frm.ports.context_port import ContextProviderError

logger = logging.getLogger(__name__)

_CORE_URI = "urn:ietf:params:jmap:core"
_MAIL_URI = "urn:ietf:params:jmap:mail"
_TIMEOUT_SECONDS = 10


def build_email_filter(addresses: list[str]) -> dict:
    """OR of from/to conditions over every address."""
    conditions: list[dict] = []
    for addr in addresses:
        conditions.append({"from": addr})
        conditions.append({"to": addr})
    return {"operator": "OR", "conditions": conditions}


def _format_line(message: dict) -> str:
    subject = message.get("subject") or "(no subject)"
    received = message.get("receivedAt") or ""
    day = ""
    if received:
        try:
            day = datetime.fromisoformat(received.replace("Z", "+00:00")).strftime("%Y-%m-%d")
        except ValueError:
            day = received[:10]
    return f"  {subject} ({day})"


class JMAPContextProvider:
    """Recent-email context via JMAP."""

    name = "Recent emails"

    def __init__(self, service: ServiceConfig, timeout: float | None = None) -> None:
        self._session_endpoint = service.session_endpoint
        self._token = service.token
        self._max_results = service.max_results if service.max_results > 0 else 3
        self._timeout = timeout or _TIMEOUT_SECONDS
        self._session: tuple[str, str] | None = None  # (api_url, account_id)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _authenticate(self, client: httpx.AsyncClient) -> tuple[str, str]:
        if self._session is not None:
            return self._session

        resp = await client.get(self._session_endpoint, headers=self._headers)
        resp.raise_for_status()
        session = resp.json()

        account_id = session.get("primaryAccounts", {}).get(_MAIL_URI)
        if not account_id:
            raise ContextProviderError("no mail account found")
        api_url = session.get("apiUrl")
        if not api_url:
            raise ContextProviderError("session has no apiUrl")

        self._session = (api_url, account_id)
        return self._session

    async def get_context(self, record: ContactRecord) -> list[str]:
        addresses = extract_emails(record.card)
        if not addresses:
            return []

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                api_url, account_id = await self._authenticate(client)
                request = {
                    "using": [_CORE_URI, _MAIL_URI],
                    "methodCalls": [
                        ["Email/query", {
                            "accountId": account_id,
                            "filter": build_email_filter(addresses),
                            "sort": [{"property": "receivedAt", "isAscending": False}],
                            "limit": self._max_results,
                        }, "0"],
                        ["Email/get", {
                            "accountId": account_id,
                            "#ids": {"resultOf": "0", "name": "Email/query", "path": "/ids"},
                            "properties": ["subject", "receivedAt"],
                        }, "1"],
                    ],
                }
                resp = await client.post(api_url, json=request, headers=self._headers)
                resp.raise_for_status()
                data = resp.json()
        except ContextProviderError:
            raise
        except Exception as exc:
            logger.error("JMAP error (get_context) for %s: %s", record.name, exc)
            raise ContextProviderError(f"querying emails: {exc}") from exc

        lines: list[str] = []
        for method, args, _call_id in data.get("methodResponses", []):
            if method == "error":
                raise ContextProviderError(f"querying emails: {args.get('type', 'unknown error')}")
            if method != "Email/get":
                continue
            for message in args.get("list", []):
                lines.append(_format_line(message))
        logger.debug("JMAP returned %d message(s) for %s", len(lines), record.name)
        return lines
