"""CardDAV contact store adapter — implements ContactStore for CardDAV servers.

Supports Fastmail, iCloud, Nextcloud, Radicale and any RFC 6352 server.
Uses the caldav library's DAVClient (sync) for principal discovery, PROPFIND,
REPORT and PUT, wrapped with asyncio.to_thread for async compatibility.
Multistatus bodies are parsed by caldav's DAVResponse; vobject reads the cards.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from urllib.parse import urljoin, urlparse

import caldav
import vobject
from vobject.base import Component

from frm.config import ServiceConfig
from frm.data.models import ContactRecord
from frm.ports.contact_store_port import ContactStoreError

logger = logging.getLogger(__name__)

_HREF = "{DAV:}href"
_RESOURCETYPE = "{DAV:}resourcetype"
_GETETAG = "{DAV:}getetag"
_HOME_SET = "{urn:ietf:params:xml:ns:carddav}addressbook-home-set"
_ADDRESSBOOK = "{urn:ietf:params:xml:ns:carddav}addressbook"
_ADDRESS_DATA = "{urn:ietf:params:xml:ns:carddav}address-data"

_PROPFIND_HOME_SET = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">'
    "<d:prop><card:addressbook-home-set/></d:prop>"
    "</d:propfind>"
)

_PROPFIND_BOOKS = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:">'
    "<d:prop><d:resourcetype/><d:displayname/></d:prop>"
    "</d:propfind>"
)

_REPORT_ALL_CARDS = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<card:addressbook-query xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">'
    "<d:prop><d:getetag/><card:address-data/></d:prop>"
    "<card:filter/>"
    "</card:addressbook-query>"
)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _check(response, what: str):
    """Raise ContactStoreError when a DAV response carries an HTTP error."""
    if response.status >= 400:
        raise ContactStoreError(f"{what} returned HTTP {response.status}")
    return response


def _text_of(element) -> str:
    if element is None:
        return ""
    return (element.text or "").strip()


def _child_href(element) -> str:
    """The <d:href> nested in a property such as addressbook-home-set."""
    if element is None:
        return ""
    return (element.findtext(_HREF) or "").strip()


def _parse_card(href: str, etag: str, data: str) -> ContactRecord | None:
    """Parse one address-data payload; None when it is not a usable vCard."""
    try:
        card = vobject.readOne(data)
    except Exception as exc:
        logger.warning("Skipping unparseable vCard at %s: %s", href, exc)
        return None
    if card.name.upper() != "VCARD":
        logger.warning("Skipping non-vCard object at %s", href)
        return None
    return ContactRecord(path=href, card=card, etag=etag or None)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class CardDAVContactStore:
    """CardDAV implementation of ContactStore.

    The address book is discovered on first use (principal, then home set,
    then the first addressbook collection) and remembered for the lifetime
    of the instance, which is one command invocation.
    """

    def __init__(self, service: ServiceConfig, timeout: float | None = None) -> None:
        self.name = service.display_name
        self._endpoint = service.endpoint.rstrip("/") + "/"
        self._username = service.username
        self._password = service.password
        self._timeout = timeout
        self._client: caldav.DAVClient | None = None
        self._book_url: str | None = None

    # -- sync helpers (run in a worker thread) -----------------------------

    def _get_client(self) -> caldav.DAVClient:
        if self._client is None:
            self._client = caldav.DAVClient(
                url=self._endpoint,
                username=self._username,
                password=self._password,
                timeout=self._timeout,
            )
        return self._client

    def _find_address_book(self) -> str:
        """Discover the URL of the first address book collection."""
        if self._book_url is not None:
            return self._book_url

        client = self._get_client()
        principal_url = str(client.principal().url)

        response = _check(
            client.propfind(principal_url, _PROPFIND_HOME_SET, depth=0),
            f"PROPFIND {urlparse(principal_url).path}",
        )
        home = ""
        for props in response.find_objects_and_props().values():
            home = _child_href(props.get(_HOME_SET))
            if home:
                break
        if not home:
            raise ContactStoreError("finding address book home set: server did not report one")

        home_url = urljoin(principal_url, home)
        response = _check(
            client.propfind(home_url, _PROPFIND_BOOKS, depth=1),
            f"PROPFIND {urlparse(home_url).path}",
        )
        for href, props in response.find_objects_and_props().items():
            resourcetype = props.get(_RESOURCETYPE)
            if resourcetype is not None and resourcetype.find(_ADDRESSBOOK) is not None:
                self._book_url = urljoin(home_url, href)
                logger.debug("Using address book %s for %s", self._book_url, self.name)
                return self._book_url

        raise ContactStoreError("no address books found")

    def _list_contacts_sync(self) -> list[ContactRecord]:
        book_url = self._find_address_book()
        response = _check(
            self._get_client().report(book_url, _REPORT_ALL_CARDS, depth=1),
            f"REPORT {urlparse(book_url).path}",
        )

        records: list[ContactRecord] = []
        for href, props in response.find_objects_and_props().items():
            data = _text_of(props.get(_ADDRESS_DATA))
            if not data:
                continue
            record = _parse_card(href, _text_of(props.get(_GETETAG)), data)
            if record is not None:
                records.append(record)
        return records

    def _put_sync(self, path: str, card: Component, headers: dict[str, str]) -> str | None:
        body = card.serialize(validate=False)
        headers = {"Content-Type": "text/vcard; charset=utf-8", **headers}
        response = _check(
            self._get_client().put(urljoin(self._endpoint, path), body, headers),
            f"PUT {path}",
        )
        return response.headers.get("ETag")

    # -- ContactStore ------------------------------------------------------

    async def list_contacts(self) -> list[ContactRecord]:
        try:
            records = await asyncio.to_thread(self._list_contacts_sync)
            logger.info("Fetched %d contact(s) from %s", len(records), self.name)
            return records
        except ContactStoreError as exc:
            raise ContactStoreError(f"{self.name}: querying contacts: {exc}") from exc
        except Exception as exc:
            logger.error("CardDAV error (list_contacts, %s): %s", self.name, exc)
            raise ContactStoreError(f"{self.name}: querying contacts: {exc}") from exc

    async def put_contact(self, record: ContactRecord) -> ContactRecord:
        headers = {"If-Match": record.etag} if record.etag else {}
        try:
            etag = await asyncio.to_thread(self._put_sync, record.path, record.card, headers)
        except ContactStoreError as exc:
            raise ContactStoreError(f"{self.name}: updating contact: {exc}") from exc
        except Exception as exc:
            logger.error("CardDAV error (put_contact, %s): %s", self.name, exc)
            raise ContactStoreError(f"{self.name}: updating contact: {exc}") from exc

        record.etag = etag or None
        logger.info("Updated contact %s in %s", record.path, self.name)
        return record

    async def create_contact(self, card: Component) -> ContactRecord:
        try:
            book_url = await asyncio.to_thread(self._find_address_book)
            path = urlparse(book_url).path.rstrip("/") + f"/{uuid.uuid4()}.vcf"
            etag = await asyncio.to_thread(
                self._put_sync, path, card, {"If-None-Match": "*"},
            )
        except ContactStoreError as exc:
            raise ContactStoreError(f"{self.name}: creating contact: {exc}") from exc
        except Exception as exc:
            logger.error("CardDAV error (create_contact, %s): %s", self.name, exc)
            raise ContactStoreError(f"{self.name}: creating contact: {exc}") from exc

        logger.info("Created contact %s in %s", path, self.name)
        return ContactRecord(path=path, card=card, etag=etag or None)
