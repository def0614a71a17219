"""Tests for frm.adapters.jmap_context — recent emails via JMAP."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from frm.adapters.jmap_context import JMAPContextProvider, _format_line, build_email_filter
from frm.config import ServiceConfig
from frm.ports.context_port import ContextProviderError


_PATCH_CLIENT = "frm.adapters.jmap_context.httpx.AsyncClient"

_SESSION = {
    "apiUrl": "https://api.example.com/jmap/api/",
    "primaryAccounts": {"urn:ietf:params:jmap:mail": "acc-1"},
}


def _json_response(data):
    resp = MagicMock()
    resp.json.return_value = data
    resp.raise_for_status = MagicMock()
    return resp


def _mock_client(session=_SESSION, api=None):
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.get = AsyncMock(return_value=_json_response(session))
    client.post = AsyncMock(return_value=_json_response(api or {"methodResponses": []}))
    return client


def _provider(max_results=3):
    return JMAPContextProvider(ServiceConfig(
        type="jmap",
        session_endpoint="https://api.example.com/jmap/session",
        token="secret",
        max_results=max_results,
    ))


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestBuildEmailFilter:
    def test_single_address(self):
        assert build_email_filter(["a@x.com"]) == {
            "operator": "OR",
            "conditions": [{"from": "a@x.com"}, {"to": "a@x.com"}],
        }

    def test_multiple_addresses(self):
        f = build_email_filter(["a@x.com", "b@y.com"])
        assert f["operator"] == "OR"
        assert len(f["conditions"]) == 4


class TestFormatLine:
    def test_subject_and_date(self):
        line = _format_line({"subject": "Dinner?", "receivedAt": "2026-03-01T18:30:00Z"})
        assert line == "  Dinner? (2026-03-01)"

    def test_missing_subject(self):
        assert _format_line({"receivedAt": "2026-03-01T18:30:00Z"}).startswith("  (no subject)")


# ---------------------------------------------------------------------------
# get_context
# ---------------------------------------------------------------------------


class TestGetContext:
    @pytest.mark.asyncio
    async def test_no_email_makes_no_request(self, make_record):
        with patch(_PATCH_CLIENT) as client_cls:
            lines = await _provider().get_context(make_record("Alice"))
        assert lines == []
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_returns_formatted_lines(self, make_record):
        api = {"methodResponses": [
            ["Email/query", {"ids": ["m1", "m2"]}, "0"],
            ["Email/get", {"list": [
                {"subject": "Dinner?", "receivedAt": "2026-03-01T18:30:00Z"},
                {"subject": "Photos", "receivedAt": "2026-02-20T09:00:00Z"},
            ]}, "1"],
        ]}
        client = _mock_client(api=api)
        with patch(_PATCH_CLIENT, return_value=client):
            lines = await _provider().get_context(make_record("Alice", emails=["alice@x.com"]))

        assert lines == ["  Dinner? (2026-03-01)", "  Photos (2026-02-20)"]

        headers = client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

        url = client.post.call_args.args[0]
        body = client.post.call_args.kwargs["json"]
        assert url == "https://api.example.com/jmap/api/"
        query, get = body["methodCalls"]
        assert query[0] == "Email/query"
        assert query[1]["accountId"] == "acc-1"
        assert query[1]["limit"] == 3
        assert query[1]["sort"] == [{"property": "receivedAt", "isAscending": False}]
        assert get[0] == "Email/get"
        assert get[1]["#ids"] == {"resultOf": "0", "name": "Email/query", "path": "/ids"}

    @pytest.mark.asyncio
    async def test_no_mail_account(self, make_record):
        client = _mock_client(session={"apiUrl": "https://api", "primaryAccounts": {}})
        with patch(_PATCH_CLIENT, return_value=client):
            with pytest.raises(ContextProviderError, match="no mail account"):
                await _provider().get_context(make_record("Alice", emails=["a@x.com"]))

    @pytest.mark.asyncio
    async def test_method_error(self, make_record):
        api = {"methodResponses": [["error", {"type": "invalidArguments"}, "0"]]}
        with patch(_PATCH_CLIENT, return_value=_mock_client(api=api)):
            with pytest.raises(ContextProviderError, match="invalidArguments"):
                await _provider().get_context(make_record("Alice", emails=["a@x.com"]))

    @pytest.mark.asyncio
    async def test_http_failure_is_wrapped(self, make_record):
        client = _mock_client()
        client.get = AsyncMock(side_effect=RuntimeError("connection reset"))
        with patch(_PATCH_CLIENT, return_value=client):
            with pytest.raises(ContextProviderError, match="connection reset"):
                await _provider().get_context(make_record("Alice", emails=["a@x.com"]))

    @pytest.mark.asyncio
    async def test_session_is_reused(self, make_record):
        client = _mock_client()
        provider = _provider()
        with patch(_PATCH_CLIENT, return_value=client):
            await provider.get_context(make_record("Alice", emails=["a@x.com"]))
            await provider.get_context(make_record("Bob", emails=["b@x.com"]))
        assert client.get.await_count == 1
        assert client.post.await_count == 2
