"""
Тесты для модуля proxy_client.py
Ответы прокси подменяются через httpx.MockTransport.
"""
import json

import httpx
import pytest

from instapaper_importer.models import Credentials, CsvRow, TokenPair
from instapaper_importer.proxy_client import BookmarkProxyClient, is_retryable_status

from conftest import build_config

TOKENS = TokenPair(token="tok", token_secret="sec")
ROW = CsvRow(title="Title", url="https://example.com/a", status="archive")


def make_client(handler, requests_log=None):
    def recording_handler(request: httpx.Request) -> httpx.Response:
        if requests_log is not None:
            requests_log.append(request)
        return handler(request)

    return BookmarkProxyClient(
        base_url="http://proxy.test/api", transport=httpx.MockTransport(recording_handler)
    )


@pytest.mark.parametrize(
    "status_code, expected",
    [(429, True), (500, True), (503, True), (599, True), (400, False), (401, False), (200, False)],
)
def test_is_retryable_status(status_code, expected):
    assert is_retryable_status(status_code) is expected


def test_from_config():
    config = build_config(proxy_base_url="http://proxy.test/api/", proxy_add_timeout=30.0)
    client = BookmarkProxyClient.from_config(config)
    assert client.base_url == "http://proxy.test/api"
    assert client.add_timeout == 30.0
    assert client.auth_timeout == 10.0


@pytest.mark.asyncio
async def test_session_required():
    """Без контекстного менеджера запросы не выполняются"""
    client = BookmarkProxyClient()
    with pytest.raises(RuntimeError):
        await client.authenticate(Credentials(username="u"))


class TestAuthenticate:
    """Тесты запроса аутентификации"""

    @pytest.mark.asyncio
    async def test_success(self):
        sent = []
        client = make_client(
            lambda r: httpx.Response(200, json={"success": True, "token": "t", "tokenSecret": "s"}),
            sent,
        )
        async with client:
            tokens = await client.authenticate(Credentials(username="user", password="pw"))

        assert tokens == TokenPair(token="t", token_secret="s")
        assert sent[0].method == "POST"
        assert sent[0].url.path == "/api/authenticate"
        assert json.loads(sent[0].content) == {"username": "user", "password": "pw"}

    @pytest.mark.asyncio
    async def test_rejected(self):
        client = make_client(
            lambda r: httpx.Response(401, json={"success": False, "error": "Authentication failed"})
        )
        async with client:
            assert await client.authenticate(Credentials(username="user")) is None

    @pytest.mark.asyncio
    async def test_missing_token_fields(self):
        client = make_client(lambda r: httpx.Response(200, json={"success": True, "token": "t"}))
        async with client:
            assert await client.authenticate(Credentials(username="user")) is None

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = make_client(lambda r: httpx.Response(200, text="<html>oops</html>"))
        async with client:
            assert await client.authenticate(Credentials(username="user")) is None

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        async with client:
            assert await client.authenticate(Credentials(username="user")) is None


class TestAddBookmark:
    """Тесты запроса добавления статьи"""

    @pytest.mark.asyncio
    async def test_success_and_payload(self):
        sent = []
        client = make_client(lambda r: httpx.Response(200, json={"success": True}), sent)
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is True
        assert result.status_code == 200
        assert sent[0].url.path == "/api/add"
        assert json.loads(sent[0].content) == {
            "token": "tok",
            "tokenSecret": "sec",
            "url": "https://example.com/a",
            "title": "Title",
            "status": "archive",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_retryable_statuses(self, status_code):
        client = make_client(
            lambda r: httpx.Response(status_code, json={"success": False, "error": "Failed to add article"})
        )
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is False
        assert result.retryable is True
        assert result.status_code == status_code
        assert result.error == "Failed to add article"

    @pytest.mark.asyncio
    async def test_permanent_error_prefers_details(self):
        """Текст ошибки берется из details, если оно есть"""
        client = make_client(
            lambda r: httpx.Response(
                400, json={"success": False, "error": "Failed to add article", "details": "Invalid URL"}
            )
        )
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is False
        assert result.retryable is False
        assert result.error == "Invalid URL"

    @pytest.mark.asyncio
    async def test_error_without_body(self):
        client = make_client(lambda r: httpx.Response(404, text="not found"))
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.error == "HTTP error 404"
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_malformed_success_body(self):
        client = make_client(lambda r: httpx.Response(200, text="ok"))
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is False
        assert result.error == "Malformed proxy response"

    @pytest.mark.asyncio
    async def test_success_false_in_body(self):
        client = make_client(lambda r: httpx.Response(200, json={"success": False, "error": "Nope"}))
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is False
        assert result.error == "Nope"

    @pytest.mark.asyncio
    async def test_timeout_is_permanent_failure(self):
        """Таймаут не повторяется и записывается как ошибка строки"""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        async with client:
            result = await client.add_bookmark(TOKENS, ROW)

        assert result.success is False
        assert result.retryable is False
        assert result.error == "timed out"
