"""
Unit tests for the Copilot client.

Uses httpx.MockTransport in place of the network.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from copilot_chat.config import settings
from copilot_chat.core.error_handlers import (
    AuthenticationError,
    ProviderError,
    TransportError,
)
from copilot_chat.core.llm import llm_client
from copilot_chat.core.llm.llm_client import CopilotAuth, CopilotClient
from copilot_chat.models.chat import Message

BASE_URL = "https://copilot.test"
TOKEN_RESPONSE = {"token": "session-token", "expires_at": 9_999_999_999}


class FakeCopilot:
    """Mock transport handler recording every request."""

    def __init__(self, completions=None, token_status=200):
        self.completions = list(completions or [])
        self.token_status = token_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url == settings.copilot_token_url:
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "denied"})
            return httpx.Response(200, json=TOKEN_RESPONSE)
        if request.url.path == "/models":
            return httpx.Response(
                200, json={"data": [{"id": "gpt-4o"}, {"id": "o3-mini"}]}
            )

        completion = self.completions.pop(0)
        if isinstance(completion, Exception):
            raise completion
        return completion

    @property
    def completion_requests(self):
        return [r for r in self.requests if r.url.path == "/chat/completions"]


def _client(handler, max_retries=2):
    return CopilotClient(
        auth=CopilotAuth(oauth_token="gho_test"),
        base_url=BASE_URL,
        model="gpt-4o",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


async def _collect(client, messages, model=None):
    return b"".join([chunk async for chunk in client.request(messages, model)])


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip retry backoff waits."""
    sleep = AsyncMock()
    monkeypatch.setattr(llm_client.asyncio, "sleep", sleep)
    return sleep


class TestCopilotAuth:
    """Test OAuth token discovery."""

    def test_explicit_token(self, tmp_path):
        auth = CopilotAuth(oauth_token="gho_x", apps_file=tmp_path / "apps.json")

        assert auth.get_token() == "gho_x"

    def test_token_from_apps_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "copilot_oauth_token", None)
        apps_file = tmp_path / "apps.json"
        apps_file.write_text(
            json.dumps({"github.com:Iv1": {"user": "me", "oauth_token": "gho_file"}}),
            encoding="utf-8",
        )

        assert CopilotAuth(apps_file=apps_file).get_token() == "gho_file"

    def test_missing_apps_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "copilot_oauth_token", None)

        with pytest.raises(AuthenticationError):
            CopilotAuth(apps_file=tmp_path / "missing.json").get_token()

    def test_apps_file_without_token(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "copilot_oauth_token", None)
        apps_file = tmp_path / "apps.json"
        apps_file.write_text(json.dumps({"github.com": {"user": "me"}}), encoding="utf-8")

        with pytest.raises(AuthenticationError):
            CopilotAuth(apps_file=apps_file).get_token()


class TestRequest:
    """Test streaming completions."""

    @pytest.mark.asyncio
    async def test_streams_body_chunks(self, make_body):
        body = make_body("Hello")
        handler = FakeCopilot([httpx.Response(200, content=body)])
        client = _client(handler)

        received = await _collect(client, [Message.user("hi")])
        await client.close()

        assert received == body

    @pytest.mark.asyncio
    async def test_request_payload_and_headers(self, make_body):
        handler = FakeCopilot([httpx.Response(200, content=make_body("x"))])
        client = _client(handler)

        await _collect(
            client,
            [Message.system("be brief"), Message.user("hi")],
            model="o3-mini",
        )
        await client.close()

        request = handler.completion_requests[0]
        payload = json.loads(request.content)
        assert payload["model"] == "o3-mini"
        assert payload["stream"] is True
        assert payload["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]
        assert request.headers["Authorization"] == "Bearer session-token"
        assert request.headers["Copilot-Integration-Id"] == "vscode-chat"
        assert request.headers["Editor-Version"].startswith("Neovim/")

    @pytest.mark.asyncio
    async def test_session_token_is_reused(self, make_body):
        handler = FakeCopilot(
            [
                httpx.Response(200, content=make_body("a")),
                httpx.Response(200, content=make_body("b")),
            ]
        )
        client = _client(handler)

        await _collect(client, [Message.user("1")])
        await _collect(client, [Message.user("2")])
        await client.close()

        token_requests = [
            r for r in handler.requests if r.url == settings.copilot_token_url
        ]
        assert len(token_requests) == 1
        assert token_requests[0].headers["Authorization"] == "token gho_test"

    @pytest.mark.asyncio
    async def test_rejected_token_exchange(self):
        client = _client(FakeCopilot(token_status=401))

        with pytest.raises(AuthenticationError):
            await _collect(client, [Message.user("hi")])
        await client.close()

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, no_sleep):
        handler = FakeCopilot(
            [httpx.Response(400, json={"error": {"message": "model not supported"}})]
        )
        client = _client(handler)

        with pytest.raises(ProviderError) as exc_info:
            await _collect(client, [Message.user("hi")])
        await client.close()

        assert exc_info.value.message == "model not supported"
        assert exc_info.value.status_code == 400
        assert len(handler.completion_requests) == 1
        no_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, no_sleep, make_body):
        handler = FakeCopilot(
            [
                httpx.Response(429, headers={"retry-after": "3"}),
                httpx.Response(200, content=make_body("ok")),
            ]
        )
        client = _client(handler)

        received = await _collect(client, [Message.user("hi")])
        await client.close()

        assert b"ok" in received
        no_sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, no_sleep):
        handler = FakeCopilot([httpx.Response(503) for _ in range(3)])
        client = _client(handler, max_retries=2)

        with pytest.raises(ProviderError) as exc_info:
            await _collect(client, [Message.user("hi")])
        await client.close()

        assert exc_info.value.status_code == 503
        assert len(handler.completion_requests) == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_connect_error_becomes_transport_error(self, no_sleep):
        handler = FakeCopilot(
            [httpx.ConnectError("refused"), httpx.ConnectError("refused")]
        )
        client = _client(handler, max_retries=1)

        with pytest.raises(TransportError):
            await _collect(client, [Message.user("hi")])
        await client.close()

        assert no_sleep.await_count == 1


class TestListModels:
    """Test the models endpoint."""

    @pytest.mark.asyncio
    async def test_lists_ids(self):
        async with _client(FakeCopilot()) as client:
            assert await client.list_models() == ["gpt-4o", "o3-mini"]
