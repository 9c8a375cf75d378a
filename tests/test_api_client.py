"""Tests for the live-chat REST client."""

import json

import httpx
import pytest

from chatbridge.channels.api_client import ChatApiClient
from chatbridge.core.config import BridgeConfig
from chatbridge.core.errors import NetworkError, ValidationError


def make_client(handler, token="tok-1"):
    return ChatApiClient(
        "https://chat.example.com/api/",
        "app-1",
        token_provider=lambda: token,
        transport=httpx.MockTransport(handler),
    )


class TestChatApiClient:
    """Tests for request building and error mapping."""

    @pytest.mark.asyncio
    async def test_get_sends_query_and_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            return httpx.Response(200, json={"agents": {"1": 2}})

        data = await make_client(handler).request("/agents/available", "GET", {"roomIds": 1, "langs": "en"})

        assert data == {"agents": {"1": 2}}
        assert seen["url"] == "https://chat.example.com/api/agents/available?roomIds=1&langs=en"
        assert seen["headers"]["X-Application-Id"] == "app-1"
        assert seen["headers"]["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"user": {"id": "u-1"}})

        await make_client(handler, token=None).request("/users", "post", {"name": "Jane"})

        assert seen == {"method": "POST", "body": {"name": "Jane"}}

    @pytest.mark.asyncio
    async def test_no_token_no_authorization_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            return httpx.Response(200, json={})

        await make_client(handler, token=None).request("/ping")

        assert "Authorization" not in seen["headers"]

    @pytest.mark.asyncio
    async def test_http_error_maps_to_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "down"})

        with pytest.raises(NetworkError, match="503"):
            await make_client(handler).request("/users", "POST", {})

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError, match="request failed"):
            await make_client(handler).request("/users")

    @pytest.mark.asyncio
    async def test_invalid_json_maps_to_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(NetworkError, match="invalid JSON"):
            await make_client(handler).request("/users")

    @pytest.mark.asyncio
    async def test_non_dict_body_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["a", "b"])

        assert await make_client(handler).request("/chats") == {"data": ["a", "b"]}


class TestFromConfig:
    def test_requires_server(self):
        config = BridgeConfig(app_id="app", region="eu", room=1)

        with pytest.raises(ValidationError):
            ChatApiClient.from_config(config)

    def test_uses_server_and_app_id(self):
        config = BridgeConfig(app_id="app", server="https://chat.example.com/", room=1)

        client = ChatApiClient.from_config(config)

        assert client.base_url == "https://chat.example.com"
        assert client.app_id == "app"
