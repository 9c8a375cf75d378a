"""Tests for bridge wiring and the ChatBridge facade."""

from unittest.mock import MagicMock

import httpx
import pytest

from chatbridge.core.errors import NetworkError, ValidationError
from chatbridge.factory import ChatBridge, create_bridge
from chatbridge.model.events import BotEventKind, PublicEventKind
from chatbridge.stores.state import SURVEY


class TestCreateBridge:
    """Tests for create_bridge."""

    @pytest.mark.asyncio
    async def test_wires_components(self, config, bot, live_chat, api):
        bridge = await create_bridge(config, bot, live_chat, api=api)

        assert isinstance(bridge, ChatBridge)
        assert bridge.controller.bridge is bridge.bridge
        assert bot.subscribe.call_count == len(BotEventKind)
        assert bridge.is_chat_open() is False

    @pytest.mark.asyncio
    async def test_rejects_invalid_bot(self, config, live_chat, api):
        with pytest.raises(ValidationError, match="Not a valid bot instance"):
            await create_bridge(config, object(), live_chat, api=api)

    @pytest.mark.asyncio
    async def test_rejects_invalid_live_chat(self, config, bot, api):
        with pytest.raises(ValidationError, match="missing"):
            await create_bridge(config, bot, MagicMock(spec=["me"]), api=api)

    @pytest.mark.asyncio
    async def test_builds_api_client_from_config(self, config, bot, live_chat):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"agents": {"1": 1}}))

        bridge = await create_bridge(config, bot, live_chat, transport=transport)

        result = await bridge.check_escalation_conditions()
        assert result.agents_available is True

    @pytest.mark.asyncio
    async def test_region_only_requires_api(self, make_config, bot, live_chat):
        config = make_config(server=None, region="eu")

        with pytest.raises(ValidationError):
            await create_bridge(config, bot, live_chat)

    @pytest.mark.asyncio
    async def test_pending_survey_is_shown(self, config, bot, live_chat, api, store):
        await store.set_item(SURVEY, {"pending": True, "content": "<iframe></iframe>"})

        await create_bridge(config, bot, live_chat, store=store, api=api)

        bot.show_custom_conversation_window.assert_called_once_with({"content": "<iframe></iframe>"})


class TestChatBridge:
    """Tests for the facade."""

    @pytest.mark.asyncio
    async def test_events_reach_host_listeners(self, config, bot, live_chat, api):
        bridge = await create_bridge(config, bot, live_chat, api=api)
        created = []
        bridge.on(PublicEventKind.CHAT_CREATED, created.append)

        await bridge.start({"FIRST_NAME": "Jane"})

        assert len(created) == 1
        assert bridge.is_chat_open() is True
        await bridge.controller.clear()

    @pytest.mark.asyncio
    async def test_set_room_function_rebuilds_config(self, config, bot, live_chat, api):
        bridge = await create_bridge(config, bot, live_chat, api=api)

        new_config = bridge.set_room_function(lambda: 42)

        assert new_config is not config
        assert config.room() == 1
        assert bridge.controller.config.room() == 42
        assert bridge.probe.config is new_config
        assert bridge.survey.config is new_config

    @pytest.mark.asyncio
    async def test_reconfigure_rejects_invalid_values(self, config, bot, live_chat, api):
        bridge = await create_bridge(config, bot, live_chat, api=api)

        with pytest.raises(ValidationError):
            bridge.reconfigure(app_id="")

        assert bridge.config is config

    @pytest.mark.asyncio
    async def test_validate_chat_app(self, config, bot, live_chat, api):
        live_chat.is_initialized = False
        bridge = await create_bridge(config, bot, live_chat, api=api)

        await bridge.validate_chat_app()

        live_chat.initialize.assert_awaited_once_with(
            {"appId": "app-1", "setCookieOnDomain": False, "port": 8000, "server": "https://chat.example.com"}
        )

    @pytest.mark.asyncio
    async def test_validate_chat_app_failure(self, config, bot, live_chat, api):
        live_chat.is_initialized = False
        live_chat.initialize.side_effect = RuntimeError("unknown app")
        bridge = await create_bridge(config, bot, live_chat, api=api)

        with pytest.raises(NetworkError):
            await bridge.validate_chat_app()

    @pytest.mark.asyncio
    async def test_reconfigure_server_rebuilds_api_client(self, config, bot, live_chat):
        seen = []

        def handler(request):
            seen.append(str(request.url.copy_with(query=None)))
            return httpx.Response(200, json={"agents": {"1": 1}})

        bridge = await create_bridge(config, bot, live_chat, transport=httpx.MockTransport(handler))

        bridge.reconfigure(server="https://other.example.com", app_id="app-2")
        await bridge.check_escalation_conditions()

        assert seen == ["https://other.example.com/agents/available"]
        assert bridge.api.app_id == "app-2"
        assert bridge.controller.api is bridge.api
        assert bridge.probe.api is bridge.api
        assert bridge.survey.api is bridge.api

    @pytest.mark.asyncio
    async def test_reconfigure_server_rejected_with_external_api(self, config, bot, live_chat, api):
        bridge = await create_bridge(config, bot, live_chat, api=api)

        with pytest.raises(ValidationError, match="server"):
            bridge.reconfigure(server="https://other.example.com")

        assert bridge.config is config
        assert bridge.controller.api is api
