"""Shared fixtures: mocked platforms and a wired session controller."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.bridge.availability import AvailabilityProbe
from chatbridge.bridge.messages import MessageBridge
from chatbridge.bridge.router import PublicEvents
from chatbridge.bridge.session import SessionController
from chatbridge.bridge.survey import SurveyManager
from chatbridge.channels.api_client import ChatApiClient
from chatbridge.channels.base import BotPlatform, ChatHandle, LiveChatService
from chatbridge.core.config.models import BridgeConfig
from chatbridge.stores.state import MemoryChatOpenMarker, MemoryStateStore

USER_ID = "user-1"
AGENT = {"id": "agent-1", "name": "Alice Agent", "nickname": "Alice"}


def build_config(**overrides) -> BridgeConfig:
    data = {"app_id": "app-1", "server": "https://chat.example.com", "room": 1}
    data.update(overrides)
    return BridgeConfig(**data)


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def bot():
    bot = MagicMock(spec=BotPlatform)
    bot.display_system_message.return_value = "sys-1"
    bot.display_chatbot_message.return_value = "bot-1"
    bot.display_user_message.return_value = "user-msg-1"
    bot.get_session_data.return_value = {"closeButtonVisible": False, "messages": ["hi"]}
    bot.get_conversation_transcript.return_value = []
    return bot


@pytest.fixture
def chat():
    chat = MagicMock(spec=ChatHandle)
    chat.id = "chat-1"
    chat.closed = False
    chat.users = [AGENT]
    chat.search_agent.return_value = {"agent": AGENT}
    chat.send_message.return_value = {"eventId": "evt-1", "message": {"id": "msg-1"}}
    chat.send_media.return_value = {"media": {"id": "media-1"}}
    chat.read_unread_history.return_value = {}
    return chat


@pytest.fixture
def live_chat(chat):
    live_chat = MagicMock(spec=LiveChatService)
    live_chat.is_initialized = True
    live_chat.is_logged = True
    live_chat.me.return_value = USER_ID
    live_chat.get_token.return_value = "token-1"
    live_chat.create_chat.return_value = chat
    live_chat.lobby_chats.return_value = {}
    live_chat.fetch_user_chat_ids.return_value = []
    live_chat.open_chat.return_value = chat
    return live_chat


@pytest.fixture
def api():
    responses = {
        "/users": {"user": {"id": USER_ID}, "session": {"token": "token-1"}},
        "/agents/available": {"agents": {1: 2}},
    }

    async def request(path, method="GET", params=None):
        return responses.get(path, {})

    api = MagicMock(spec=ChatApiClient)
    api.request = AsyncMock(side_effect=request)
    api.responses = responses
    return api


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def marker():
    return MemoryChatOpenMarker()


@pytest.fixture
def build_controller(bot, live_chat, api, store, marker):
    """Factory wiring a SessionController the way create_bridge does."""

    def build(config=None, close_fallback_seconds=0.0, **kwargs):
        config = config or build_config()
        controller = None

        def current_session():
            return controller.session

        bridge = MessageBridge(bot, live_chat, session_provider=current_session)
        controller = SessionController(
            config,
            bot,
            live_chat,
            api,
            bridge,
            AvailabilityProbe(config, api),
            store,
            marker,
            PublicEvents(),
            survey=kwargs.pop("survey", SurveyManager(config, bot, api, store)),
            close_fallback_seconds=close_fallback_seconds,
            **kwargs,
        )
        return controller

    return build
