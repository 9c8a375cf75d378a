"""Platform interfaces and clients used by the bridge."""

from chatbridge.channels.api_client import ChatApiClient
from chatbridge.channels.base import (
    BotPlatform,
    ChatHandle,
    ChatServiceError,
    LiveChatService,
    UserHasChatError,
    WindowMessageSource,
    ensure_bot_platform,
    ensure_live_chat_service,
)

__all__ = [
    "BotPlatform",
    "ChatApiClient",
    "ChatHandle",
    "ChatServiceError",
    "LiveChatService",
    "UserHasChatError",
    "WindowMessageSource",
    "ensure_bot_platform",
    "ensure_live_chat_service",
]
