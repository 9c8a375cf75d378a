"""Capability interfaces for the platforms the bridge sits between.

The bridge talks to three collaborators:

- ``BotPlatform``: the conversational-agent UI. Actions are synchronous UI
  updates; inbound events are delivered through ``subscribe``.
- ``LiveChatService``: the human-agent chat SDK. Network operations are
  async; events of the attached chat are delivered through ``subscribe``.
- ``WindowMessageSource``: cross-window notifications from the host page.

Objects handed to the bridge are checked once, at construction, with
``ensure_bot_platform`` / ``ensure_live_chat_service``.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from chatbridge.core.errors import ValidationError
from chatbridge.model.events import BotEventKind, ChatEventKind

# Continuation passed with bot events. Invoking it hands the payload back to
# the bot platform's own pipeline.
NextHandler = Callable[[Any], Any]
BotEventHandler = Callable[[Any, NextHandler | None], Awaitable[Any]]
ChatEventHandler = Callable[[dict[str, Any]], Awaitable[None]]
WindowMessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


class ChatServiceError(Exception):
    """The live-chat service rejected a request.

    Attributes:
        code: Service status code (HTTP-like) if provided.
    """

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message


class UserHasChatError(ChatServiceError):
    """Chat creation rejected because the user already has an open chat."""


class BotPlatform(ABC):
    """Action and subscription surface of the conversational-agent platform."""

    @abstractmethod
    def subscribe(self, kind: BotEventKind, handler: BotEventHandler) -> None:
        """Register the handler for an inbound bot event."""
        ...

    @abstractmethod
    def enable_input(self) -> None: ...

    @abstractmethod
    def disable_input(self) -> None: ...

    @abstractmethod
    def show_upload_media_button(self) -> None: ...

    @abstractmethod
    def hide_upload_media_button(self) -> None: ...

    @abstractmethod
    def show_close_button(self) -> None: ...

    @abstractmethod
    def hide_close_button(self) -> None: ...

    @abstractmethod
    def display_system_message(self, message: dict[str, Any]) -> str | None:
        """Display a system message. Returns its local id."""
        ...

    @abstractmethod
    def display_chatbot_message(self, message: dict[str, Any]) -> str | None:
        """Display a message on the agent side. Returns its local id."""
        ...

    @abstractmethod
    def display_user_message(self, message: dict[str, Any]) -> str | None:
        """Display a message on the user side. Returns its local id."""
        ...

    @abstractmethod
    def update_message(self, update: dict[str, Any]) -> None:
        """Update a displayed message, located by ``id`` or ``externalId``."""
        ...

    @abstractmethod
    def set_chatbot_name(self, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def display_chatbot_activity(self, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def hide_chatbot_activity(self, data: dict[str, Any] | None = None) -> None: ...

    @abstractmethod
    def show_custom_conversation_window(self, content: dict[str, Any]) -> None: ...

    @abstractmethod
    def hide_custom_conversation_window(self) -> None: ...

    @abstractmethod
    def hide_conversation_window(self) -> None: ...

    @abstractmethod
    def get_session_data(self) -> dict[str, Any]:
        """Return the bot's presentation state (buttons, names, messages)."""
        ...

    @abstractmethod
    def get_conversation_transcript(self, max_interactions: int) -> list[dict[str, Any]]:
        """Return the most recent bot transcript items, oldest first."""
        ...


class ChatHandle(ABC):
    """A chat session held open with the live-chat service."""

    id: str
    closed: bool = False
    users: list[dict[str, Any]]

    @abstractmethod
    async def search_agent(self) -> dict[str, Any] | None:
        """Ask the service to assign an agent. Result has an ``agent`` key when found."""
        ...

    @abstractmethod
    async def send_message(self, text: str, on_created: Callable[[str], None] | None = None) -> dict[str, Any]:
        """Send a text message.

        Args:
            text: Message text.
            on_created: Called with the provisional event id once the send
                has been queued by the service.

        Returns:
            Service response with ``eventId`` and ``message.id``.
        """
        ...

    @abstractmethod
    async def send_media(
        self, file: Any, on_progress: Callable[[float], None] | None = None
    ) -> dict[str, Any]:
        """Upload a file. Response has ``media.id``."""
        ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    def read_unread_history(self) -> dict[str, dict[str, Any]]:
        """Mark unread messages as read and return them keyed by message id."""
        ...


class LiveChatService(ABC):
    """Surface of the live-chat SDK the bridge depends on."""

    @property
    @abstractmethod
    def is_initialized(self) -> bool: ...

    @property
    @abstractmethod
    def is_logged(self) -> bool:
        """Whether a user lobby is currently open."""
        ...

    @abstractmethod
    async def initialize(self, init_data: dict[str, Any]) -> None:
        """Load and initialize the SDK. No-op when already initialized."""
        ...

    @abstractmethod
    def subscribe(self, kind: ChatEventKind, handler: ChatEventHandler) -> None:
        """Register the handler for events of the attached chat."""
        ...

    @abstractmethod
    async def login(self, user_id: str, token: str) -> None:
        """Open the user lobby with the given credentials."""
        ...

    @abstractmethod
    def me(self) -> str | None:
        """Id of the connected user."""
        ...

    @abstractmethod
    def get_token(self) -> str | None: ...

    @abstractmethod
    async def create_chat(self, chat_data: dict[str, Any]) -> ChatHandle:
        """Create a chat.

        Raises:
            UserHasChatError: The user already has an open chat.
        """
        ...

    @abstractmethod
    def lobby_chats(self) -> dict[str, ChatHandle]:
        """Chats currently held in the user lobby."""
        ...

    @abstractmethod
    async def fetch_user_chat_ids(self, user_id: str) -> list[str]:
        """Ask the service which chats the user has."""
        ...

    @abstractmethod
    async def open_chat(self, chat_id: str) -> ChatHandle: ...

    @abstractmethod
    def close_lobby(self) -> None: ...

    @abstractmethod
    def monitor_user_activity(self, chat: ChatHandle, interval_ms: int, no_change_max: int) -> None:
        """Watch user input and report typing activity to the chat."""
        ...

    @abstractmethod
    def download_media(self, file: dict[str, Any]) -> None: ...

    @abstractmethod
    async def download_conversation(
        self, chat_id: str, props: dict[str, Any], request_data: dict[str, Any]
    ) -> None: ...


class WindowMessageSource(ABC):
    """Source of cross-window notifications (e.g. survey completion)."""

    @abstractmethod
    def add_listener(self, handler: WindowMessageHandler) -> None: ...


BOT_PLATFORM_CAPABILITIES = (
    "subscribe",
    "enable_input",
    "disable_input",
    "display_system_message",
    "display_chatbot_message",
    "display_user_message",
    "update_message",
    "set_chatbot_name",
    "get_conversation_transcript",
)

LIVE_CHAT_CAPABILITIES = (
    "initialize",
    "subscribe",
    "login",
    "me",
    "get_token",
    "create_chat",
    "lobby_chats",
    "open_chat",
    "close_lobby",
)


def _missing_capabilities(obj: Any, capabilities: tuple[str, ...]) -> list[str]:
    return [name for name in capabilities if not callable(getattr(obj, name, None))]


def ensure_bot_platform(obj: Any) -> BotPlatform:
    """Check that ``obj`` offers the bot capabilities the bridge needs.

    Raises:
        ValidationError: If any required capability is missing.
    """
    missing = _missing_capabilities(obj, BOT_PLATFORM_CAPABILITIES)
    if missing:
        raise ValidationError(f"Not a valid bot instance (missing: {', '.join(missing)})")
    return obj


def ensure_live_chat_service(obj: Any) -> LiveChatService:
    """Check that ``obj`` offers the live-chat capabilities the bridge needs.

    Raises:
        ValidationError: If any required capability is missing.
    """
    missing = _missing_capabilities(obj, LIVE_CHAT_CAPABILITIES)
    if missing:
        raise ValidationError(f"Not a valid live-chat service (missing: {', '.join(missing)})")
    return obj
