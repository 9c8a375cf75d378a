"""Inbound event routing and the public lifecycle event emitter."""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from chatbridge.bridge.messages import MessageBridge
from chatbridge.bridge.session import SessionController
from chatbridge.bridge.survey import SurveyManager
from chatbridge.channels.base import BotPlatform, LiveChatService, NextHandler, WindowMessageSource
from chatbridge.model.events import BotEventKind, ChatEventKind, PublicEventKind

logger = logging.getLogger(__name__)

PublicListener = Callable[[dict[str, Any]], None]


class PublicEvents:
    """Lifecycle events published to the host application.

    A failing listener is logged and does not affect other listeners or
    the bridge.
    """

    def __init__(self) -> None:
        self._listeners: dict[PublicEventKind, list[PublicListener]] = defaultdict(list)

    def on(self, kind: PublicEventKind | str, listener: PublicListener) -> None:
        self._listeners[PublicEventKind(kind)].append(listener)

    def off(self, kind: PublicEventKind | str, listener: PublicListener) -> None:
        listeners = self._listeners.get(PublicEventKind(kind), [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, kind: PublicEventKind, data: dict[str, Any]) -> None:
        for listener in list(self._listeners.get(kind, [])):
            try:
                listener(data)
            except Exception as e:
                logger.error(f"Listener for {kind.value} failed: {e}", exc_info=True)


class EventRouter:
    """Dispatches inbound platform events to the session controller and message bridge.

    Subscriptions are registered once, in ``attach``. Bot events that the
    bridge does not consume are handed back through their ``next``
    continuation. Errors raised while handling live-chat events are logged,
    since the service has no caller to report them to.
    """

    def __init__(
        self,
        controller: SessionController,
        bridge: MessageBridge,
        bot: BotPlatform,
        live_chat: LiveChatService,
        survey: SurveyManager | None = None,
        window: WindowMessageSource | None = None,
    ):
        self.controller = controller
        self.bridge = bridge
        self.bot = bot
        self.live_chat = live_chat
        self.survey = survey
        self.window = window
        self._attached = False

        self._bot_handlers = {
            BotEventKind.ESCALATE_TO_AGENT: self._on_escalate_to_agent,
            BotEventKind.READY: self._on_ready,
            BotEventKind.SEND_MESSAGE: self.bridge.on_send_message,
            BotEventKind.DOWNLOAD_MEDIA: self._on_download_media,
            BotEventKind.UPLOAD_MEDIA: self.bridge.upload_media,
            BotEventKind.SELECT_SYSTEM_MESSAGE_OPTION: self.controller.on_select_system_message_option,
        }
        self._chat_handlers = {
            ChatEventKind.USER_JOINED: self.controller.on_user_joined,
            ChatEventKind.USER_LEFT: self.controller.on_user_left,
            ChatEventKind.USER_ACTIVITY: self.controller.on_user_activity,
            ChatEventKind.MESSAGE_RECEIVED: self.bridge.on_message_received,
            ChatEventKind.MESSAGE_READ: self.bridge.on_message_read,
            ChatEventKind.CHAT_CLOSED: self.controller.on_chat_closed,
            ChatEventKind.CHAT_INTERVENED: self.controller.on_chat_intervened,
            ChatEventKind.FOREVER_ALONE: self.controller.on_forever_alone,
            ChatEventKind.SYSTEM_INFO: self.controller.on_system_info,
        }

    def attach(self) -> None:
        """Subscribe to every inbound event. Subsequent calls are no-ops."""
        if self._attached:
            return
        for kind in self._bot_handlers:
            self.bot.subscribe(kind, self._bot_dispatcher(kind))
        for kind in self._chat_handlers:
            self.live_chat.subscribe(kind, self._chat_dispatcher(kind))
        if self.window is not None:
            self.window.add_listener(self.on_window_message)
        self._attached = True
        logger.debug("Event router attached")

    def _bot_dispatcher(self, kind: BotEventKind) -> Callable[..., Any]:
        async def dispatch(data: Any, next_handler: NextHandler | None = None) -> Any:
            return await self.dispatch_bot_event(kind, data, next_handler)
        return dispatch

    def _chat_dispatcher(self, kind: ChatEventKind) -> Callable[..., Any]:
        async def dispatch(data: dict[str, Any]) -> None:
            await self.dispatch_chat_event(kind, data)
        return dispatch

    async def dispatch_bot_event(
        self, kind: BotEventKind | str, data: Any, next_handler: NextHandler | None = None
    ) -> Any:
        try:
            kind = BotEventKind(kind)
            handler = self._bot_handlers[kind]
        except (KeyError, ValueError):
            logger.warning(f"No handler for bot event {kind!r}, passing it on")
            return next_handler(data) if next_handler else None

        logger.debug(f"Bot event: {kind.value}")
        return await handler(data, next_handler)

    async def dispatch_chat_event(self, kind: ChatEventKind | str, data: dict[str, Any]) -> None:
        try:
            kind = ChatEventKind(kind)
            handler = self._chat_handlers[kind]
        except (KeyError, ValueError):
            logger.warning(f"No handler for live chat event {kind!r}")
            return

        try:
            await handler(data or {})
        except Exception as e:
            logger.error(f"Error handling live chat event {kind.value}: {e}", exc_info=True)

    async def on_window_message(self, data: dict[str, Any]) -> None:
        if self.survey is None or not isinstance(data, dict):
            return
        try:
            await self.survey.on_window_message(data)
        except Exception as e:
            logger.error(f"Error handling window message: {e}", exc_info=True)

    async def _on_escalate_to_agent(self, data: Any, next_handler: NextHandler | None) -> bool:
        return await self.controller.start(data if isinstance(data, dict) else None)

    async def _on_ready(self, data: Any, next_handler: NextHandler | None) -> Any:
        await self.controller.on_ready()
        return next_handler(data) if next_handler else None

    async def _on_download_media(self, data: Any, next_handler: NextHandler | None) -> Any:
        return self.bridge.download_media(data, next_handler)
