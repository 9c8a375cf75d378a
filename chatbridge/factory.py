"""Bridge construction and the facade exposed to host applications."""

import logging
from collections.abc import Callable
from functools import partial
from typing import Any

import httpx

from chatbridge.bridge.availability import AvailabilityProbe, AvailabilityResult
from chatbridge.bridge.history import HistoryReconciler
from chatbridge.bridge.messages import MessageBridge
from chatbridge.bridge.router import EventRouter, PublicEvents, PublicListener
from chatbridge.bridge.session import SessionController
from chatbridge.bridge.survey import SurveyManager
from chatbridge.channels.api_client import ChatApiClient
from chatbridge.channels.base import (
    BotPlatform,
    LiveChatService,
    WindowMessageSource,
    ensure_bot_platform,
    ensure_live_chat_service,
)
from chatbridge.core.config.loader import build_sdk_init_data, replace_config
from chatbridge.core.config.models import BridgeConfig
from chatbridge.core.errors import NetworkError, ValidationError
from chatbridge.model.events import PublicEventKind
from chatbridge.stores.state import ChatOpenMarker, MemoryChatOpenMarker, MemoryStateStore, PersistentStateStore

logger = logging.getLogger(__name__)

# Settings the REST client is built from
API_CONFIG_KEYS = frozenset({"server", "app_id"})


class ChatBridge:
    """A bot platform wired to a live-chat service.

    Build it with ``create_bridge``. Configuration is immutable; use
    ``reconfigure`` to swap in a rebuilt one.
    """

    def __init__(
        self,
        config: BridgeConfig,
        live_chat: LiveChatService,
        controller: SessionController,
        bridge: MessageBridge,
        router: EventRouter,
        probe: AvailabilityProbe,
        survey: SurveyManager,
        events: PublicEvents,
        api: ChatApiClient,
        api_factory: Callable[[BridgeConfig], ChatApiClient] | None = None,
    ):
        self.config = config
        self.live_chat = live_chat
        self.controller = controller
        self.bridge = bridge
        self.router = router
        self.probe = probe
        self.survey = survey
        self.events = events
        self.api = api
        self._api_factory = api_factory

    def on(self, kind: PublicEventKind | str, listener: PublicListener) -> None:
        self.events.on(kind, listener)

    def off(self, kind: PublicEventKind | str, listener: PublicListener) -> None:
        self.events.off(kind, listener)

    def is_chat_open(self) -> bool:
        return self.controller.is_chat_open()

    async def start(self, user_data: dict[str, Any] | None = None) -> bool:
        return await self.controller.start(user_data)

    async def close(self) -> None:
        await self.controller.close()

    async def check_escalation_conditions(self) -> AvailabilityResult:
        """Whether an escalation would find an agent right now."""
        return await self.probe.check()

    async def validate_chat_app(self) -> None:
        """Initialize the live-chat SDK to verify the configured application.

        Raises:
            NetworkError: If the SDK could not be initialized.
        """
        if self.live_chat.is_initialized:
            return
        try:
            await self.live_chat.initialize(build_sdk_init_data(self.config))
        except Exception as e:
            logger.error(f"Live chat application validation failed: {e}")
            raise NetworkError(f"Failed to initialize the live-chat SDK: {e}") from e
        logger.info(f"Live chat application {self.config.app_id} validated")

    def reconfigure(self, **changes: Any) -> BridgeConfig:
        """Rebuild the configuration with ``changes`` and hand it to every component.

        Changing ``server`` or ``app_id`` also rebuilds the REST client. A
        client passed to ``create_bridge`` can't be rebuilt, so those keys are
        rejected in that case.

        Raises:
            ValidationError: If the resulting configuration is invalid.
        """
        config = replace_config(self.config, **changes)
        api = self.api
        if API_CONFIG_KEYS & changes.keys():
            if self._api_factory is None:
                raise ValidationError(
                    f"Cannot change {', '.join(sorted(API_CONFIG_KEYS & changes.keys()))} "
                    "with an externally provided API client"
                )
            api = self._api_factory(config)

        self.config = config
        self.api = api
        for component in (self.controller, self.probe, self.survey):
            component.config = config
            component.api = api
        logger.info(f"Configuration updated: {', '.join(sorted(changes))}")
        return config

    def set_room_function(self, room: Callable[[], Any]) -> BridgeConfig:
        return self.reconfigure(room=room)


async def create_bridge(
    config: BridgeConfig,
    bot: BotPlatform,
    live_chat: LiveChatService,
    store: PersistentStateStore | None = None,
    marker: ChatOpenMarker | None = None,
    window: WindowMessageSource | None = None,
    api: ChatApiClient | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatBridge:
    """Validate the collaborators and wire a ChatBridge.

    Subscriptions to both platforms are registered here, once. A survey left
    unanswered by a previous run is shown again.

    Args:
        config: Validated bridge configuration.
        bot: Conversational-agent platform.
        live_chat: Live-chat SDK adapter.
        store: State store; defaults to an in-memory store.
        marker: Chat-open marker; defaults to an in-memory marker.
        window: Optional source of cross-window messages (survey answers).
        api: REST client; built from ``config.server`` when omitted.
        transport: httpx transport for the built REST client.

    Raises:
        ValidationError: If a collaborator lacks required capabilities, or
            no REST client can be built from the configuration.
    """
    bot = ensure_bot_platform(bot)
    live_chat = ensure_live_chat_service(live_chat)
    store = store or MemoryStateStore()
    marker = marker or MemoryChatOpenMarker()
    api_factory = None
    if api is None:
        api_factory = partial(ChatApiClient.from_config, token_provider=live_chat.get_token, transport=transport)
        api = api_factory(config)

    events = PublicEvents()
    probe = AvailabilityProbe(config, api)
    survey = SurveyManager(config, bot, api, store)

    controller: SessionController | None = None

    def current_session():
        return controller.session

    bridge = MessageBridge(bot, live_chat, session_provider=current_session)
    controller = SessionController(
        config,
        bot,
        live_chat,
        api,
        bridge,
        probe,
        store,
        marker,
        events,
        survey=survey,
        reconciler=HistoryReconciler(current_user=live_chat.me),
    )
    router = EventRouter(controller, bridge, bot, live_chat, survey=survey, window=window)
    router.attach()

    await survey.show_pending()

    logger.info(f"Chat bridge created for application {config.app_id}")
    return ChatBridge(
        config, live_chat, controller, bridge, router, probe, survey, events, api=api, api_factory=api_factory
    )
