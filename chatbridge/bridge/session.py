"""Session lifecycle: escalation start, restore after reload, and close.

Lifecycle:
1. ``start()`` escalates a bot conversation: IDLE -> CONNECTING ->
   SEARCHING_AGENT -> WAITING_FOR_AGENT, and ACTIVE once an agent joins
2. ``restore()`` reattaches to a chat left open by a previous page load:
   IDLE -> ACTIVE
3. ``close()`` or a service close event: -> CLOSING -> CLOSED
4. ``clear()`` (on the service's terminal event, or the fallback timer):
   CLOSED -> IDLE
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from chatbridge.bridge.availability import AvailabilityProbe
from chatbridge.bridge.history import MAX_HISTORY_ENTRIES, HistoryReconciler
from chatbridge.bridge.messages import MessageBridge
from chatbridge.bridge.survey import SurveyManager
from chatbridge.channels.api_client import ChatApiClient
from chatbridge.channels.base import BotPlatform, ChatHandle, LiveChatService, NextHandler, UserHasChatError
from chatbridge.core.config.loader import build_sdk_init_data
from chatbridge.core.config.models import BridgeConfig
from chatbridge.core.errors import BridgeError, NetworkError, StateError
from chatbridge.core.utils import display_name, full_name, get_unix_time
from chatbridge.model.events import PublicEventKind
from chatbridge.model.message import Message
from chatbridge.model.session import Session, SessionState
from chatbridge.stores.state import LAST_CLOSED_TIME, PREVIOUS_TOKEN, ChatOpenMarker, PersistentStateStore

if TYPE_CHECKING:
    from chatbridge.bridge.router import PublicEvents

logger = logging.getLogger(__name__)

# Seconds to wait for the service's terminal event before clearing locally
CLOSE_FALLBACK_SECONDS = 5.0
ACTIVITY_INTERVAL_MS = 200
ACTIVITY_NO_CHANGE_MAX = 10
# System message option carrying ticket data for transcript downloads
TICKET_DATA_OPTION = "ticketData"
CLOSE_CHAT_OPTION = "exitConversation"
REGISTRATION_FIELDS = ("FIRST_NAME", "LAST_NAME", "EMAIL_ADDRESS")


class SessionController:
    """State machine governing one user's escalation to a live chat.

    ``is_chat_open()`` is derived from the session state. The chat-open
    marker mirrors it after every transition so that a reloaded page knows
    to restore.
    """

    def __init__(
        self,
        config: BridgeConfig,
        bot: BotPlatform,
        live_chat: LiveChatService,
        api: ChatApiClient,
        bridge: MessageBridge,
        probe: AvailabilityProbe,
        store: PersistentStateStore,
        marker: ChatOpenMarker,
        events: "PublicEvents",
        survey: SurveyManager | None = None,
        reconciler: HistoryReconciler | None = None,
        close_fallback_seconds: float = CLOSE_FALLBACK_SECONDS,
    ):
        self.config = config
        self.bot = bot
        self.live_chat = live_chat
        self.api = api
        self.bridge = bridge
        self.probe = probe
        self.store = store
        self.marker = marker
        self.events = events
        self.survey = survey
        self.reconciler = reconciler or HistoryReconciler(current_user=live_chat.me)
        self.close_fallback_seconds = close_fallback_seconds

        self.session = Session()
        self.last_error: BridgeError | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._fallback_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    def is_chat_open(self) -> bool:
        return self.session.state.is_open

    def _transition(self, new_state: SessionState) -> None:
        old_state = self.session.state
        if not self.session.can_transition(new_state):
            raise StateError(f"Invalid session transition: {old_state.value} -> {new_state.value}")
        self.session.state = new_state
        if new_state.is_open:
            self.marker.set()
        else:
            self.marker.clear()
        logger.info(f"Session {self.session.id}: {old_state.value} -> {new_state.value}")

    def _reset_session(self) -> None:
        self.session = Session()
        self.marker.clear()

    # -- Start ---------------------------------------------------------------------

    async def start(self, user_data: dict[str, Any] | None = None) -> bool:
        """Escalate the bot conversation to a live chat.

        Steps run strictly in sequence. A failure anywhere restores the UI
        out of connecting mode, is logged and kept in ``last_error``; nothing
        is retried.

        Returns:
            True if the chat was created and the agent search completed.
        """
        if self.is_chat_open():
            logger.info("Chat already open, ignoring escalation request")
            return False

        if self.session.state is SessionState.CLOSED:
            await self.clear()

        async with self._lifecycle_lock:
            if self.is_chat_open():
                logger.info("Chat opened while waiting, ignoring escalation request")
                return False
            self.last_error = None
            self._transition(SessionState.CONNECTING)
            self._set_connecting_mode()
            try:
                await self._initialize_sdk()
                availability = await self.probe.check()
                if not availability.agents_available:
                    # Availability gates the caller's escalation decision, not chat creation
                    logger.warning(f"Escalating without available agents: {availability.reason}")
                await self._init_user_session(user_data or {})
                await self._create_chat()
                self._capture_bot_snapshot()
                self._show_all_buttons()

                result = await self._search_agent()
                if not result or not result.get("agent"):
                    await self.on_forever_alone({})
                else:
                    self.bridge.display_system("wait-for-agent")
                    if self.session.state is SessionState.SEARCHING_AGENT:
                        self._transition(SessionState.WAITING_FOR_AGENT)

                self._set_connected_mode()
                self._monitor_user_activity()
            except Exception as e:
                self._set_connected_mode()
                self._record_failure("start", e)
                return False
        return True

    async def _initialize_sdk(self) -> None:
        if self.live_chat.is_initialized:
            return
        try:
            await self.live_chat.initialize(build_sdk_init_data(self.config))
        except Exception as e:
            raise NetworkError(f"Failed to initialize the live-chat SDK: {e}") from e

    async def _init_user_session(self, data: dict[str, Any]) -> None:
        """Register the user with the live-chat service and open the lobby."""
        user_data: dict[str, Any] = {
            "name": full_name(data.get("FIRST_NAME"), data.get("LAST_NAME")),
            "contact": data.get("EMAIL_ADDRESS"),
        }

        extra_info = {k: v for k, v in data.items() if k not in REGISTRATION_FIELDS}
        if extra_info:
            if self.config.extra_info is not None:
                extra_info.update(self.config.extra_info())
            user_data["extraInfo"] = extra_info

        res = await self.api.request("/users", "POST", user_data)
        try:
            user_id = res["user"]["id"]
            token = res["session"]["token"]
        except (KeyError, TypeError) as e:
            raise NetworkError("Unexpected user registration response") from e

        try:
            await self.live_chat.login(user_id, token)
        except Exception as e:
            raise NetworkError(f"Failed to open user lobby: {e}") from e

    async def _create_chat(self) -> None:
        chat_data = await self._chat_data()
        try:
            chat = await self.live_chat.create_chat(chat_data)
        except UserHasChatError:
            logger.info("User already has a chat, reusing it")
            chat = await self._reuse_existing_chat()
        except Exception as e:
            raise NetworkError(f"Failed to create chat: {e}") from e

        if chat is None:
            raise NetworkError("User already has a chat but it could not be found")

        self._attach(chat, SessionState.SEARCHING_AGENT)
        self.events.emit(PublicEventKind.CHAT_CREATED, {"chat": chat})

    async def _chat_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "room": self.config.room(),
            "lang": self.config.lang(),
            "source": self.config.source(),
        }
        if self.config.import_bot_history:
            history = await self._bot_history()
            if history:
                data["history"] = [message.to_chat_payload() for message in history]
        return data

    async def _bot_history(self) -> list[Message]:
        transcript = self.bot.get_conversation_transcript(max_interactions=MAX_HISTORY_ENTRIES)
        if not transcript:
            return []
        # Capture the cutoff before reconciling
        filter_time = await self.store.get_item(LAST_CLOSED_TIME)
        return list(self.reconciler.reconcile(transcript, filter_time, session_id=self.session.id))

    async def _reuse_existing_chat(self) -> ChatHandle | None:
        lobby_chats = self.live_chat.lobby_chats()
        if lobby_chats:
            return await self.live_chat.open_chat(next(iter(lobby_chats)))

        me = self.live_chat.me()
        chat_ids = await self.live_chat.fetch_user_chat_ids(me) if me else []
        if chat_ids:
            return await self.live_chat.open_chat(chat_ids[0])
        return None

    async def _search_agent(self) -> dict[str, Any] | None:
        chat = self.session.chat
        if chat is None:
            raise StateError("No chat to search an agent for")
        try:
            return await chat.search_agent()
        except Exception as e:
            raise NetworkError(f"Agent search failed: {e}") from e

    def _attach(self, chat: ChatHandle, state: SessionState) -> None:
        self.session.chat = chat
        self._transition(state)

    def _record_failure(self, operation: str, error: Exception) -> None:
        if not isinstance(error, BridgeError):
            wrapped = NetworkError(f"{operation} failed: {error}")
            wrapped.__cause__ = error
            error = wrapped
        self.last_error = error
        logger.error(f"Failed to {operation} chat: {error}", exc_info=error)
        # Nothing was opened remotely, so there is nothing left to close
        if self.session.chat is None and self.session.state.is_open:
            self._reset_session()

    # -- Restore -------------------------------------------------------------------

    async def restore(self) -> bool:
        """Reattach to the chat left open by a previous page load.

        Returns:
            True if a chat was found and reattached.
        """
        if self.is_chat_open():
            return False

        async with self._lifecycle_lock:
            if self.is_chat_open():
                return False
            self.last_error = None
            self._set_connecting_mode()
            try:
                await self._initialize_sdk()
                chat = self._find_open_chat()
                if chat is None:
                    logger.info("No open chat to restore")
                    self.marker.clear()
                    self._set_connected_mode()
                    return False

                self._attach(chat, SessionState.ACTIVE)
                if self.live_chat.is_logged:
                    replayed = self.bridge.replay_missed(chat.read_unread_history())
                    logger.debug(f"Replayed {replayed} missed message(s)")
                self._set_connected_mode()
                self._show_all_buttons()
                self._monitor_user_activity()
            except Exception as e:
                self._set_connected_mode()
                self._record_failure("restore", e)
                return False
        return True

    def _find_open_chat(self) -> ChatHandle | None:
        # A user has at most one chat open at a time
        for chat in self.live_chat.lobby_chats().values():
            if not chat.closed:
                return chat
        return None

    # -- Close ---------------------------------------------------------------------

    async def close(self, clear: bool = False) -> None:
        """Close the active chat.

        Args:
            clear: Clear the session right away instead of waiting for the
                service's terminal event (suppresses the fallback timer).

        Raises:
            StateError: If there is no active chat, or it is still connecting.
            NetworkError: If the service refused to close the chat.
        """
        session = self.session
        if session.chat is None or not session.state.is_open or session.state is SessionState.CLOSING:
            raise StateError("No active chat to close")
        if self._lifecycle_lock.locked():
            raise StateError("Chat is still connecting")

        data = {"chatId": session.chat.id, "userId": self.live_chat.me()}
        try:
            await session.chat.close()
        except Exception as e:
            raise NetworkError(f"Failed to close chat: {e}") from e

        await self.on_chat_closed(data, schedule_fallback=not clear)
        if clear:
            await self._clear_and_show_chat_closed_message()

    async def on_chat_closed(self, data: dict[str, Any], schedule_fallback: bool = True) -> None:
        """Handle the end of a chat, whether closed locally or by the service."""
        if not self.session.state.is_open:
            logger.debug("Chat close already handled")
            return

        if self.session.state is not SessionState.CLOSING:
            self._transition(SessionState.CLOSING)
        await self.store.set_item(LAST_CLOSED_TIME, get_unix_time())
        self.events.emit(PublicEventKind.CHAT_CLOSED, data)

        self.bot.set_chatbot_name({"source": "default"})
        self.bot.hide_chatbot_activity()
        self._transition(SessionState.CLOSED)

        if schedule_fallback:
            self._schedule_fallback()

    def _schedule_fallback(self) -> None:
        self._cancel_fallback()
        self._fallback_task = asyncio.create_task(self._fallback_cleanup())

    def _cancel_fallback(self) -> None:
        task = self._fallback_task
        self._fallback_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _fallback_cleanup(self) -> None:
        """Clear the session if the service never sent its terminal event."""
        try:
            await asyncio.sleep(self.close_fallback_seconds)
            if self.session.state is SessionState.CLOSED:
                logger.info("No terminal event received after close, clearing session")
                await self._clear_and_show_chat_closed_message()
                await self.store.set_item(LAST_CLOSED_TIME, get_unix_time())
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Close fallback cleanup failed: {e}", exc_info=True)

    async def _clear_and_show_chat_closed_message(self) -> None:
        await self.clear()
        self.bridge.display_system("chat-closed")

    async def clear(self) -> None:
        """Discard the chat and session state. Safe to call when already idle."""
        session = self.session
        if session.state is SessionState.IDLE and session.chat is None:
            logger.debug("Nothing to clear")
            return

        if self.config.transcript_download:
            # Keep the token so a transcript can still be requested after a reload
            token = self.live_chat.get_token()
            if token:
                await self.store.set_item(PREVIOUS_TOKEN, token)

        self._cancel_fallback()
        snapshot = session.bot_snapshot
        session.chat = None
        self._hide_all_buttons()
        self._restore_previous_bot_state(snapshot)
        self.live_chat.close_lobby()
        self.bridge.reset()
        self._reset_session()
        logger.info("Session cleared")

    # -- Live chat events ----------------------------------------------------------

    async def on_user_joined(self, data: dict[str, Any]) -> None:
        self.events.emit(PublicEventKind.USER_JOINED, data)

        agent_name = display_name(data.get("user") or {})
        self.bot.set_chatbot_name({"source": "name", "name": agent_name})
        self.bridge.display_system("agent-joined", {"agentName": agent_name})

        if self.session.state in (SessionState.SEARCHING_AGENT, SessionState.WAITING_FOR_AGENT):
            self._transition(SessionState.ACTIVE)

    async def on_user_left(self, data: dict[str, Any]) -> None:
        self.events.emit(PublicEventKind.USER_LEFT, data)

        agent_name = display_name(data.get("user") or {})
        self.bridge.display_system("agent-left", {"agentName": agent_name})

    async def on_user_activity(self, data: dict[str, Any]) -> None:
        """Toggle the typing indicator for a chat participant."""
        if not data:
            return
        chat = self.session.chat
        user = next((u for u in chat.users if u.get("id") == data.get("userId")), None) if chat else None
        if user is None:
            logger.debug(f"Ignoring activity of unknown user {data.get('userId')}")
            return

        name = display_name(user)
        activity = data.get("type")
        if activity == "writing":
            self.bot.display_chatbot_activity({"type": "writing", "name": name, "userId": user.get("id")})
        elif activity in ("not-writing", "stop-writing"):
            self.bot.hide_chatbot_activity({"type": "not-writing", "name": name, "userId": user.get("id")})

    async def on_chat_intervened(self, data: dict[str, Any]) -> None:
        """Another agent took over the chat."""
        for user in data.get("intervenedUsers") or []:
            await self.on_user_left({"user": user})
        await self.on_user_joined({"user": data.get("interventor") or {}})

    async def on_forever_alone(self, data: dict[str, Any]) -> None:
        """No agent can attend the chat: tell the user and close it."""
        self.bridge.display_system("no-agents")
        chat = self.session.chat
        if chat is not None:
            try:
                await chat.close()
            except Exception as e:
                logger.warning(f"Failed to close unattended chat: {e}")

        await self.on_chat_closed({
            "chatId": chat.id if chat is not None else None,
            "userId": self.live_chat.me(),
        })

    async def on_system_info(self, data: dict[str, Any]) -> None:
        """Terminal notification from the service after a chat ends."""
        info = data.get("data") or {}
        ticket_id = info.get("ticketId")
        if ticket_id:
            self.events.emit(PublicEventKind.TICKET_CREATED, info)
            data = {**data, "type": TICKET_DATA_OPTION}

        await self._clear_and_show_chat_closed_message()

        if self.config.transcript_download and ticket_id:
            self.bridge.display_system(ticket_id, options=[{"value": data, "label": "download"}])

        await self.store.set_item(LAST_CLOSED_TIME, get_unix_time())

        if self.survey is not None:
            await self.survey.show(ticket_id)

    # -- Bot events ----------------------------------------------------------------

    async def on_ready(self) -> bool:
        """Restore a chat left open by a previous page load, if any."""
        if self.marker.is_set() and not self.is_chat_open():
            return await self.restore()
        return False

    async def on_select_system_message_option(
        self, option_data: dict[str, Any], next_handler: NextHandler | None
    ) -> Any:
        option = option_data.get("option") or {}
        value = option.get("value")

        if self.config.transcript is not None and isinstance(value, dict) and value.get("type") == TICKET_DATA_OPTION:
            await self.download_transcript(value)
            return None
        if self.is_chat_open() and option_data.get("id") == CLOSE_CHAT_OPTION and value == "yes":
            await self.close()
            return None
        return next_handler(option_data) if next_handler else None

    async def download_transcript(self, value: dict[str, Any]) -> None:
        """Request the transcript of a finished chat."""
        transcript = self.config.transcript
        props: dict[str, Any] = transcript.model_dump() if transcript is not None else {}
        props["ticketId"] = (value.get("data") or {}).get("ticketId")

        request_data: dict[str, Any] = {}
        previous_token = await self._previous_token()
        if previous_token:
            request_data["token"] = previous_token

        await self.live_chat.download_conversation(value.get("chatId"), props, request_data)

    async def _previous_token(self) -> str | None:
        if self.live_chat.get_token():
            return None
        return await self.store.get_item(PREVIOUS_TOKEN)

    # -- Bot UI --------------------------------------------------------------------

    def _set_connecting_mode(self) -> None:
        self.bot.disable_input()

    def _set_connected_mode(self) -> None:
        self.bot.enable_input()

    def _capture_bot_snapshot(self) -> None:
        try:
            data = dict(self.bot.get_session_data() or {})
        except Exception as e:
            # No previous state to restore
            logger.debug(f"Could not read bot session data: {e}")
            data = {}
        data.pop("messages", None)
        self.session.bot_snapshot = data

    def _restore_previous_bot_state(self, snapshot: dict[str, Any]) -> None:
        if not snapshot:
            return
        if snapshot.get("closeButtonVisible"):
            self.bot.show_close_button()
        else:
            self.bot.hide_close_button()

    def _show_all_buttons(self) -> None:
        if self.config.file_uploads_active:
            self.bot.show_upload_media_button()
        if self.config.show_close_button:
            self.bot.show_close_button()

    def _hide_all_buttons(self) -> None:
        if self.config.file_uploads_active:
            self.bot.hide_upload_media_button()
        if self.config.show_close_button:
            self.bot.hide_close_button()

    def _monitor_user_activity(self) -> None:
        chat = self.session.chat
        if chat is not None and self.live_chat.is_initialized and self.session.state.is_open:
            self.live_chat.monitor_user_activity(chat, ACTIVITY_INTERVAL_MS, ACTIVITY_NO_CHANGE_MAX)
