"""Message translation and delivery-status bookkeeping between the platforms."""

import logging
from collections.abc import Callable
from typing import Any

from chatbridge.bridge.history import SENDER_ID_KEY
from chatbridge.channels.base import BotPlatform, ChatServiceError, LiveChatService, NextHandler
from chatbridge.core.errors import MessageDeliveryError, StateError
from chatbridge.core.utils import display_name
from chatbridge.model.message import MediaDescriptor, Message, MessageOrigin, MessageStatus
from chatbridge.model.session import Session, SessionState

logger = logging.getLogger(__name__)

# Text shown in place of a media message body
MEDIA_PLACEHOLDER = "void"
FILE_TYPE_NOT_ALLOWED = "File type is not allowed"


class MessageTable:
    """Messages of the current session, indexed by local and external id.

    Status changes for one message are applied in the order they are
    observed; transitions that would move a status backwards are rejected.
    """

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}
        self._by_external: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, local_id: object) -> bool:
        return local_id in self._messages

    def add(self, message: Message) -> Message:
        self._messages[message.local_id] = message
        if message.external_id:
            self._by_external[message.external_id] = message.local_id
        return message

    def get(self, local_id: str) -> Message | None:
        return self._messages.get(local_id)

    def find_by_external_id(self, external_id: str) -> Message | None:
        local_id = self._by_external.get(external_id)
        return self._messages.get(local_id) if local_id else None

    def bind_external_id(self, local_id: str, external_id: str) -> Message | None:
        """Attach (or replace) the external id of a message."""
        message = self._messages.get(local_id)
        if message is None:
            return None
        if message.external_id:
            self._by_external.pop(message.external_id, None)
        message.external_id = external_id
        self._by_external[external_id] = local_id
        return message

    def advance(self, local_id: str, status: MessageStatus) -> bool:
        """Move a message to ``status``.

        Returns:
            True if applied, False if the message is unknown or the
            transition would regress its status.
        """
        message = self._messages.get(local_id)
        if message is None:
            return False
        if not message.advance(status):
            logger.debug(
                f"Rejected status change for {local_id}: {message.status.value} -> {status.value}"
            )
            return False
        return True

    def clear(self) -> None:
        self._messages.clear()
        self._by_external.clear()


class MessageBridge:
    """Maps messages and their delivery status between the two platforms.

    The session is looked up through ``session_provider`` on every call;
    the bridge never holds on to it.
    """

    def __init__(
        self,
        bot: BotPlatform,
        live_chat: LiveChatService,
        session_provider: Callable[[], Session],
        table: MessageTable | None = None,
    ):
        self.bot = bot
        self.live_chat = live_chat
        self._session_provider = session_provider
        self.table = table or MessageTable()

    @property
    def session(self) -> Session:
        return self._session_provider()

    # -- Bot platform -> live chat -------------------------------------------------

    async def on_send_message(self, message: dict[str, Any], next_handler: NextHandler | None) -> Any:
        """Handle a message the user typed in the bot UI.

        Without an open chat the message continues through the bot's own
        pipeline; otherwise it is sent to the live chat.
        """
        if not self.session.state.is_open:
            return next_handler(message) if next_handler else None
        return await self.send(message)

    async def send(self, message: dict[str, Any]) -> Message | None:
        """Send a user message to the attached chat.

        Raises:
            StateError: If no chat is attached or the session is closing.
        """
        session = self.session
        chat = session.chat
        if chat is None or session.state is SessionState.CLOSING:
            raise StateError("No open chat")

        local_id = message.get("id")
        if local_id is None:
            # Without a bot-side id the message status can't be tracked
            logger.debug("Ignoring message without id")
            return None
        local_id = str(local_id)

        tracked = self.table.add(Message(
            local_id=local_id,
            origin=MessageOrigin.USER,
            payload=message.get("message", ""),
            session_id=session.id,
            sender=self.live_chat.me(),
        ))
        self._set_status(local_id, MessageStatus.PENDING)

        def on_created(event_id: str) -> None:
            # A late notification after the send resolved must not regress it
            if self._set_status(local_id, MessageStatus.PENDING):
                self._set_external_id(local_id, event_id)

        try:
            data = await chat.send_message(tracked.payload, on_created)
        except Exception as e:
            # The error tick lets the user retry from the bot UI
            self._fail(local_id, MessageDeliveryError(f"Failed to send message {local_id}: {e}", local_id=local_id))
            return tracked

        external_id = (data.get("message") or {}).get("id")
        event_id = data.get("eventId")
        if external_id:
            if event_id and tracked.external_id == event_id:
                self._rebind_external_id(event_id, external_id)
            else:
                self._set_external_id(local_id, external_id)
        self._set_status(local_id, MessageStatus.SENT)
        return tracked

    async def upload_media(self, media: dict[str, Any], next_handler: NextHandler | None) -> Any:
        """Upload a file the user attached in the bot UI.

        Raises:
            StateError: If the chat is closing.
        """
        session = self.session
        chat = session.chat
        if not self.live_chat.is_initialized or chat is None or not session.state.is_open:
            return next_handler(media) if next_handler else None
        if session.state is SessionState.CLOSING:
            raise StateError("No open chat")

        message_id = media.get("messageId")
        local_id = str(message_id) if message_id is not None else None
        file = media.get("file")
        descriptor = MediaDescriptor.from_dict(file) if isinstance(file, dict) else MediaDescriptor(
            name=getattr(file, "name", None)
        )
        if local_id is None:
            logger.debug("Uploading media without id, its status won't be tracked")
        else:
            self.table.add(Message(
                local_id=local_id,
                origin=MessageOrigin.USER,
                payload=descriptor.name or "",
                session_id=session.id,
                sender=self.live_chat.me(),
                media=descriptor,
            ))
            self._set_status(local_id, MessageStatus.PENDING)

        def on_progress(progress: float) -> None:
            logger.debug(f"Upload {local_id}: {progress}")

        try:
            data = await chat.send_media(file, on_progress)
        except ChatServiceError as e:
            self._fail(local_id, MessageDeliveryError(
                f"Media upload {local_id} rejected: {e.code} {e.message}", local_id=local_id
            ))
            if e.code == 403 and e.message == FILE_TYPE_NOT_ALLOWED:
                self.display_system("file-extension-not-allowed")
            return None
        except Exception as e:
            self._fail(local_id, MessageDeliveryError(f"Media upload {local_id} failed: {e}", local_id=local_id))
            return None

        if local_id is None:
            return None
        self._set_status(local_id, MessageStatus.SENT)
        media_id = (data.get("media") or {}).get("id")
        if media_id:
            self._set_external_id(local_id, media_id)
        return self.table.get(local_id)

    def download_media(self, media: dict[str, Any], next_handler: NextHandler | None) -> Any:
        """Download a file shown in the bot UI through the live-chat service."""
        if not self.live_chat.is_initialized:
            return next_handler(media) if next_handler else None

        file = dict(media.get("file") or {})
        external_id = media.get("messageExternalId")
        if external_id:
            file["url"] = f"/media/{external_id}"
        self.live_chat.download_media(file)
        return None

    # -- Live chat -> bot platform -------------------------------------------------

    async def on_message_received(self, data: dict[str, Any]) -> None:
        """Display a message received from the live chat."""
        message = data.get("message") or {}
        raw_sender = message.get("sender")
        sender = raw_sender.get("id") if isinstance(raw_sender, dict) else raw_sender
        session_id = self.session.id

        # The same user typing from another tab
        if sender is not None and sender == self.live_chat.me():
            local_id = self.bot.display_user_message({
                "type": "user",
                "user": sender,
                "message": message.get("message"),
                "custom": {SENDER_ID_KEY: sender},
            })
            if local_id is not None:
                self.table.add(Message(
                    local_id=str(local_id),
                    origin=MessageOrigin.USER,
                    payload=str(message.get("message") or ""),
                    session_id=session_id,
                    status=MessageStatus.SENT,
                    sender=sender,
                ))
                if message.get("id"):
                    self._set_external_id(str(local_id), message["id"])
            return

        if not isinstance(sender, str):
            logger.debug(f"Ignoring message with unresolvable sender: {raw_sender!r}")
            return

        display: dict[str, Any] = {
            "type": "answer",
            "user": sender,
            "custom": {SENDER_ID_KEY: sender},
        }
        media: MediaDescriptor | None = None
        if message.get("type") == "media":
            display["media"] = message.get("message")
            display["message"] = MEDIA_PLACEHOLDER
            if isinstance(message.get("message"), dict):
                media = MediaDescriptor.from_dict(message["message"])
        else:
            display["message"] = message.get("message")

        local_id = self.display_agent_message(display)
        external_id = message.get("id")
        tracking_id = local_id if local_id is not None else external_id
        if tracking_id is None:
            logger.debug("Agent message has no id, not tracking it")
            return
        self.table.add(Message(
            local_id=str(tracking_id),
            origin=MessageOrigin.AGENT,
            payload=str(display["message"] or ""),
            session_id=session_id,
            external_id=external_id,
            status=MessageStatus.DELIVERED,
            sender=sender,
            media=media,
        ))

    async def on_message_read(self, data: dict[str, Any]) -> None:
        """Mark one of the user's messages as read by the agent."""
        message = data.get("message") if data else None
        if not message or message.get("sender") != self.live_chat.me():
            return

        external_id = message.get("id")
        if not external_id:
            return

        tracked = self.table.find_by_external_id(external_id)
        if tracked is not None:
            if tracked.status not in (MessageStatus.SENT, MessageStatus.DELIVERED):
                logger.debug(f"Ignoring read receipt for {tracked.local_id} in status {tracked.status.value}")
                return
            tracked.advance(MessageStatus.READ)
        # Messages sent before a reload are not tracked but still shown
        self.bot.update_message({"action": MessageStatus.READ.tick, "externalId": external_id})

    def replay_missed(self, unread: dict[str, dict[str, Any]]) -> int:
        """Display messages received while the page was unloaded.

        Returns:
            Number of messages displayed.
        """
        count = 0
        for message_id, message in unread.items():
            raw_sender = message.get("sender")
            sender = raw_sender.get("id") if isinstance(raw_sender, dict) else raw_sender
            local_id = self.display_agent_message({
                "type": "answer",
                "user": sender,
                "message": message.get("message"),
                "custom": {SENDER_ID_KEY: sender},
            })
            self.table.add(Message(
                local_id=str(local_id if local_id is not None else message_id),
                origin=MessageOrigin.AGENT,
                payload=str(message.get("message") or ""),
                session_id=self.session.id,
                external_id=message_id,
                status=MessageStatus.READ,
                sender=sender,
            ))
            count += 1
        return count

    # -- Display helpers -----------------------------------------------------------

    def display_system(
        self,
        key: str,
        replacements: dict[str, Any] | None = None,
        options: list[dict[str, Any]] | None = None,
    ) -> str | None:
        """Display a translated system message by its key."""
        message: dict[str, Any] = {"type": "system", "translate": True, "message": key}
        if replacements:
            message["replacements"] = replacements
        if options:
            message["options"] = options
        return self.bot.display_system_message(message)

    def display_agent_message(self, message: dict[str, Any]) -> str | None:
        self._update_agent_name(message.get("user"))
        return self.bot.display_chatbot_message(message)

    def _update_agent_name(self, sender: str | None) -> None:
        chat = self.session.chat
        if chat is None or sender is None:
            return
        user = next((u for u in chat.users if u.get("id") == sender), None)
        if user:
            self.bot.set_chatbot_name({"source": "name", "name": display_name(user)})

    # -- Status bookkeeping --------------------------------------------------------

    def _set_status(self, local_id: str, status: MessageStatus) -> bool:
        message = self.table.get(local_id)
        if message is not None and message.status is status:
            # Repeated notification of the current status; keep the UI in sync
            self.bot.update_message({"id": local_id, "action": status.tick})
            return True
        if not self.table.advance(local_id, status):
            return False
        self.bot.update_message({"id": local_id, "action": status.tick})
        return True

    def _fail(self, local_id: str | None, error: MessageDeliveryError) -> None:
        logger.warning(str(error))
        message = self.table.get(local_id) if local_id is not None else None
        if message is None:
            return
        message.error = error
        self._set_status(local_id, MessageStatus.FAILED)

    def _set_external_id(self, local_id: str, external_id: str) -> None:
        self.table.bind_external_id(local_id, external_id)
        self.bot.update_message({
            "action": "UPDATE_EXTERNAL",
            "id": local_id,
            "newExternalId": external_id,
        })

    def _rebind_external_id(self, old_external_id: str, new_external_id: str) -> None:
        tracked = self.table.find_by_external_id(old_external_id)
        if tracked is not None:
            self.table.bind_external_id(tracked.local_id, new_external_id)
        self.bot.update_message({
            "action": "UPDATE_EXTERNAL",
            "externalId": old_external_id,
            "newExternalId": new_external_id,
        })

    def reset(self) -> None:
        """Forget all messages of the current session."""
        self.table.clear()
