"""Conversion of bot transcripts into live-chat history messages."""

import json
import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from chatbridge.model.history import HistoryEntry, HistoryKind
from chatbridge.model.message import Message, MessageOrigin, MessageStatus

logger = logging.getLogger(__name__)

# Maximum number of bot transcript entries imported into a chat
MAX_HISTORY_ENTRIES = 150
# Custom field the bridge stores the chat sender id under on displayed messages
SENDER_ID_KEY = "chatSenderId"
GUEST_SENDER = "guest"
SYSTEM_SENDER = "assistant"


class HistoryReconciler:
    """Turns a bot transcript into messages the live-chat service can import.

    Entries created at or before ``filter_time`` are dropped so that history
    shown in a previous chat is not imported twice.

    Example:
        >>> reconciler = HistoryReconciler(current_user=lambda: "u-1")
        >>> entries = [HistoryEntry(created_at=100, message="hi"),
        ...            HistoryEntry(created_at=200, message="bye")]
        >>> [m.payload for m in reconciler.reconcile(entries, filter_time=150)]
        ['bye']
    """

    def __init__(
        self,
        current_user: Callable[[], str | None],
        max_entries: int = MAX_HISTORY_ENTRIES,
    ):
        """Initialize the reconciler.

        Args:
            current_user: Returns the live-chat id of the connected user.
            max_entries: Upper bound of transcript entries considered.
        """
        self._current_user = current_user
        self.max_entries = max_entries

    def reconcile(
        self,
        transcript: Iterable[HistoryEntry | dict[str, Any]],
        filter_time: int | None = None,
        session_id: str | None = None,
    ) -> Iterator[Message]:
        """Yield history messages for the most recent transcript entries.

        The returned iterator is one-shot. ``filter_time`` is bound when this
        method is called, not when the iterator is consumed.

        Args:
            transcript: Bot transcript, oldest first. Raw dicts are parsed.
            filter_time: Cutoff UNIX time; entries at or before it are dropped.
            session_id: Session the produced messages belong to.
        """
        entries = deque(transcript, maxlen=self.max_entries)
        return self._iter_messages(entries, filter_time, session_id)

    def _iter_messages(
        self,
        entries: Iterable[HistoryEntry | dict[str, Any]],
        filter_time: int | None,
        session_id: str | None,
    ) -> Iterator[Message]:
        for index, raw in enumerate(entries):
            entry = raw if isinstance(raw, HistoryEntry) else HistoryEntry.from_transcript(raw)
            if filter_time and entry.created_at <= filter_time:
                continue
            yield self._to_message(entry, index, session_id)

    def _to_message(self, entry: HistoryEntry, index: int, session_id: str | None) -> Message:
        content_type = "text"
        payload = entry.message
        sender: str | None = None
        origin: MessageOrigin | None = None

        if entry.kind in (HistoryKind.POLAR_QUESTION, HistoryKind.MULTIPLE_CHOICE):
            content_type = "object"
            payload = json.dumps({"message": entry.message, "options": entry.options})
        elif entry.kind is HistoryKind.EXTENDED_CONTENTS:
            content_type = "object"
            payload = json.dumps({
                "message": entry.message,
                "options": [{"label": sub.get("message")} for sub in entry.sub_answers],
            })
        elif entry.kind is HistoryKind.DOWNLOAD:
            file = entry.message if isinstance(entry.message, dict) else {}
            payload = file.get("name") or file.get("url")
        elif entry.kind is HistoryKind.SYSTEM:
            sender = SYSTEM_SENDER
            origin = MessageOrigin.SYSTEM

        if sender is None:
            sender, origin = self._resolve_sender(entry)

        return Message(
            local_id=entry.id or f"history-{entry.created_at}-{index}",
            origin=origin or MessageOrigin.AGENT,
            payload=payload if isinstance(payload, str) else str(payload or ""),
            session_id=session_id,
            status=MessageStatus.SENT,
            sender=sender,
            content_type=content_type,
            created_at=entry.created_at,
        )

    def _resolve_sender(self, entry: HistoryEntry) -> tuple[str | None, MessageOrigin]:
        me = self._current_user()
        sender_id = entry.custom.get(SENDER_ID_KEY)
        if sender_id:
            origin = MessageOrigin.USER if sender_id == me else MessageOrigin.AGENT
            return sender_id, origin
        if entry.user == GUEST_SENDER:
            return me, MessageOrigin.USER
        return entry.user, MessageOrigin.AGENT
