"""Domain models for the chat bridge."""

from chatbridge.model.events import BotEventKind, ChatEventKind, PublicEventKind
from chatbridge.model.history import HistoryEntry, HistoryKind
from chatbridge.model.message import MediaDescriptor, Message, MessageOrigin, MessageStatus
from chatbridge.model.session import Session, SessionState, Survey

__all__ = [
    "BotEventKind",
    "ChatEventKind",
    "HistoryEntry",
    "HistoryKind",
    "MediaDescriptor",
    "Message",
    "MessageOrigin",
    "MessageStatus",
    "PublicEventKind",
    "Session",
    "SessionState",
    "Survey",
]
