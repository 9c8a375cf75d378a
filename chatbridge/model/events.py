"""Typed event kinds exchanged with the two chat platforms."""

from enum import Enum


class BotEventKind(Enum):
    """Inbound events from the conversational-agent platform."""

    ESCALATE_TO_AGENT = "escalateToAgent"
    READY = "ready"
    SEND_MESSAGE = "sendMessage"
    DOWNLOAD_MEDIA = "downloadMedia"
    UPLOAD_MEDIA = "uploadMedia"
    SELECT_SYSTEM_MESSAGE_OPTION = "selectSystemMessageOption"


class ChatEventKind(Enum):
    """Inbound events from the live-chat service."""

    USER_JOINED = "user:joined"
    USER_LEFT = "user:left"
    USER_ACTIVITY = "user:activity"
    MESSAGE_RECEIVED = "message:received"
    MESSAGE_READ = "message:read"
    CHAT_CLOSED = "chat:closed"
    CHAT_INTERVENED = "chat:intervened"
    FOREVER_ALONE = "forever:alone"
    SYSTEM_INFO = "system:info"


class PublicEventKind(Enum):
    """Lifecycle events re-published to the host application."""

    CHAT_CREATED = "chat:created"
    CHAT_CLOSED = "chat:closed"
    USER_JOINED = "user:joined"
    USER_LEFT = "user:left"
    TICKET_CREATED = "ticket:created"
