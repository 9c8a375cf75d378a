"""Domain models for chat messages and their delivery status."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatbridge.core.errors import MessageDeliveryError


class MessageOrigin(Enum):
    """Who produced a message."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class MessageStatus(Enum):
    """Delivery status of a message.

    PENDING < SENT < DELIVERED < READ. FAILED is reachable from any
    non-terminal status. READ and FAILED are terminal.
    """

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.READ, MessageStatus.FAILED)

    @property
    def tick(self) -> str:
        """Delivery icon the bot UI shows for this status."""
        return _STATUS_TICK[self]

    def can_advance_to(self, new: "MessageStatus") -> bool:
        """Check whether moving from this status to ``new`` is allowed."""
        if self.is_terminal:
            return False
        if new is MessageStatus.FAILED:
            return True
        return new.rank > self.rank


_STATUS_RANK = {
    MessageStatus.PENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
    MessageStatus.FAILED: 4,
}

_STATUS_TICK = {
    MessageStatus.PENDING: "WAITING_TICK",
    MessageStatus.SENT: "SINGLE_TICK",
    MessageStatus.DELIVERED: "SINGLE_TICK",
    MessageStatus.READ: "DOUBLE_TICK",
    MessageStatus.FAILED: "ERROR_TICK",
}


@dataclass
class MediaDescriptor:
    """A file attached to a message.

    Attributes:
        name: Display name of the file.
        url: Remote URL of the file.
        mime_type: MIME type if known.
        metadata: Additional service-specific fields.
    """

    name: str | None = None
    url: str | None = None
    mime_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MediaDescriptor":
        known = {"name", "url", "type", "mime_type"}
        return cls(
            name=data.get("name"),
            url=data.get("url"),
            mime_type=data.get("mime_type") or data.get("type"),
            metadata={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.metadata)
        if self.name is not None:
            data["name"] = self.name
        if self.url is not None:
            data["url"] = self.url
        if self.mime_type is not None:
            data["type"] = self.mime_type
        return data


@dataclass
class Message:
    """A single chat line tracked by the bridge.

    ``session_id`` is a lookup key into the owning session, not a reference
    to it. ``error`` holds the last delivery failure of a FAILED message.
    """

    local_id: str
    origin: MessageOrigin
    payload: str
    session_id: str | None = None
    external_id: str | None = None
    status: MessageStatus = MessageStatus.PENDING
    sender: str | None = None
    content_type: str = "text"
    media: MediaDescriptor | None = None
    created_at: int | None = None
    error: MessageDeliveryError | None = None

    def advance(self, status: MessageStatus) -> bool:
        """Move to ``status`` if the transition is allowed.

        Returns:
            True if the status changed, False if the transition was rejected.
        """
        if not self.status.can_advance_to(status):
            return False
        self.status = status
        return True

    def to_chat_payload(self) -> dict[str, Any]:
        """Convert to the live-chat service's history message format."""
        data: dict[str, Any] = {
            "type": self.content_type,
            "message": self.payload,
            "sender": self.sender,
        }
        if self.created_at is not None:
            data["created"] = self.created_at
        return data
