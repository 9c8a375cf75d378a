"""Domain models for chat session lifecycle."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chatbridge.channels.base import ChatHandle


class SessionState(Enum):
    """Connection state of an escalation."""

    IDLE = "idle"
    CONNECTING = "connecting"
    SEARCHING_AGENT = "searching_agent"
    WAITING_FOR_AGENT = "waiting_for_agent"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"

    @property
    def is_open(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.CLOSED)


# Allowed transitions, keyed by source state. Clearing (any -> IDLE) is
# handled separately by the controller.
TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING, SessionState.ACTIVE}),
    SessionState.CONNECTING: frozenset({SessionState.SEARCHING_AGENT, SessionState.CLOSING}),
    SessionState.SEARCHING_AGENT: frozenset(
        {SessionState.WAITING_FOR_AGENT, SessionState.ACTIVE, SessionState.CLOSING}
    ),
    SessionState.WAITING_FOR_AGENT: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


@dataclass
class Session:
    """One escalation attempt, from connecting through closed.

    Attributes:
        id: Local identifier used to index the session's messages.
        state: Current connection state.
        chat: Handle to the live-chat session; set from SEARCHING_AGENT
            (or ACTIVE on restore) until the session is cleared.
        bot_snapshot: Bot presentation state captured at escalation time.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    chat: "ChatHandle | None" = None
    bot_snapshot: dict[str, Any] = field(default_factory=dict)

    def can_transition(self, new_state: SessionState) -> bool:
        return new_state in TRANSITIONS[self.state]


@dataclass
class Survey:
    """Post-chat survey kept across reloads until answered."""

    pending: bool
    content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"pending": self.pending, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Survey | None":
        if not data:
            return None
        return cls(pending=bool(data.get("pending")), content=data.get("content"))
