"""Domain models for bot transcript entries."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class HistoryKind(Enum):
    """Kind tag of a bot transcript entry."""

    TEXT = "text"
    POLAR_QUESTION = "polarQuestion"
    MULTIPLE_CHOICE = "multipleChoiceQuestion"
    EXTENDED_CONTENTS = "extendedContentsAnswer"
    DOWNLOAD = "download"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str | None) -> "HistoryKind":
        """Map a raw transcript type to a kind, defaulting to TEXT."""
        try:
            return cls(value)
        except ValueError:
            return cls.TEXT


@dataclass
class HistoryEntry:
    """An item recovered from the bot platform's transcript.

    Transient: consumed once by the reconciler and never persisted.

    Attributes:
        created_at: UNIX timestamp the entry was produced at.
        kind: Entry kind.
        message: Text, or a file descriptor dict for downloads.
        user: Raw sender tag recorded by the bot ("guest", "assistant", ...).
        options: Choice options for question entries.
        sub_answers: Sub-answers for extended-contents entries.
        custom: Custom data attached by the bridge (e.g. the chat sender id).
        id: Bot-side id of the entry if known.
    """

    created_at: int
    kind: HistoryKind = HistoryKind.TEXT
    message: Any = ""
    user: str | None = None
    options: list[Any] = field(default_factory=list)
    sub_answers: list[dict[str, Any]] = field(default_factory=list)
    custom: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def from_transcript(cls, data: dict[str, Any]) -> "HistoryEntry":
        """Create an entry from a raw bot transcript item."""
        return cls(
            created_at=int(data.get("datetime") or 0),
            kind=HistoryKind.parse(data.get("type")),
            message=data.get("message", ""),
            user=data.get("user"),
            options=list(data.get("options") or []),
            sub_answers=list(data.get("subAnswers") or []),
            custom=dict(data.get("custom") or {}),
            id=data.get("id"),
        )
