"""Persistent markers kept across page reloads."""

from chatbridge.stores.state import (
    LAST_CLOSED_TIME,
    PREVIOUS_TOKEN,
    SURVEY,
    ChatOpenMarker,
    FileChatOpenMarker,
    JsonStateStore,
    MemoryChatOpenMarker,
    MemoryStateStore,
    PersistentStateStore,
)

__all__ = [
    "LAST_CLOSED_TIME",
    "PREVIOUS_TOKEN",
    "SURVEY",
    "ChatOpenMarker",
    "FileChatOpenMarker",
    "JsonStateStore",
    "MemoryChatOpenMarker",
    "MemoryStateStore",
    "PersistentStateStore",
]
