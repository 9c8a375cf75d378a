"""Key/value storage for small session markers.

Keys written by the bridge:

- ``lastClosedTime``: UNIX time the last chat closed; history older than this
  is not re-imported into new chats.
- ``previousToken``: auth token of the last chat, kept for transcript downloads.
- ``survey``: ``{"pending": bool, "content": str}`` until the survey is answered.

One browser tab drives writes, so keys are single-writer in practice and no
cross-process locking is attempted.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LAST_CLOSED_TIME = "lastClosedTime"
PREVIOUS_TOKEN = "previousToken"
SURVEY = "survey"


class PersistentStateStore(ABC):
    """Async key/value store for session markers."""

    @abstractmethod
    async def get_item(self, key: str) -> Any: ...

    @abstractmethod
    async def set_item(self, key: str, value: Any) -> None: ...


class MemoryStateStore(PersistentStateStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._items: dict[str, Any] = dict(initial or {})

    async def get_item(self, key: str) -> Any:
        return self._items.get(key)

    async def set_item(self, key: str, value: Any) -> None:
        self._items[key] = value


class JsonStateStore(PersistentStateStore):
    """Store backed by a single JSON file.

    Example:
        >>> store = JsonStateStore(Path(".chatbridge/state.json"))
        >>> await store.set_item("lastClosedTime", 1700000000)
        >>> await store.get_item("lastClosedTime")
        1700000000
    """

    def __init__(self, path: Path | str):
        """Initialize the store.

        Args:
            path: Location of the JSON state file. Parent directories are created.
        """
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._items: dict[str, Any] = self._load()
        logger.info(f"JsonStateStore initialized: {self._path}")

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            logger.debug(f"State file does not exist: {self._path}")
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted state file {self._path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Invalid state format (expected dict): {self._path}")
            return {}
        return data

    def _save(self) -> None:
        """Persist items atomically (tmp file + rename). Caller must hold the lock."""
        tmp_path = self._path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(self._items, f, indent=2, default=str)
        tmp_path.replace(self._path)

    async def get_item(self, key: str) -> Any:
        async with self._lock:
            return self._items.get(key)

    async def set_item(self, key: str, value: Any) -> None:
        async with self._lock:
            self._items[key] = value
            self._save()
            logger.debug(f"Stored state key: {key}")


class ChatOpenMarker(ABC):
    """Tab-local flag signalling that a chat is open.

    Consulted when the bot becomes ready to decide whether to restore a chat.
    """

    @abstractmethod
    def is_set(self) -> bool: ...

    @abstractmethod
    def set(self) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class MemoryChatOpenMarker(ChatOpenMarker):
    def __init__(self, value: bool = False):
        self._value = value

    def is_set(self) -> bool:
        return self._value

    def set(self) -> None:
        self._value = True

    def clear(self) -> None:
        self._value = False


class FileChatOpenMarker(ChatOpenMarker):
    """Marker kept as the presence of a file, so it survives restarts."""

    def __init__(self, path: Path | str):
        self._path = Path(path)

    def is_set(self) -> bool:
        return self._path.exists()

    def set(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
