"""Tests for persistent session markers."""

import json

import pytest

from chatbridge.stores.state import (
    LAST_CLOSED_TIME,
    SURVEY,
    FileChatOpenMarker,
    JsonStateStore,
    MemoryChatOpenMarker,
    MemoryStateStore,
)


class TestJsonStateStore:
    """Tests for the JSON file backed store."""

    @pytest.mark.asyncio
    async def test_values_survive_reload(self, tmp_path):
        path = tmp_path / "state" / "chatbridge.json"
        store = JsonStateStore(path)

        await store.set_item(LAST_CLOSED_TIME, 1700000000)
        await store.set_item(SURVEY, {"pending": True, "content": "<iframe>"})

        reloaded = JsonStateStore(path)
        assert await reloaded.get_item(LAST_CLOSED_TIME) == 1700000000
        assert await reloaded.get_item(SURVEY) == {"pending": True, "content": "<iframe>"}
        assert json.loads(path.read_text())[LAST_CLOSED_TIME] == 1700000000

    @pytest.mark.asyncio
    async def test_corrupted_file_starts_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        store = JsonStateStore(path)

        assert await store.get_item(LAST_CLOSED_TIME) is None

    @pytest.mark.asyncio
    async def test_no_tmp_file_left_behind(self, tmp_path):
        store = JsonStateStore(tmp_path / "state.json")

        await store.set_item("a", 1)

        assert not (tmp_path / "state.tmp").exists()


class TestMemoryStateStore:
    @pytest.mark.asyncio
    async def test_initial_values(self):
        store = MemoryStateStore({"a": 1})

        assert await store.get_item("a") == 1
        assert await store.get_item("b") is None


class TestChatOpenMarkers:
    """Tests for the chat-open markers."""

    def test_memory_marker(self):
        marker = MemoryChatOpenMarker()

        assert marker.is_set() is False
        marker.set()
        assert marker.is_set() is True
        marker.clear()
        assert marker.is_set() is False

    def test_file_marker_survives_restart(self, tmp_path):
        path = tmp_path / "markers" / "chat-open"
        FileChatOpenMarker(path).set()

        marker = FileChatOpenMarker(path)
        assert marker.is_set() is True

        marker.clear()
        marker.clear()
        assert path.exists() is False
