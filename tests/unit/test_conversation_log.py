"""Unit tests for ConversationLog and DeviceIdentity."""

import asyncio
import json
import re
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from splatter.models.session import ConversationMessage
from splatter.services.conversation_log import ConversationLog
from splatter.storage.device_identity import DeviceIdentity, generate_device_id


def make_store(session_id="session-1", update_ok=True):
    store = Mock()
    store.create_session = AsyncMock(return_value=session_id)
    store.update_session = AsyncMock(return_value=update_ok)
    store.end_session = AsyncMock(return_value=True)
    return store


def make_identity(device_id="device_1_abcdefghi"):
    identity = Mock()
    identity.get_or_create.return_value = device_id
    return identity


@pytest.mark.unit
class TestConversationLog:
    """Test cases for ConversationLog."""

    def test_session_created_lazily_on_first_exchange(self):
        async def scenario():
            store = make_store()
            log = ConversationLog(store, make_identity())
            store.create_session.assert_not_awaited()

            await log.record("I went hiking", "Where did you go?")
            await log.record("Up the ridge", "How did it feel at the top?")

            store.create_session.assert_awaited_once_with("device_1_abcdefghi")
            assert store.update_session.await_count == 2
            session_id, messages = store.update_session.await_args.args
            assert session_id == "session-1"
            assert [m.user_message for m in messages] == ["I went hiking", "Up the ridge"]

        asyncio.run(scenario())

    def test_empty_user_message_not_persisted(self):
        async def scenario():
            store = make_store()
            log = ConversationLog(store, make_identity())

            message = await log.record("   ", "Could you say more?")

            assert message.ai_response == "Could you say more?"
            assert log.messages == []
            store.create_session.assert_not_awaited()
            store.update_session.assert_not_awaited()

        asyncio.run(scenario())

    def test_failed_session_creation_keeps_messages_in_memory(self):
        async def scenario():
            store = make_store(session_id=None)
            log = ConversationLog(store, make_identity())

            await log.record("Hello", "Hi there")

            assert len(log.messages) == 1
            store.update_session.assert_not_awaited()

        asyncio.run(scenario())

    def test_failed_update_does_not_raise(self):
        async def scenario():
            store = make_store(update_ok=False)
            log = ConversationLog(store, make_identity())

            await log.record("Hello", "Hi there")

            assert len(log.messages) == 1

        asyncio.run(scenario())

    def test_without_store(self):
        async def scenario():
            log = ConversationLog(None, make_identity())
            await log.record("Hello", "Hi there")
            await log.close()

            assert len(log.messages) == 1

        asyncio.run(scenario())

    def test_close_ends_session_once_created(self):
        async def scenario():
            store = make_store()
            log = ConversationLog(store, make_identity())
            await log.close()
            store.end_session.assert_not_awaited()

            await log.record("Hello", "Hi there")
            await log.close()
            store.end_session.assert_awaited_once_with("session-1")

        asyncio.run(scenario())


@pytest.mark.unit
class TestConversationMessage:
    """Row format shared with the session store."""

    def test_row_round_trip_keys(self):
        message = ConversationMessage(user_message="Hi", ai_response="Hello")
        row = message.to_row()

        assert set(row) == {"timestamp", "userMessage", "aiResponse"}
        restored = ConversationMessage.from_row(row)
        assert restored.user_message == "Hi"
        assert restored.timestamp == message.timestamp

    def test_from_row_accepts_utc_suffix(self):
        restored = ConversationMessage.from_row({
            "timestamp": "2024-03-01T10:00:00Z", "userMessage": "a", "aiResponse": "b",
        })

        assert restored.timestamp.year == 2024
        assert restored.timestamp.utcoffset().total_seconds() == 0


@pytest.mark.unit
class TestDeviceIdentity:
    """Test cases for DeviceIdentity."""

    def test_generated_id_format(self):
        assert re.fullmatch(r"device_\d{13}_[0-9a-z]{9}", generate_device_id())

    def test_id_is_persisted_and_reused(self, tmp_path):
        first = DeviceIdentity(str(tmp_path)).get_or_create()
        second = DeviceIdentity(str(tmp_path)).get_or_create()

        assert first == second
        stored = json.loads((tmp_path / "device.json").read_text())
        assert stored["device_id"] == first

    def test_creates_data_directory(self, tmp_path):
        data_dir = tmp_path / "nested" / "data"
        DeviceIdentity(str(data_dir)).get_or_create()

        assert (data_dir / "device.json").exists()

    def test_corrupt_file_is_replaced(self, tmp_path):
        path = Path(tmp_path) / "device.json"
        path.write_text("{not json")

        device_id = DeviceIdentity(str(tmp_path)).get_or_create()

        assert device_id.startswith("device_")
        assert json.loads(path.read_text())["device_id"] == device_id
