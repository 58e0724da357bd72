"""Tests for the support chat session."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wanderlust.config import ChatSettings
from wanderlust.models.chat import ChatStatus
from wanderlust.models.result import ErrorKind
from wanderlust.services.chat_service import ChatSession
from wanderlust.services.realtime import ChangeEvent, RowEvent
from wanderlust.services.supabase_client import SupabaseError


CHAT_ROW = {"id": 3, "user_id": "me", "status": "open", "created_at": "2024-05-01T10:00:00+00:00"}

MESSAGE_ROWS = [
    {
        "id": 1,
        "chat_id": 3,
        "sender_id": "agent",
        "message_text": "How can we help?",
        "created_at": "2024-05-01T10:00:01+00:00",
    },
]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client():
    client = MagicMock()
    client.select_one = AsyncMock(return_value=dict(CHAT_ROW))
    client.select = AsyncMock(return_value=[dict(r) for r in MESSAGE_ROWS])
    client.insert = AsyncMock(return_value=[{"id": 4, "user_id": "me", "status": "open"}])
    client.invoke_function = AsyncMock(return_value={"ok": True})
    return client


@pytest.fixture
def channels():
    channels = MagicMock()
    channels.subscribe = AsyncMock(side_effect=lambda **kw: MagicMock(topic=kw["topic"]))
    channels.remove_channel = AsyncMock()
    return channels


@pytest.fixture
def session(client, channels):
    return ChatSession(client, channels, "me", ChatSettings())


# =============================================================================
# Lifecycle Tests
# =============================================================================


@pytest.mark.asyncio
async def test_open_loads_latest_chat(session, client, channels):
    await session.open()

    assert session.chat_id == "3"
    assert [m.text for m in session.messages] == ["How can we help?"]

    _, kwargs = client.select_one.call_args
    assert kwargs["ascending"] is False
    assert kwargs["limit"] == 1

    topics = [c.kwargs["topic"] for c in channels.subscribe.call_args_list]
    assert topics == ["chat_3", "status_3"]
    message_kwargs = channels.subscribe.call_args_list[0].kwargs
    assert message_kwargs["event"] == ChangeEvent.INSERT
    assert message_kwargs["since"] == "2024-05-01T10:00:01+00:00"


@pytest.mark.asyncio
async def test_open_without_chat(session, client, channels):
    client.select_one.return_value = None

    await session.open()

    assert session.chat is None
    assert session.messages == []
    channels.subscribe.assert_not_called()


@pytest.mark.asyncio
async def test_context_releases_channels(session, channels):
    async with session:
        pass

    assert channels.remove_channel.await_count == 2


@pytest.mark.asyncio
async def test_context_releases_channels_on_error(session, channels):
    with pytest.raises(ValueError):
        async with session:
            raise ValueError("boom")

    assert channels.remove_channel.await_count == 2


# =============================================================================
# Send Tests
# =============================================================================


@pytest.mark.asyncio
async def test_send_appends_then_invokes(session, client):
    await session.open()

    result = await session.send("  Where is my ticket?  ")

    assert result.ok
    assert session.messages[-1].text == "Where is my ticket?"
    assert session.messages[-1].id == result.value
    name = client.invoke_function.call_args.args[0]
    body = client.invoke_function.call_args.kwargs["json"]
    assert name == "send-user-message"
    assert body == {
        "sender_id": "me",
        "sender_role": "user",
        "message_text": "Where is my ticket?",
        "client_id": result.value,
    }


@pytest.mark.asyncio
async def test_send_failure_rolls_back(session, client):
    await session.open()
    client.invoke_function.side_effect = SupabaseError("Edge Function returned a non-2xx status code")

    result = await session.send("hello")

    assert result.kind == ErrorKind.NETWORK
    assert result.message == "Edge Function returned a non-2xx status code"
    assert len(session.messages) == 1


@pytest.mark.asyncio
async def test_send_empty_rejected(session, client):
    await session.open()

    result = await session.send("   ")

    assert result.kind == ErrorKind.VALIDATION
    client.invoke_function.assert_not_called()


@pytest.mark.asyncio
async def test_send_on_closed_chat_rejected(session, client):
    client.select_one.return_value = {**CHAT_ROW, "status": "closed"}
    await session.open()

    result = await session.send("hello")

    assert result.kind == ErrorKind.CONFLICT
    assert len(session.messages) == 1
    client.invoke_function.assert_not_called()


@pytest.mark.asyncio
async def test_send_creates_chat_when_none(session, client, channels):
    client.select_one.return_value = None
    await session.open()

    result = await session.send("hello")

    assert result.ok
    assert session.chat_id == "4"
    client.insert.assert_awaited_once_with("support_chats", {"user_id": "me", "status": "open"})
    assert channels.subscribe.await_count == 2


# =============================================================================
# Channel Callback Tests
# =============================================================================


@pytest.mark.asyncio
async def test_remote_insert_reconciles(session):
    await session.open()
    pending_id = (await session.send("hello")).value

    session._on_message_insert(
        RowEvent(
            event=ChangeEvent.INSERT,
            table="chat_messages",
            record={
                "id": 2,
                "chat_id": 3,
                "sender_id": "me",
                "message_text": "hello",
                "created_at": "2024-05-01T10:00:05+00:00",
                "client_id": pending_id,
            },
        )
    )

    assert [m.id for m in session.messages] == ["1", "2"]


@pytest.mark.asyncio
async def test_status_update_closes_chat(session):
    await session.open()

    session._on_status_update(
        RowEvent(event=ChangeEvent.UPDATE, table="support_chats", record={**CHAT_ROW, "status": "closed"})
    )

    assert session.status == ChatStatus.CLOSED


@pytest.mark.asyncio
async def test_start_new_chat_resets_messages(session, client):
    await session.open()

    result = await session.start_new_chat()

    assert result.ok
    assert session.chat_id == "4"
    assert session.status == ChatStatus.OPEN
    assert session.messages == []
