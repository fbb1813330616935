"""Tests for the message send path and history paging."""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from fixy.core.exceptions import AccessDenied, EntitlementDenied, NotFoundError, ValidationError
from fixy.db.models import Message
from fixy.queue.schemas import ReplyStatus
from fixy.services.messaging import MAX_MESSAGE_LENGTH

pytestmark = pytest.mark.unit


async def _message_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Message))


@pytest.fixture
async def room(services, make_user, make_chatroom):
    user_id = await make_user(plan="Pro", used="10", limit="500")
    chatroom_id = await make_chatroom(user_id)
    agent = await services.chatrooms.add_agent(user_id, chatroom_id, "Helper", "gpt-4o")
    return user_id, chatroom_id, uuid.UUID(agent.id)


@pytest.mark.asyncio
async def test_plain_message_is_stored_and_fanned_out(services, session_factory, room):
    user_id, chatroom_id, _ = room
    services.fanout.new_message = AsyncMock(return_value=True)

    result = await services.messages.send_message(user_id, chatroom_id, "  hello  ")

    assert result.reply_id is None
    assert result.message.content == "hello"
    assert result.message.sender_name == "Test User"
    services.fanout.new_message.assert_awaited_once()
    assert await _message_count(session_factory) == 1


@pytest.mark.asyncio
async def test_agent_message_starts_reply(services, room):
    user_id, chatroom_id, agent_id = room
    services.fanout.ai_thinking = AsyncMock(return_value=True)

    result = await services.messages.send_message(user_id, chatroom_id, "summarize", agent_id=agent_id)
    await services.dispatcher.drain()
    await services.ledger.drain_alerts()

    assert result.reply_id is not None
    services.fanout.ai_thinking.assert_awaited_once_with(chatroom_id, agent_id, "Helper", result.reply_id)
    reply = await services.state_machine.get_reply(result.reply_id)
    assert reply["status"] == ReplyStatus.DELIVERED.value
    assert reply["user_id"] == str(user_id)


@pytest.mark.asyncio
async def test_denied_send_stores_nothing(services, session_factory, make_user, make_chatroom):
    user_id = await make_user(plan="Pro", used="0", limit="500")
    chatroom_id = await make_chatroom(user_id)
    agent = await services.chatrooms.add_agent(user_id, chatroom_id, "Helper", "gpt-4o")
    await services.ledger.debit(user_id, 500, "usage")
    await services.ledger.drain_alerts()

    with pytest.raises(EntitlementDenied) as exc_info:
        await services.messages.send_message(user_id, chatroom_id, "hi", agent_id=uuid.UUID(agent.id))

    assert exc_info.value.reason == "credit_limit_reached"
    assert await _message_count(session_factory) == 0
    assert services.dispatcher.active_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "x" * (MAX_MESSAGE_LENGTH + 1)])
async def test_invalid_content(services, room, content):
    user_id, chatroom_id, _ = room

    with pytest.raises(ValidationError):
        await services.messages.send_message(user_id, chatroom_id, content)


@pytest.mark.asyncio
async def test_outsider_cannot_send(services, make_user, room):
    _, chatroom_id, _ = room
    outsider = await make_user()

    with pytest.raises(AccessDenied):
        await services.messages.send_message(outsider, chatroom_id, "hi")


@pytest.mark.asyncio
async def test_agent_from_other_room_rejected(services, make_chatroom, room):
    user_id, _, agent_id = room
    other_room = await make_chatroom(user_id)

    with pytest.raises(NotFoundError):
        await services.messages.send_message(user_id, other_room, "hi", agent_id=agent_id)


@pytest.mark.asyncio
async def test_status_setup_failure_reports_ai_failed(services, session_factory, room):
    user_id, chatroom_id, agent_id = room
    services.state_machine.create_reply = AsyncMock(side_effect=ConnectionError("redis down"))
    services.fanout.ai_failed = AsyncMock(return_value=True)

    result = await services.messages.send_message(user_id, chatroom_id, "hi", agent_id=agent_id)

    assert result.reply_id is None
    assert await _message_count(session_factory) == 1
    services.fanout.ai_failed.assert_awaited_once_with(chatroom_id, agent_id, "internal_error")


@pytest.mark.asyncio
async def test_list_messages_pages_backwards(services, room):
    user_id, chatroom_id, _ = room
    for i in range(5):
        await services.messages.send_message(user_id, chatroom_id, f"m{i}")

    latest = await services.messages.list_messages(user_id, chatroom_id, limit=2)
    older = await services.messages.list_messages(user_id, chatroom_id, limit=2, before=latest[0].id)

    assert [m.content for m in latest] == ["m3", "m4"]
    assert [m.content for m in older] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_typing_requires_membership(services, make_user, room):
    user_id, chatroom_id, _ = room
    services.fanout.typing = AsyncMock(return_value=True)

    await services.messages.set_typing(user_id, chatroom_id, True)
    services.fanout.typing.assert_awaited_once_with(chatroom_id, user_id, True)

    with pytest.raises(AccessDenied):
        await services.messages.set_typing(await make_user(), chatroom_id, True)
