"""Tests for the conversation context window."""

from datetime import UTC, datetime, timedelta

import pytest

from fixy.core.exceptions import ValidationError
from fixy.db.models import Agent, Message
from fixy.services.context_builder import ContextBuilder

pytestmark = pytest.mark.unit

T0 = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


async def _add_messages(session_factory, chatroom_id, user_id, agent_id, count, start=T0):
    async with session_factory() as session:
        for i in range(count):
            is_ai = i % 2 == 1
            session.add(
                Message(
                    chatroom_id=chatroom_id,
                    sender_id=None if is_ai else user_id,
                    agent_id=agent_id if is_ai else None,
                    content=f"m{i}",
                    is_ai=is_ai,
                    created_at=start + timedelta(seconds=i),
                )
            )
        await session.commit()


@pytest.fixture
async def room(session_factory, make_user, make_chatroom):
    user_id = await make_user(name="Alice")
    chatroom_id = await make_chatroom(user_id)
    async with session_factory() as session:
        agent = Agent(chatroom_id=chatroom_id, name="Helper", model_id="gpt-4o", config={})
        session.add(agent)
        await session.commit()
    return user_id, chatroom_id, agent.id


@pytest.mark.asyncio
async def test_context_is_oldest_first_with_roles(session_factory, room):
    user_id, chatroom_id, agent_id = room
    await _add_messages(session_factory, chatroom_id, user_id, agent_id, 4)

    turns = await ContextBuilder(session_factory).build_context(chatroom_id)

    assert [t.content for t in turns] == ["m0", "m1", "m2", "m3"]
    assert [t.role for t in turns] == ["user", "assistant", "user", "assistant"]
    assert turns[0].speaker_name == "Alice"
    assert turns[1].speaker_name == "Helper"


@pytest.mark.asyncio
async def test_context_keeps_only_latest_window(session_factory, room):
    user_id, chatroom_id, agent_id = room
    await _add_messages(session_factory, chatroom_id, user_id, agent_id, 25)

    turns = await ContextBuilder(session_factory, window_size=20).build_context(chatroom_id)

    assert len(turns) == 20
    assert turns[0].content == "m5"
    assert turns[-1].content == "m24"


@pytest.mark.asyncio
async def test_same_timestamp_keeps_insertion_order(session_factory, room):
    user_id, chatroom_id, _ = room
    async with session_factory() as session:
        for content in ("first", "second", "third"):
            session.add(Message(chatroom_id=chatroom_id, sender_id=user_id, content=content, created_at=T0))
            await session.flush()
        await session.commit()

    turns = await ContextBuilder(session_factory).build_context(chatroom_id, window_size=2)

    assert [t.content for t in turns] == ["second", "third"]


@pytest.mark.asyncio
async def test_other_rooms_are_excluded(session_factory, make_chatroom, room):
    user_id, chatroom_id, agent_id = room
    other_room = await make_chatroom(user_id)
    await _add_messages(session_factory, other_room, user_id, agent_id, 3)

    assert await ContextBuilder(session_factory).build_context(chatroom_id) == []


@pytest.mark.asyncio
async def test_window_must_be_positive(session_factory, room):
    _, chatroom_id, _ = room

    with pytest.raises(ValidationError):
        await ContextBuilder(session_factory).build_context(chatroom_id, window_size=0)
