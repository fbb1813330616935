"""Tests for reply status transitions stored in Redis hashes."""

from datetime import UTC, datetime

import pytest

from fixy.queue.schemas import ReplyStatus
from fixy.queue.state_machine import ReplyStateMachine

pytestmark = pytest.mark.unit

HAPPY_PATH = [
    ReplyStatus.AUTHORIZED,
    ReplyStatus.CONTEXT_BUILT,
    ReplyStatus.PROVIDER_CALLED,
    ReplyStatus.PERSISTED,
    ReplyStatus.BILLED,
    ReplyStatus.DELIVERED,
]


@pytest.fixture
def state_machine(redis_client):
    return ReplyStateMachine(redis_client, ttl_seconds=60)


@pytest.mark.asyncio
async def test_create_reply_sets_requested_with_ttl(state_machine, redis_client):
    now = datetime(2024, 6, 1, tzinfo=UTC)

    await state_machine.create_reply("r1", {"user_id": "u1", "model_id": "gpt-4o"}, now=now)

    data = await state_machine.get_reply("r1")
    assert data["status"] == "requested"
    assert data["model_id"] == "gpt-4o"
    assert data["created_at"] == now.isoformat()
    assert 0 < await redis_client.ttl("reply:r1") <= 60


@pytest.mark.asyncio
async def test_full_happy_path(state_machine):
    await state_machine.create_reply("r1", {})

    for status in HAPPY_PATH:
        assert await state_machine.transition("r1", status) is True

    assert await state_machine.get_status("r1") == ReplyStatus.DELIVERED


@pytest.mark.asyncio
async def test_skipping_a_step_is_rejected(state_machine):
    await state_machine.create_reply("r1", {})
    await state_machine.transition("r1", ReplyStatus.AUTHORIZED)

    assert await state_machine.transition("r1", ReplyStatus.PERSISTED) is False
    assert await state_machine.get_status("r1") == ReplyStatus.AUTHORIZED


@pytest.mark.asyncio
@pytest.mark.parametrize("steps", range(0, 6))
async def test_failed_reachable_from_every_non_terminal_state(state_machine, steps):
    await state_machine.create_reply("r1", {})
    for status in HAPPY_PATH[:steps]:
        await state_machine.transition("r1", status)

    assert await state_machine.transition("r1", ReplyStatus.FAILED, "timeout", fields={"failure_reason": "timeout"})

    data = await state_machine.get_reply("r1")
    assert data["status_message"] == "timeout"
    assert data["failure_reason"] == "timeout"


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", [ReplyStatus.DELIVERED, ReplyStatus.FAILED])
async def test_terminal_states_are_final(state_machine, terminal):
    await state_machine.create_reply("r1", {})
    if terminal == ReplyStatus.DELIVERED:
        for status in HAPPY_PATH:
            await state_machine.transition("r1", status)
    else:
        await state_machine.transition("r1", ReplyStatus.FAILED)

    assert await state_machine.transition("r1", ReplyStatus.FAILED) is False
    assert await state_machine.get_status("r1") == terminal


@pytest.mark.asyncio
async def test_unknown_reply(state_machine):
    assert await state_machine.transition("missing", ReplyStatus.AUTHORIZED) is False
    assert await state_machine.get_status("missing") is None
    assert await state_machine.get_reply("missing") is None
