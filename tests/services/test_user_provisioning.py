"""Tests for first-login user provisioning."""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fixy.core.clock import as_utc
from fixy.core.provisioning import ProvisionedUsers, provision_user_on_first_login
from fixy.db.models import CreditAccount, User

pytestmark = pytest.mark.unit

LIMITS = {"Trial": 50, "Pro": 500, "Elite": 0, "Teams": 500}
NOW = datetime(2024, 6, 1, tzinfo=UTC)


@pytest.mark.asyncio
async def test_first_login_creates_trial_user_and_account(session_factory):
    user_id = uuid.uuid4()

    user = await provision_user_on_first_login(
        session_factory, user_id, {"email": "new@example.com", "name": "New"}, LIMITS, trial_period_days=7, now=NOW
    )

    assert user.plan == "Trial"
    assert user.trial_used is True
    async with session_factory() as session:
        account = await session.get(CreditAccount, user_id)
    assert Decimal(str(account.limit_amount)) == Decimal("50")
    assert as_utc(account.reset_date) == NOW + timedelta(days=7)


@pytest.mark.asyncio
async def test_second_login_returns_existing_row(session_factory, make_user):
    user_id = await make_user(plan="Pro")

    user = await provision_user_on_first_login(session_factory, user_id, {}, LIMITS)

    assert user.plan == "Pro"


@pytest.mark.asyncio
async def test_concurrent_first_logins_create_one_user(session_factory):
    user_id = uuid.uuid4()

    users = await asyncio.gather(
        *(provision_user_on_first_login(session_factory, user_id, {}, LIMITS) for _ in range(3))
    )

    assert {u.id for u in users} == {user_id}
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(User)) == 1
        assert await session.scalar(select(func.count()).select_from(CreditAccount)) == 1


def test_provisioned_users_evicts_least_recent():
    cache = ProvisionedUsers(maxsize=2)
    first, second, third = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    cache.add(first)
    cache.add(second)
    assert first in cache  # refreshes `first`
    cache.add(third)

    assert len(cache) == 2
    assert first in cache
    assert second not in cache
    assert third in cache
