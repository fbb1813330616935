"""User provisioning on first authenticated request.

Creates the User (Trial plan) and its CreditAccount in one transaction.
Idempotent and race-safe: a concurrent first request that loses the insert
race hits IntegrityError, rolls back and reads the winner's row.
"""

import uuid
from collections import OrderedDict
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.clock import utcnow
from fixy.db.models import User
from fixy.domain.plans import Plan, credit_limit_for
from fixy.services.ledger import new_account

logger = structlog.get_logger(__name__)


class ProvisionedUsers:
    """Bounded LRU of user ids known to have a row, so auth skips the lookup."""

    def __init__(self, maxsize: int = 10_000):
        self.maxsize = maxsize
        self._ids: OrderedDict[uuid.UUID, None] = OrderedDict()

    def __contains__(self, user_id: uuid.UUID) -> bool:
        if user_id in self._ids:
            self._ids.move_to_end(user_id)
            return True
        return False

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, user_id: uuid.UUID) -> None:
        self._ids[user_id] = None
        self._ids.move_to_end(user_id)
        while len(self._ids) > self.maxsize:
            self._ids.popitem(last=False)


async def provision_user_on_first_login(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: uuid.UUID,
    jwt_claims: dict,
    plan_limits: dict[str, float],
    trial_period_days: int = 7,
    now: datetime | None = None,
) -> User:
    """Return the user's row, creating it (plus credit account) if missing.

    Args:
        session_factory: Storage session factory
        user_id: Subject of the verified token
        jwt_claims: Token claims; `email` and `name` seed the profile
        plan_limits: Per-plan credit limits
        trial_period_days: Length of the first (Trial) credit period
        now: Current time (for deterministic testing)
    """
    async with session_factory() as session:
        existing = await session.get(User, user_id)
        if existing is not None:
            return existing

        now = now or utcnow()
        user = User(
            id=user_id,
            email=jwt_claims.get("email") or None,
            name=jwt_claims.get("name") or None,
            plan=Plan.TRIAL.value,
            trial_used=True,
        )
        session.add(user)

        try:
            await session.flush()
            session.add(
                new_account(
                    user_id,
                    credit_limit_for(Plan.TRIAL, plan_limits),
                    now + timedelta(days=trial_period_days),
                )
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            winner = await session.get(User, user_id)
            if winner is None:
                raise
            return winner

    logger.info("user_provisioned", user_id=str(user_id), plan=Plan.TRIAL.value)
    return user
