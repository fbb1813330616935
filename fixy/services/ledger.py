"""Credit ledger: the only writer of credit accounts.

Every mutation is a single database transaction that pairs the account
update with its CreditTransaction row. Debits increment `used` in SQL
(`used = used + :amount`) so concurrent replies never lose updates.

Threshold alerts run as background tasks after the debit commits. Each
threshold fires at most once per reset period, claimed with Redis SET NX.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from redis.asyncio import Redis
from sqlalchemy import desc, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.clock import add_months, as_utc, utcnow
from fixy.core.exceptions import LedgerError, NotFoundError, ValidationError
from fixy.db.models import CreditAccount, CreditTransaction, User
from fixy.domain.plans import PAID_PLANS, Plan, credit_limit_for
from fixy.services.notifications import Notifier, TemplateKind

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

APPROACHING_RATIO = Decimal("0.8")
APPROACHING_CEILING = Decimal("0.9")
REACHED_RATIO = Decimal("1")


class TransactionKind:
    USAGE = "usage"
    TOP_UP = "top_up"
    RESET = "reset"


def to_credits(value) -> Decimal:
    """Normalize stored or user-supplied amounts to 2-decimal Decimal."""
    return Decimal(str(value)).quantize(CENTS)


@dataclass(frozen=True)
class AccountView:
    user_id: uuid.UUID
    used: Decimal
    limit: Decimal
    reset_date: datetime

    @property
    def remaining(self) -> Decimal:
        return max(self.limit - self.used, Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "used": float(self.used),
            "limit": float(self.limit),
            "remaining": float(self.remaining),
            "reset_date": self.reset_date.isoformat(),
        }


@dataclass(frozen=True)
class DebitResult:
    user_id: uuid.UUID
    amount: Decimal
    used: Decimal
    limit: Decimal
    reset_date: datetime


def new_account(user_id: uuid.UUID, limit: Decimal, reset_date: datetime) -> CreditAccount:
    """Build the opening account row for a freshly provisioned user."""
    return CreditAccount(user_id=user_id, used=Decimal("0"), limit_amount=limit, reset_date=reset_date)


def next_reset_after(reset_date: datetime, now: datetime) -> datetime:
    """First whole-month step from `reset_date` that lands after `now`."""
    months = 1
    candidate = add_months(reset_date, months)
    while candidate <= now:
        months += 1
        candidate = add_months(reset_date, months)
    return candidate


class CreditLedger:
    """Debits, top-ups, plan changes and periodic resets of credit accounts."""

    ALERT_PREFIX = "fixy:credits:alert:"
    ALERT_TTL_SECONDS = 62 * 86_400  # outlives any reset period

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis,
        notifier: Notifier,
    ):
        self.session_factory = session_factory
        self.redis = redis
        self.notifier = notifier
        self._alert_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------ reads

    async def get_account(self, user_id: uuid.UUID) -> AccountView:
        async with self.session_factory() as session:
            account = await session.get(CreditAccount, user_id)
        if account is None:
            raise NotFoundError("Credits not found")
        return AccountView(
            user_id=user_id,
            used=to_credits(account.used),
            limit=to_credits(account.limit_amount),
            reset_date=as_utc(account.reset_date),
        )

    async def recent_transactions(self, user_id: uuid.UUID, limit: int = 10) -> list[dict]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
                .order_by(desc(CreditTransaction.created_at))
                .limit(limit)
            )
            rows = result.scalars().all()
        return [
            {
                "id": str(row.id),
                "amount": float(row.amount),
                "kind": row.kind,
                "description": row.description,
                "created_at": as_utc(row.created_at).isoformat(),
            }
            for row in rows
        ]

    # ----------------------------------------------------------------- writes

    async def debit(self, user_id: uuid.UUID, amount, description: str) -> DebitResult:
        """Atomically add `amount` to `used` and record a usage transaction.

        Raises:
            LedgerError: account missing or the transaction could not commit
        """
        amount = to_credits(amount)
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(CreditAccount)
                    .where(CreditAccount.user_id == user_id)
                    .values(used=CreditAccount.used + amount)
                    .returning(CreditAccount.used, CreditAccount.limit_amount, CreditAccount.reset_date)
                    .execution_options(synchronize_session=False)
                )
                row = result.one_or_none()
                if row is None:
                    await session.rollback()
                    raise LedgerError(f"No credit account for user {user_id}")

                session.add(
                    CreditTransaction(
                        user_id=user_id,
                        amount=-amount,
                        kind=TransactionKind.USAGE,
                        description=description,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise LedgerError(f"Debit failed for user {user_id}: {exc}") from exc

        debit = DebitResult(
            user_id=user_id,
            amount=amount,
            used=to_credits(row.used),
            limit=to_credits(row.limit_amount),
            reset_date=as_utc(row.reset_date),
        )
        logger.info(
            "credits_debited",
            user_id=str(user_id),
            amount=str(amount),
            used=str(debit.used),
            limit=str(debit.limit),
        )

        self._spawn_alert_check(debit)
        return debit

    async def top_up(self, user_id: uuid.UUID, amount, description: str = "Credit top-up") -> AccountView:
        """Raise the account limit by `amount` and notify the user."""
        amount = to_credits(amount)
        if amount <= 0:
            raise ValidationError("Top-up amount must be positive")

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(CreditAccount)
                    .where(CreditAccount.user_id == user_id)
                    .values(limit_amount=CreditAccount.limit_amount + amount)
                    .returning(CreditAccount.used, CreditAccount.limit_amount, CreditAccount.reset_date)
                    .execution_options(synchronize_session=False)
                )
                row = result.one_or_none()
                if row is None:
                    await session.rollback()
                    raise NotFoundError("Credits not found")

                session.add(
                    CreditTransaction(
                        user_id=user_id,
                        amount=amount,
                        kind=TransactionKind.TOP_UP,
                        description=description,
                    )
                )
                email = await session.scalar(select(User.email).where(User.id == user_id))
                await session.commit()
        except SQLAlchemyError as exc:
            raise LedgerError(f"Top-up failed for user {user_id}: {exc}") from exc

        view = AccountView(
            user_id=user_id,
            used=to_credits(row.used),
            limit=to_credits(row.limit_amount),
            reset_date=as_utc(row.reset_date),
        )
        logger.info("credits_topped_up", user_id=str(user_id), amount=str(amount), limit=str(view.limit))
        await self.notifier.notify(
            user_id,
            TemplateKind.CREDITS_ADDED,
            {"email": email, "amount": str(amount), "limit": str(view.limit)},
        )
        return view

    async def apply_plan(
        self,
        user_id: uuid.UUID,
        plan: Plan,
        plan_limits: dict[str, float],
        trial_period_days: int = 7,
        now: datetime | None = None,
    ) -> AccountView:
        """Move a user onto `plan` and open a fresh period with the plan's limit.

        Stands in for the billing collaborator's subscription webhooks.
        """
        now = now or utcnow()
        limit = credit_limit_for(plan, plan_limits)
        if plan == Plan.TRIAL:
            reset_date = now + timedelta(days=trial_period_days)
        else:
            reset_date = add_months(now)

        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User not found: {user_id}")

            user.plan = plan.value
            if plan == Plan.TRIAL:
                user.trial_used = True

            account = await session.get(CreditAccount, user_id)
            if account is None:
                session.add(new_account(user_id, limit, reset_date))
            else:
                account.used = Decimal("0")
                account.limit_amount = limit
                account.reset_date = reset_date

            session.add(
                CreditTransaction(
                    user_id=user_id,
                    amount=Decimal("0"),
                    kind=TransactionKind.RESET,
                    description=f"Plan changed to {plan.value}",
                )
            )
            await session.commit()

        logger.info("plan_applied", user_id=str(user_id), plan=plan.value, limit=str(limit))
        return AccountView(user_id=user_id, used=Decimal("0"), limit=to_credits(limit), reset_date=reset_date)

    async def reset_all(self, plan_limits: dict[str, float], now: datetime | None = None) -> int:
        """Open a new period for every active paid-plan account that is due.

        An account is due when `reset_date <= now`. The same condition guards
        the UPDATE itself, so overlapping or repeated runs reset each account
        at most once per period.

        Returns:
            Number of accounts reset
        """
        now = now or utcnow()
        paid = [plan.value for plan in PAID_PLANS]

        async with self.session_factory() as session:
            result = await session.execute(
                select(User.id, User.plan, User.email, CreditAccount.reset_date)
                .join(CreditAccount, CreditAccount.user_id == User.id)
                .where(
                    User.plan.in_(paid),
                    User.is_active.is_(True),
                    CreditAccount.reset_date <= now,
                )
            )
            due = result.all()

        reset_count = 0
        for user_id, plan_value, email, reset_date in due:
            limit = credit_limit_for(Plan(plan_value), plan_limits)
            next_reset = next_reset_after(as_utc(reset_date), now)

            async with self.session_factory() as session:
                updated = await session.execute(
                    update(CreditAccount)
                    .where(CreditAccount.user_id == user_id, CreditAccount.reset_date <= now)
                    .values(used=Decimal("0"), limit_amount=limit, reset_date=next_reset)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount == 0:
                    # Reset by a concurrent run
                    await session.rollback()
                    continue

                session.add(
                    CreditTransaction(
                        user_id=user_id,
                        amount=Decimal("0"),
                        kind=TransactionKind.RESET,
                        description="Monthly credit reset",
                    )
                )
                await session.commit()

            reset_count += 1
            logger.info("credits_reset", user_id=str(user_id), plan=plan_value, next_reset=next_reset.isoformat())
            await self.notifier.notify(
                user_id,
                TemplateKind.CREDITS_RESET,
                {"email": email, "limit": str(to_credits(limit))},
            )

        return reset_count

    # --------------------------------------------------------------- alerting

    def _spawn_alert_check(self, debit: DebitResult) -> None:
        task = asyncio.create_task(self._check_thresholds(debit))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def drain_alerts(self) -> None:
        """Wait for in-flight threshold checks."""
        if self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)

    async def _claim_alert(self, user_id: uuid.UUID, reset_date: datetime, threshold: str) -> bool:
        """Claim the (user, period, threshold) alert slot. False if already sent."""
        key = f"{self.ALERT_PREFIX}{user_id}:{reset_date.isoformat()}:{threshold}"
        claimed = await self.redis.set(key, "1", nx=True, ex=self.ALERT_TTL_SECONDS)
        return bool(claimed)

    async def _check_thresholds(self, debit: DebitResult) -> None:
        """Non-fatal: alert failures are logged and never reach the debit caller."""
        if debit.limit <= 0:
            return

        ratio = debit.used / debit.limit
        if ratio >= REACHED_RATIO:
            threshold, kind = "reached", TemplateKind.CREDIT_LIMIT_REACHED
        elif APPROACHING_RATIO <= ratio < APPROACHING_CEILING:
            threshold, kind = "approaching", TemplateKind.CREDIT_THRESHOLD_APPROACHING
        else:
            return

        try:
            if not await self._claim_alert(debit.user_id, debit.reset_date, threshold):
                return

            async with self.session_factory() as session:
                email = await session.scalar(select(User.email).where(User.id == debit.user_id))

            await self.notifier.notify(
                debit.user_id,
                kind,
                {
                    "email": email,
                    "used": str(debit.used),
                    "limit": str(debit.limit),
                    "percent": int(ratio * 100),
                },
            )
            logger.info("credit_threshold_notified", user_id=str(debit.user_id), threshold=threshold)
        except Exception as exc:
            logger.warning(
                "credit_threshold_check_failed",
                user_id=str(debit.user_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
