"""Entitlement evaluation: may this user invoke this model right now?

`evaluate` is the single rule set. It is a pure function over an
EntitlementSnapshot so the rules can be tested without storage;
`EntitlementEvaluator` loads the snapshot and calls it.

Rules, first failure wins:
    1. Elite-gated model on a plan outside {Elite, Teams}  -> requires_elite_plan
    2. BYOK-only model without an active key for its provider -> requires_byok
    3. The call is credit-free only when the user's own key pays for it:
       Elite with BYOK, or Teams with BYOK on an elite-gated model.
    4. Credit-metered call with used >= limit -> credit_limit_reached
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.exceptions import EntitlementDenied, NotFoundError
from fixy.db.models import ByokCredential, CreditAccount, User
from fixy.domain.catalog import AIModel, Provider, list_models
from fixy.domain.plans import ELITE_PLANS, Plan, parse_plan


class DenialReason(StrEnum):
    REQUIRES_ELITE_PLAN = "requires_elite_plan"
    REQUIRES_BYOK = "requires_byok"
    CREDIT_LIMIT_REACHED = "credit_limit_reached"


@dataclass(frozen=True)
class Entitlement:
    """Tagged result: either allowed (with a credit flag) or denied (with a reason)."""

    allowed: bool
    requires_credit: bool = False
    reason: DenialReason | None = None

    @classmethod
    def allow(cls, requires_credit: bool) -> "Entitlement":
        return cls(allowed=True, requires_credit=requires_credit)

    @classmethod
    def deny(cls, reason: DenialReason) -> "Entitlement":
        return cls(allowed=False, requires_credit=False, reason=reason)

    def raise_if_denied(self) -> "Entitlement":
        if not self.allowed:
            raise EntitlementDenied(self.reason.value)
        return self

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "requires_credit": self.requires_credit,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass(frozen=True)
class EntitlementSnapshot:
    plan: Plan
    byok_providers: frozenset[Provider] = field(default_factory=frozenset)
    used: Decimal = Decimal("0")
    limit: Decimal = Decimal("0")


def evaluate(snapshot: EntitlementSnapshot, model: AIModel) -> Entitlement:
    if model.requires_elite and snapshot.plan not in ELITE_PLANS:
        return Entitlement.deny(DenialReason.REQUIRES_ELITE_PLAN)

    has_byok = model.provider in snapshot.byok_providers

    if model.requires_byok and not has_byok:
        return Entitlement.deny(DenialReason.REQUIRES_BYOK)

    own_key_pays = snapshot.plan == Plan.ELITE or (snapshot.plan == Plan.TEAMS and model.requires_elite)
    requires_credit = not (own_key_pays and has_byok)

    if requires_credit and snapshot.used >= snapshot.limit:
        return Entitlement.deny(DenialReason.CREDIT_LIMIT_REACHED)

    return Entitlement.allow(requires_credit)


class EntitlementEvaluator:
    """Loads plan, BYOK holdings and credit state, then applies `evaluate`.

    Read-only: a denial leaves no trace in storage.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def snapshot(self, user_id: uuid.UUID) -> EntitlementSnapshot:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None or not user.is_active:
                raise NotFoundError(f"User not found: {user_id}")

            result = await session.execute(
                select(ByokCredential.provider).where(
                    ByokCredential.user_id == user_id,
                    ByokCredential.is_active.is_(True),
                )
            )
            providers = frozenset(Provider(p) for p in result.scalars().all())

            account = await session.get(CreditAccount, user_id)

        return EntitlementSnapshot(
            plan=parse_plan(user.plan),
            byok_providers=providers,
            used=Decimal(str(account.used)) if account else Decimal("0"),
            limit=Decimal(str(account.limit_amount)) if account else Decimal("0"),
        )

    async def authorize(self, user_id: uuid.UUID, model: AIModel) -> Entitlement:
        return evaluate(await self.snapshot(user_id), model)

    async def available_models(self, user_id: uuid.UUID) -> list[tuple[AIModel, Entitlement]]:
        """Every catalog model paired with the caller's current entitlement."""
        snap = await self.snapshot(user_id)
        return [(model, evaluate(snap, model)) for model in list_models()]
