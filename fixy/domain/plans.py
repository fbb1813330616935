"""Subscription plans and their credit limits."""

from decimal import Decimal
from enum import StrEnum


class Plan(StrEnum):
    """Subscription tiers. Values match the stored `users.plan` column."""

    TRIAL = "Trial"
    PRO = "Pro"
    ELITE = "Elite"
    TEAMS = "Teams"


# Plans that unlock elite-gated models and BYOK management
ELITE_PLANS = frozenset({Plan.ELITE, Plan.TEAMS})

# Plans whose accounts are reset by the periodic job
PAID_PLANS = frozenset({Plan.PRO, Plan.ELITE, Plan.TEAMS})


def parse_plan(value: str) -> Plan:
    """Return the Plan for a stored or user-supplied value (case-insensitive)."""
    for plan in Plan:
        if plan.value.lower() == str(value).lower():
            return plan
    raise ValueError(f"Unknown plan: {value}")


def credit_limit_for(plan: Plan, plan_limits: dict[str, float]) -> Decimal:
    """Look up the credit limit for a plan in a `{plan_value: limit}` table."""
    if plan.value not in plan_limits:
        raise ValueError(f"No credit limit configured for plan {plan.value}")
    return Decimal(str(plan_limits[plan.value]))
