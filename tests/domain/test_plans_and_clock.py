"""Tests for plan parsing, credit limits and calendar-month arithmetic."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from fixy.core.clock import add_months, as_utc
from fixy.domain.plans import ELITE_PLANS, PAID_PLANS, Plan, credit_limit_for, parse_plan

pytestmark = pytest.mark.unit

LIMITS = {"Trial": 50, "Pro": 500, "Elite": 0, "Teams": 500}


@pytest.mark.parametrize("raw,expected", [("pro", Plan.PRO), ("ELITE", Plan.ELITE), ("Teams", Plan.TEAMS)])
def test_parse_plan(raw, expected):
    assert parse_plan(raw) == expected


def test_parse_plan_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown plan"):
        parse_plan("Enterprise")


def test_credit_limit_for_returns_decimal():
    assert credit_limit_for(Plan.PRO, LIMITS) == Decimal("500")
    assert credit_limit_for(Plan.ELITE, LIMITS) == Decimal("0")


def test_credit_limit_for_missing_plan_raises():
    with pytest.raises(ValueError):
        credit_limit_for(Plan.TEAMS, {"Pro": 500})


def test_plan_groups():
    assert ELITE_PLANS == {Plan.ELITE, Plan.TEAMS}
    assert Plan.TRIAL not in PAID_PLANS


def test_add_months_clamps_day():
    assert add_months(datetime(2024, 1, 31, tzinfo=UTC)) == datetime(2024, 2, 29, tzinfo=UTC)
    assert add_months(datetime(2023, 1, 31, tzinfo=UTC)) == datetime(2023, 2, 28, tzinfo=UTC)


def test_add_months_crosses_year():
    assert add_months(datetime(2024, 12, 15, tzinfo=UTC), 2) == datetime(2025, 2, 15, tzinfo=UTC)


def test_as_utc_attaches_zone_to_naive():
    assert as_utc(datetime(2024, 5, 1, 12, 0)).tzinfo == UTC
