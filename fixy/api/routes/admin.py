"""Admin routes: plan changes, top-ups and manual credit resets.

Plan changes and top-ups stand in for the payment provider's webhooks.
"""

import uuid

from fastapi import APIRouter, Depends

from fixy.api.deps import get_services
from fixy.api.schemas.credits import ChangePlanRequest, CreditAccountResponse, ResetRunResponse, TopUpRequest
from fixy.core.auth import AuthUser, require_admin
from fixy.core.exceptions import ValidationError
from fixy.domain.plans import parse_plan
from fixy.services.container import Services

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/users/{user_id}/plan", response_model=CreditAccountResponse)
async def change_plan(
    user_id: uuid.UUID,
    body: ChangePlanRequest,
    _: AuthUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Move a user to a plan and open a fresh credit period."""
    try:
        plan = parse_plan(body.plan)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    account = await services.ledger.apply_plan(
        user_id,
        plan,
        services.settings.plan_credit_limits,
        trial_period_days=services.settings.trial_period_days,
    )
    return CreditAccountResponse(**account.to_dict())


@router.post("/users/{user_id}/top-up", response_model=CreditAccountResponse)
async def top_up(
    user_id: uuid.UUID,
    body: TopUpRequest,
    _: AuthUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    account = await services.ledger.top_up(user_id, body.amount, body.description)
    return CreditAccountResponse(**account.to_dict())


@router.post("/credits/reset", response_model=ResetRunResponse)
async def run_credit_reset(
    _: AuthUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Run the periodic reset now. Accounts whose period has not ended are untouched."""
    count = await services.reset_runner.run_once()
    return ResetRunResponse(reset_count=count)
