"""Credit balance and recent transactions."""

from fastapi import APIRouter, Depends

from fixy.api.deps import get_services
from fixy.api.schemas.credits import CreditAccountResponse, CreditsResponse
from fixy.core.auth import AuthUser, require_auth
from fixy.core.exceptions import NotFoundError
from fixy.db.models import User
from fixy.services.container import Services

router = APIRouter()


@router.get("/credits", response_model=CreditsResponse)
async def get_credits(
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    async with services.session_factory() as session:
        db_user = await session.get(User, user.user_id)
    if db_user is None:
        raise NotFoundError("User not found")

    account = await services.ledger.get_account(user.user_id)
    transactions = await services.ledger.recent_transactions(user.user_id, limit=10)
    return CreditsResponse(
        plan=db_user.plan,
        credits=CreditAccountResponse(**account.to_dict()),
        transactions=transactions,
    )
