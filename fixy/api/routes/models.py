"""Model catalog with per-user availability."""

from fastapi import APIRouter, Depends

from fixy.api.deps import get_services
from fixy.api.schemas.chat import ModelAvailability
from fixy.core.auth import AuthUser, require_auth
from fixy.services.container import Services

router = APIRouter()


@router.get("/models", response_model=list[ModelAvailability])
async def list_models(
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Every catalog model with whether the caller may invoke it right now."""
    entries = await services.evaluator.available_models(user.user_id)
    return [
        ModelAvailability(
            **model.to_dict(),
            available=entitlement.allowed,
            requires_credit=entitlement.requires_credit,
            reason=entitlement.reason.value if entitlement.reason else None,
        )
        for model, entitlement in entries
    ]
