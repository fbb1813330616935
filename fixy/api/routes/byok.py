"""Bring-your-own-key management. Elite and Teams plans only."""

from fastapi import APIRouter, Depends

from fixy.api.deps import get_services
from fixy.api.schemas.credits import ByokCredentialResponse, StoreByokRequest
from fixy.core.auth import AuthUser, require_auth
from fixy.core.exceptions import AccessDenied, NotFoundError
from fixy.db.models import User
from fixy.domain.catalog import parse_provider
from fixy.domain.plans import ELITE_PLANS, parse_plan
from fixy.services.container import Services

router = APIRouter(prefix="/byok")


async def require_byok_plan(
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
) -> AuthUser:
    async with services.session_factory() as session:
        db_user = await session.get(User, user.user_id)
    if db_user is None:
        raise NotFoundError("User not found")
    if parse_plan(db_user.plan) not in ELITE_PLANS:
        raise AccessDenied("BYOK is only available on the Elite and Teams plans")
    return user


@router.get("", response_model=list[ByokCredentialResponse])
async def list_keys(
    user: AuthUser = Depends(require_byok_plan),
    services: Services = Depends(get_services),
):
    """Providers with an active key. Key material is never returned."""
    return await services.vault.list_credentials(user.user_id)


@router.post("", response_model=ByokCredentialResponse, status_code=201)
async def store_key(
    body: StoreByokRequest,
    user: AuthUser = Depends(require_byok_plan),
    services: Services = Depends(get_services),
):
    """Add a key, or replace the existing one for the same provider."""
    provider = parse_provider(body.provider)
    return await services.vault.store_credential(user.user_id, provider, body.api_key)


@router.delete("/{provider}", status_code=204)
async def revoke_key(
    provider: str,
    user: AuthUser = Depends(require_byok_plan),
    services: Services = Depends(get_services),
):
    await services.vault.revoke_credential(user.user_id, parse_provider(provider))
