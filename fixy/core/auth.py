"""Bearer JWT authentication for FastAPI (HS256, `sub` = user uuid)."""

import uuid
from dataclasses import dataclass

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fixy.api.deps import get_services
from fixy.services.container import Services

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from a verified token."""

    user_id: uuid.UUID
    claims: dict


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> AuthUser:
    """Verify and decode a session JWT.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    if not secret:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured")

    try:
        payload = pyjwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={
                "verify_exp": True,
                "require": ["sub", "exp"],
            },
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Token sub claim is not a user id")

    return AuthUser(user_id=user_id, claims=payload)


def is_admin_user(user: AuthUser) -> bool:
    """JWT-only admin check. Does not consult the database."""
    return user.claims.get("admin") is True


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    services: Services = Depends(get_services),
) -> AuthUser:
    """FastAPI dependency that validates the bearer token.

    Also provisions the user (Trial plan + credit account) on first call.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    settings = services.settings
    user = decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)

    if user.user_id not in services.provisioned_users:
        from fixy.core.provisioning import provision_user_on_first_login

        db_user = await provision_user_on_first_login(
            services.session_factory,
            user.user_id,
            user.claims,
            settings.plan_credit_limits,
            trial_period_days=settings.trial_period_days,
        )
        if not db_user.is_active:
            raise HTTPException(status_code=403, detail="Account is deactivated")
        services.provisioned_users.add(user.user_id)

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = str(user.user_id)

    return user


async def require_admin(
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
) -> AuthUser:
    """FastAPI dependency that requires admin privileges.

    Checks the token's `admin` claim first, then falls back to User.is_admin.
    """
    if is_admin_user(user):
        return user

    from fixy.db.models import User

    async with services.session_factory() as session:
        db_user = await session.get(User, user.user_id)
        if db_user is not None and db_user.is_admin:
            return user

    raise HTTPException(status_code=403, detail="Admin access required")
