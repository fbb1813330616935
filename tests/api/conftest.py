"""API-specific test fixtures."""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from fixy.core.auth import AuthUser, require_auth
from fixy.main import create_app


def override_auth(user: AuthUser):
    """Dependency override factory for require_auth."""

    async def _override():
        return user

    return _override


@pytest.fixture
def app(services):
    """App wired to the test component graph; lifespan is not run."""
    application = create_app()
    application.state.services = services
    application.state.shutting_down = False
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def login(app):
    """Authenticate subsequent requests as `user_id` (optionally with admin claims)."""

    def _login(user_id: uuid.UUID, admin: bool = False) -> AuthUser:
        user = AuthUser(user_id=user_id, claims={"sub": str(user_id), "admin": admin})
        app.dependency_overrides[require_auth] = override_auth(user)
        return user

    return _login
